from __future__ import annotations

import math
from typing import Any, Iterable

RECENT_SAMPLE_SIZE = 20
OUTLIER_MIN_COUNT = 10
OUTLIER_FRACTION = 0.05


def valid_scores(scores: Iterable[Any]) -> list[float]:
    cleaned: list[float] = []
    for score in scores:
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            continue
        if not math.isfinite(score):
            continue
        cleaned.append(float(score))
    return cleaned


def process_temporal_scores(scores: Iterable[Any]) -> list[float]:
    """Scores worth plotting, most recent first.

    Drops junk values and the lowest outliers, then keeps only the band between
    the worst of the recent sample and the historical best.
    """
    cleaned = valid_scores(scores)
    if not cleaned:
        return []

    kept = _drop_bottom_outliers(cleaned)
    if not kept:
        return []

    recent_floor = min(kept[:RECENT_SAMPLE_SIZE])
    best = max(kept)
    return [score for score in kept if recent_floor <= score <= best]


def _drop_bottom_outliers(scores: list[float]) -> list[float]:
    if len(scores) < OUTLIER_MIN_COUNT:
        return list(scores)
    drop_count = math.ceil(len(scores) * OUTLIER_FRACTION)
    cutoff = sorted(scores)[drop_count - 1]
    return [score for score in scores if score > cutoff]

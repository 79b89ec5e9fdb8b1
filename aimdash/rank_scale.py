from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

VIEW_MARGIN = 0.1
VIEW_REFINE_PASSES = 5


@dataclass(frozen=True, slots=True)
class ViewBounds:
    min_ru: float
    max_ru: float

    def to_dict(self) -> dict[str, float]:
        return {"minRU": self.min_ru, "maxRU": self.max_ru}


class RankScaleMapper:
    """Maps raw scores onto the Rank Unit (RU) scale.

    Threshold ``i`` (0-based) sits exactly at RU ``i`` and the scale is linear
    between neighbouring thresholds, so every rank occupies the same width on
    screen no matter how far apart the raw threshold scores are. Outside the
    threshold list the scale keeps going with the width of the nearest interval.
    """

    def __init__(self, thresholds: Sequence[float], average_rank_interval: float = 100) -> None:
        self._thresholds = [float(value) for value in thresholds]
        self._average_rank_interval = float(average_rank_interval)

    @property
    def thresholds(self) -> list[float]:
        return list(self._thresholds)

    def calculate_rank_unit(self, score: float) -> float:
        if not self._thresholds:
            return score / self._average_rank_interval

        if score < self._thresholds[0]:
            return self._lower_bound_ru(score)

        last_index = len(self._thresholds) - 1
        if score > self._thresholds[last_index]:
            return self._upper_bound_ru(score, last_index)

        return self._internal_ru(score)

    def get_horizontal_position(self, rank_unit: float, min_ru: float, max_ru: float, width: float) -> float:
        span = max_ru - min_ru
        if span == 0:
            return _round_finite(width / 2)
        return _round_finite(((rank_unit - min_ru) / span) * width)

    def get_highest_rank_index(self) -> int:
        return len(self._thresholds) - 1

    def identify_relevant_thresholds(self, min_ru: float, max_ru: float) -> list[int]:
        """Indices of thresholds visible in ``[min_ru, max_ru]``.

        Always returns at least one index for a non-empty list. When the window
        shows a single threshold out of several, a neighbour is added unless
        the top threshold sits left of the window centre.
        """
        highest = self.get_highest_rank_index()
        visible = [index for index in range(highest + 1) if min_ru <= index <= max_ru]

        if not visible and highest >= 0:
            return [self._clamped_fallback_index(min_ru, highest)]

        if len(visible) >= 2 or highest < 1:
            return sorted(set(visible))

        expanded = list(visible)
        if not self._is_left_of_center(highest, min_ru, max_ru):
            base = expanded[0]
            if base < highest:
                expanded.append(base + 1)
            elif base > 0:
                expanded.append(base - 1)
        return sorted(set(expanded))

    def calculate_aligned_bounds(self, min_score_ru: float, max_score_ru: float) -> ViewBounds:
        min_ru = float(math.floor(min_score_ru)) if math.isfinite(min_score_ru) else min_score_ru
        max_ru = float(math.ceil(max_score_ru)) if math.isfinite(max_score_ru) else max_score_ru
        if max_ru == min_ru:
            max_ru = min_ru + 1
        return ViewBounds(min_ru, max_ru)

    def calculate_view_bounds(
        self,
        min_score_ru: float,
        max_score_ru: float,
        threshold_indices: Sequence[int],
    ) -> ViewBounds:
        """Pads the score window so the outer labelled thresholds stay off the edges.

        Runs a fixed number of passes; the result is a layout aid and is not
        guaranteed to have converged.
        """
        min_ru = min_score_ru
        max_ru = max_score_ru
        if not threshold_indices:
            return ViewBounds(min_ru, max_ru + 1 if max_ru == min_ru else max_ru)

        first = threshold_indices[0]
        last = threshold_indices[-1]
        keep = 1 - VIEW_MARGIN
        for _ in range(VIEW_REFINE_PASSES):
            span = (max_ru - min_ru) or 1
            if (first - min_ru) / span < VIEW_MARGIN:
                min_ru = (first - VIEW_MARGIN * max_ru) / keep
            if (last - min_ru) / span > keep:
                max_ru = (last - VIEW_MARGIN * min_ru) / keep
        return ViewBounds(min_ru, max_ru)

    def _lower_bound_ru(self, score: float) -> float:
        if len(self._thresholds) > 1:
            interval = self._thresholds[1] - self._thresholds[0]
        else:
            interval = self._average_rank_interval
        return (score - self._thresholds[0]) / (interval or 1)

    def _upper_bound_ru(self, score: float, last_index: int) -> float:
        if last_index > 0:
            interval = self._thresholds[last_index] - self._thresholds[last_index - 1]
        else:
            interval = self._average_rank_interval
        return last_index + (score - self._thresholds[last_index]) / (interval or 1)

    def _internal_ru(self, score: float) -> float:
        for index in range(len(self._thresholds) - 1):
            lower = self._thresholds[index]
            upper = self._thresholds[index + 1]
            if lower <= score <= upper:
                segment = upper - lower
                progress = 0.0 if segment == 0 else (score - lower) / segment
                return index + progress
        # Only reachable for NaN, which fails every comparison above.
        return score if math.isnan(score) else float(len(self._thresholds) - 1)

    @staticmethod
    def _clamped_fallback_index(min_ru: float, highest: int) -> int:
        if math.isnan(min_ru):
            return 0
        if math.isinf(min_ru):
            return highest if min_ru > 0 else 0
        return max(0, min(highest, math.floor(min_ru)))

    @staticmethod
    def _is_left_of_center(index: int, min_ru: float, max_ru: float) -> bool:
        span = max_ru - min_ru
        if span == 0:
            return False
        return (index - min_ru) / span < 0.5


def _round_finite(value: float) -> float:
    if not math.isfinite(value):
        return value
    # Half-up, not Python's round-half-to-even.
    return float(math.floor(value + 0.5))

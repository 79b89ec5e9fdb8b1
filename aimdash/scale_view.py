from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .rank_evaluator import ScenarioMetadata, sorted_thresholds
from .rank_scale import RankScaleMapper, ViewBounds
from .score_processor import process_temporal_scores

SCALING_MODES = {"aligned", "floating"}


@dataclass(slots=True)
class ThresholdLabel:
    index: int
    rank_name: str
    score: float
    x: float


@dataclass(slots=True)
class ScaleView:
    scenario_name: str
    bounds: ViewBounds | None
    dots: list[dict[str, float]] = field(default_factory=list)
    labels: list[ThresholdLabel] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario_name,
            "bounds": self.bounds.to_dict() if self.bounds is not None else None,
            "dots": list(self.dots),
            "labels": [
                {"index": label.index, "rank": label.rank_name, "score": label.score, "x": label.x}
                for label in self.labels
            ],
        }


def compute_bounds(mapper: RankScaleMapper, min_ru: float, max_ru: float, scaling_mode: str) -> ViewBounds:
    if scaling_mode == "aligned":
        return mapper.calculate_aligned_bounds(min_ru, max_ru)
    indices = mapper.identify_relevant_thresholds(min_ru, max_ru)
    return mapper.calculate_view_bounds(min_ru, max_ru, indices)


def build_scale_view(
    scenario: ScenarioMetadata,
    scores: Iterable[Any],
    width: float,
    scaling_mode: str = "floating",
    average_rank_interval: float = 100,
) -> ScaleView:
    mode = (scaling_mode or "floating").strip().lower()
    if mode not in SCALING_MODES:
        mode = "floating"

    plotted = process_temporal_scores(scores)
    if not plotted:
        return ScaleView(scenario_name=scenario.name, bounds=None)

    ranks = sorted_thresholds(scenario)
    mapper = RankScaleMapper([value for _, value in ranks], average_rank_interval)
    rank_units = [mapper.calculate_rank_unit(score) for score in plotted]
    bounds = compute_bounds(mapper, min(rank_units), max(rank_units), mode)

    dots = [
        {
            "score": score,
            "ru": ru,
            "x": mapper.get_horizontal_position(ru, bounds.min_ru, bounds.max_ru, width),
        }
        for score, ru in zip(plotted, rank_units)
    ]
    labels = [
        ThresholdLabel(
            index=index,
            rank_name=ranks[index][0],
            score=ranks[index][1],
            x=mapper.get_horizontal_position(index, bounds.min_ru, bounds.max_ru, width),
        )
        for index in range(len(ranks))
        if bounds.min_ru <= index <= bounds.max_ru
    ]
    return ScaleView(scenario_name=scenario.name, bounds=bounds, dots=dots, labels=labels)

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Protocol

UNRANKED = "Unranked"


@dataclass(slots=True)
class ScenarioMetadata:
    name: str
    thresholds: dict[str, float] = field(default_factory=dict)
    category: str | None = None


@dataclass(slots=True)
class RankResult:
    current_rank: str
    next_rank: str | None
    progress_percentage: float
    rank_level: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentRank": self.current_rank,
            "nextRank": self.next_rank,
            "progressPercentage": self.progress_percentage,
            "rankLevel": self.rank_level,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RankResult:
        if not isinstance(payload, dict):
            raise TypeError(f"expected an object, got {type(payload).__name__}")
        next_rank = payload.get("nextRank")
        return cls(
            current_rank=str(payload["currentRank"]),
            next_rank=str(next_rank) if next_rank is not None else None,
            progress_percentage=float(payload["progressPercentage"]),
            rank_level=int(payload["rankLevel"]),
        )

    def beats(self, other: RankResult) -> bool:
        if self.rank_level != other.rank_level:
            return self.rank_level > other.rank_level
        return self.progress_percentage > other.progress_percentage


class RankCalculator(Protocol):
    def calculate_rank(self, score: float, scenario: ScenarioMetadata) -> RankResult: ...


def sorted_thresholds(scenario: ScenarioMetadata) -> list[tuple[str, float]]:
    return sorted(scenario.thresholds.items(), key=lambda item: item[1])


def sorted_threshold_values(scenario: ScenarioMetadata) -> list[float]:
    return [float(value) for _, value in sorted_thresholds(scenario)]


class RankEvaluator:
    def calculate_rank(self, score: float, scenario: ScenarioMetadata) -> RankResult:
        thresholds = sorted_thresholds(scenario)
        if not thresholds:
            return RankResult(current_rank=UNRANKED, next_rank=None, progress_percentage=0, rank_level=-1)

        index = -1
        for position, (_, value) in enumerate(thresholds):
            if score >= value:
                index = position
            else:
                break

        current_rank = UNRANKED if index == -1 else thresholds[index][0]
        if index + 1 >= len(thresholds):
            return RankResult(current_rank=current_rank, next_rank=None, progress_percentage=100, rank_level=index)

        lower = 0.0 if index == -1 else thresholds[index][1]
        next_name, upper = thresholds[index + 1]
        return RankResult(
            current_rank=current_rank,
            next_rank=next_name,
            progress_percentage=_progress_between(score, lower, upper),
            rank_level=index,
        )


def _progress_between(score: float, lower: float, upper: float) -> float:
    span = upper - lower
    if span <= 0:
        return 0
    clamped = max(lower, min(upper, score))
    return math.floor(((clamped - lower) / span) * 100)

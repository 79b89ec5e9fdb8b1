from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from .rank_evaluator import RankCalculator, RankResult, ScenarioMetadata


def floor_to_second(timestamp_ms: int) -> int:
    return (int(timestamp_ms) // 1000) * 1000


@dataclass(slots=True)
class RecordedRun:
    scenario_name: str
    score: float
    difficulty: str | None
    timestamp_ms: int

    def key(self) -> tuple[str, float, int]:
        # Live polling and file ingestion report the same run with sub-second drift.
        return (self.scenario_name, self.score, floor_to_second(self.timestamp_ms))

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenarioName": self.scenario_name,
            "score": self.score,
            "difficulty": self.difficulty,
            "timestamp": self.timestamp_ms,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RecordedRun:
        if not isinstance(payload, dict):
            raise TypeError(f"expected an object, got {type(payload).__name__}")
        difficulty = payload.get("difficulty")
        return cls(
            scenario_name=str(payload["scenarioName"]),
            score=float(payload["score"]),
            difficulty=str(difficulty) if difficulty is not None else None,
            timestamp_ms=int(payload["timestamp"]),
        )


@dataclass(slots=True)
class SessionRankRecord:
    scenario_name: str
    best_score: float
    rank_result: RankResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenarioName": self.scenario_name,
            "bestScore": self.best_score,
            "rankResult": self.rank_result.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SessionRankRecord:
        if not isinstance(payload, dict):
            raise TypeError(f"expected an object, got {type(payload).__name__}")
        return cls(
            scenario_name=str(payload["scenarioName"]),
            best_score=float(payload["bestScore"]),
            rank_result=RankResult.from_dict(payload["rankResult"]),
        )


class SessionWindow:
    """Best-score bookkeeping for one window of runs.

    The casual session and the ranked track are both instances of this; only
    the casual one keeps per-difficulty bests.
    """

    def __init__(self, track_difficulty: bool = True) -> None:
        self.track_difficulty = track_difficulty
        self.best_ranks: dict[str, SessionRankRecord] = {}
        self.best_per_difficulty: dict[str, RankResult] = {}
        self.runs: list[RecordedRun] = []
        self._run_keys: set[tuple[str, float, int]] = set()

    def clear(self) -> None:
        self.best_ranks.clear()
        self.best_per_difficulty.clear()
        self.runs.clear()
        self._run_keys.clear()

    def contains(self, run: RecordedRun) -> bool:
        return run.key() in self._run_keys

    def record(self, run: RecordedRun, scenario: ScenarioMetadata | None, evaluator: RankCalculator) -> None:
        if scenario is not None:
            rank_result = self._update_scenario_best(run.scenario_name, run.score, scenario, evaluator)
            if self.track_difficulty and run.difficulty:
                self._update_difficulty_best(run.difficulty, rank_result)
        self.runs.append(run)
        self._run_keys.add(run.key())

    def _update_scenario_best(
        self,
        scenario_name: str,
        score: float,
        scenario: ScenarioMetadata,
        evaluator: RankCalculator,
    ) -> RankResult:
        current = self.best_ranks.get(scenario_name)
        # Ties keep the earlier record.
        if current is not None and not score > current.best_score:
            return current.rank_result
        rank_result = evaluator.calculate_rank(score, scenario)
        self.best_ranks[scenario_name] = SessionRankRecord(
            scenario_name=scenario_name,
            best_score=score,
            rank_result=rank_result,
        )
        return rank_result

    def _update_difficulty_best(self, difficulty: str, rank_result: RankResult) -> None:
        current = self.best_per_difficulty.get(difficulty)
        if current is None or rank_result.beats(current):
            self.best_per_difficulty[difficulty] = rank_result

    def best_rank_pairs(self) -> list[list[Any]]:
        return [[name, record.to_dict()] for name, record in self.best_ranks.items()]

    def difficulty_pairs(self) -> list[list[Any]]:
        return [[name, result.to_dict()] for name, result in self.best_per_difficulty.items()]

    def run_dicts(self) -> list[dict[str, Any]]:
        return [run.to_dict() for run in self.runs]

    def load(
        self,
        best_ranks: Iterable[Any],
        runs: Iterable[Any],
        best_per_difficulty: Iterable[Any] = (),
    ) -> None:
        self.clear()
        for name, payload in best_ranks:
            self.best_ranks[str(name)] = SessionRankRecord.from_dict(payload)
        if self.track_difficulty:
            for name, payload in best_per_difficulty:
                self.best_per_difficulty[str(name)] = RankResult.from_dict(payload)
        for payload in runs:
            run = RecordedRun.from_dict(payload)
            self.runs.append(run)
            self._run_keys.add(run.key())

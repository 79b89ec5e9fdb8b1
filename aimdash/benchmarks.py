from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .rank_evaluator import ScenarioMetadata


class BenchmarkCatalog:
    def __init__(self, difficulties: dict[str, list[ScenarioMetadata]] | None = None) -> None:
        self._difficulties: dict[str, list[ScenarioMetadata]] = dict(difficulties or {})
        self._by_name: dict[str, tuple[ScenarioMetadata, str]] = {}
        for difficulty, scenarios in self._difficulties.items():
            for scenario in scenarios:
                self._by_name.setdefault(scenario.name, (scenario, difficulty))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> BenchmarkCatalog:
        difficulties: dict[str, list[ScenarioMetadata]] = {}
        raw_difficulties = payload.get("difficulties")
        if not isinstance(raw_difficulties, dict):
            return cls()
        for difficulty, raw_scenarios in raw_difficulties.items():
            if not isinstance(raw_scenarios, list):
                continue
            scenarios: list[ScenarioMetadata] = []
            for item in raw_scenarios:
                if not isinstance(item, dict) or not item.get("name"):
                    continue
                thresholds = item.get("thresholds")
                scenarios.append(
                    ScenarioMetadata(
                        name=str(item["name"]),
                        thresholds={
                            str(rank): float(value)
                            for rank, value in (thresholds.items() if isinstance(thresholds, dict) else [])
                        },
                        category=str(item["category"]) if item.get("category") else None,
                    )
                )
            difficulties[str(difficulty)] = scenarios
        return cls(difficulties)

    @classmethod
    def load(cls, path: Path) -> BenchmarkCatalog:
        if not path.exists():
            return cls()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            print(f"[aim-dash] Could not read benchmarks file {path}: {exc}")
            return cls()
        if not isinstance(payload, dict):
            return cls()
        return cls.from_payload(payload)

    def difficulties(self) -> list[str]:
        return list(self._difficulties)

    def get_scenarios(self, difficulty: str) -> list[ScenarioMetadata]:
        return list(self._difficulties.get(difficulty, []))

    def find(self, scenario_name: str) -> tuple[ScenarioMetadata, str] | None:
        return self._by_name.get(scenario_name)

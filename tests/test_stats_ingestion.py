from __future__ import annotations

import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from aimdash.benchmarks import BenchmarkCatalog
from aimdash.database import Database
from aimdash.rank_evaluator import RankEvaluator
from aimdash.session_tracker import SessionTracker
from aimdash.stats_parser import parse_completion_time, parse_stats_csv
from aimdash.stats_watcher import STATE_LAST_SCAN_FILES, StatsWatcher

STATS_TEMPLATE = """Kill #,Timestamp,Bot,Weapon,TTK,Shots,Hits
1,11:07:01.123,Target,Gun,0.512s,1,1
2,11:07:02.004,Target,Gun,0.431s,1,1

Weapon,Shots,Hits,Damage Done,Damage Possible
Gun,40,31,3100.0,4000.0

Kills:,31
Deaths:,0
Score:,{score}
Scenario:,{scenario}
Hash:,9d2f0c
Game Version:,3.4.1.2024-05-10-12-00-00-a
"""

BENCHMARKS = {
    "difficulties": {
        "Medium": [
            {
                "name": "Pasu Voltaic",
                "category": "Clicking",
                "thresholds": {"Bronze": 100, "Silver": 200, "Gold": 400},
            }
        ],
        "Easy": [
            {"name": "Tile Frenzy", "thresholds": {"Bronze": 50, "Silver": 80}},
            {"name": "broken entry"},
            "not a scenario",
        ],
    }
}


def stats_content(scenario: str, score: str) -> str:
    return STATS_TEMPLATE.format(scenario=scenario, score=score)


class TestStatsParser(unittest.TestCase):
    def test_parse_footer_values(self) -> None:
        name = "Pasu Voltaic - Challenge - 2026.01.06-11.07.58 Stats.csv"
        parsed = parse_stats_csv(stats_content("Pasu Voltaic", "742.5"), file_name=name)
        self.assertIsNotNone(parsed)
        self.assertEqual(parsed.scenario_name, "Pasu Voltaic")
        self.assertEqual(parsed.score, 742.5)
        self.assertEqual(parsed.file_name, name)
        self.assertEqual(parsed.completed_at, datetime(2026, 1, 6, 11, 7, 58).astimezone())

    def test_missing_score_is_rejected(self) -> None:
        content = "Kills:,31\nScenario:,Pasu Voltaic\n"
        self.assertIsNone(parse_stats_csv(content))

    def test_non_numeric_and_non_finite_scores_are_rejected(self) -> None:
        self.assertIsNone(parse_stats_csv(stats_content("Pasu Voltaic", "abc")))
        self.assertIsNone(parse_stats_csv(stats_content("Pasu Voltaic", "inf")))

    def test_completion_time_needs_a_valid_stamp(self) -> None:
        self.assertIsNone(parse_completion_time("Pasu Voltaic.csv"))
        self.assertIsNone(parse_completion_time("X - 2026.13.40-25.00.00 Stats.csv"))


class TestBenchmarkCatalog(unittest.TestCase):
    def test_payload_lookup(self) -> None:
        catalog = BenchmarkCatalog.from_payload(BENCHMARKS)
        self.assertEqual(catalog.difficulties(), ["Medium", "Easy"])
        self.assertEqual([s.name for s in catalog.get_scenarios("Easy")], ["Tile Frenzy", "broken entry"])
        scenario, difficulty = catalog.find("Pasu Voltaic")
        self.assertEqual(difficulty, "Medium")
        self.assertEqual(scenario.category, "Clicking")
        self.assertEqual(scenario.thresholds["Gold"], 400.0)
        self.assertIsNone(catalog.find("Unknown"))

    def test_load_tolerates_missing_and_broken_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            missing = BenchmarkCatalog.load(Path(tmp) / "nope.json")
            self.assertEqual(missing.difficulties(), [])
            broken_path = Path(tmp) / "broken.json"
            broken_path.write_text("{oops", encoding="utf-8")
            self.assertEqual(BenchmarkCatalog.load(broken_path).difficulties(), [])


class TestStatsWatcher(unittest.TestCase):
    def setUp(self) -> None:
        self.tempdir = tempfile.TemporaryDirectory()
        root = Path(self.tempdir.name)
        self.stats_dir = root / "stats"
        self.stats_dir.mkdir()
        self.db = Database(root / "test.db")
        self.tracker = SessionTracker(
            self.db,
            RankEvaluator(),
            clock=lambda: datetime(2026, 1, 6, 12, 0, 0).astimezone().timestamp(),
            timer_factory=lambda delay, callback: _NullTimer(),
        )
        self.watcher = StatsWatcher(
            stats_dir=self.stats_dir,
            poll_seconds=0.01,
            db=self.db,
            tracker=self.tracker,
            catalog=BenchmarkCatalog.from_payload(BENCHMARKS),
        )

    def tearDown(self) -> None:
        self.tracker.close()
        self.db.close()
        self.tempdir.cleanup()

    def _write(self, name: str, content: str) -> None:
        (self.stats_dir / name).write_text(content, encoding="utf-8")

    def test_scan_ingests_new_files_in_completion_order(self) -> None:
        self._write("Tile Frenzy - Challenge - 2026.01.06-11.09.00 Stats.csv", stats_content("Tile Frenzy", "61"))
        self._write("Pasu Voltaic - Challenge - 2026.01.06-11.07.58 Stats.csv", stats_content("Pasu Voltaic", "250"))
        self._write("Broken - Challenge - 2026.01.06-11.08.00 Stats.csv", "Kills:,3\n")
        self._write("notes.txt", "ignored")

        self.assertEqual(self.watcher.scan_once(), 2)
        runs = self.tracker.get_all_session_runs()
        self.assertEqual([run.scenario_name for run in runs], ["Pasu Voltaic", "Tile Frenzy"])
        self.assertEqual([run.difficulty for run in runs], ["Medium", "Easy"])
        self.assertEqual(self.tracker.get_scenario_session_best("Pasu Voltaic").rank_result.current_rank, "Silver")
        self.assertEqual(self.tracker.get_difficulty_session_best("Easy").current_rank, "Bronze")
        self.assertEqual(self.db.get_state(STATE_LAST_SCAN_FILES), "2")
        self.assertEqual(self.db.recent_scores("Pasu Voltaic"), [250.0])

    def test_rescan_skips_known_files(self) -> None:
        self._write("Pasu Voltaic - Challenge - 2026.01.06-11.07.58 Stats.csv", stats_content("Pasu Voltaic", "250"))
        self.assertEqual(self.watcher.scan_once(), 1)
        self.assertEqual(self.watcher.scan_once(), 0)
        self._write("Pasu Voltaic - Challenge - 2026.01.06-11.10.02 Stats.csv", stats_content("Pasu Voltaic", "270"))
        self.assertEqual(self.watcher.scan_once(), 1)
        self.assertEqual(len(self.tracker.get_all_session_runs()), 2)
        self.assertEqual(self.db.recent_scores("Pasu Voltaic"), [270.0, 250.0])

    def test_unknown_scenario_is_logged_without_rank(self) -> None:
        self._write("Custom - Challenge - 2026.01.06-11.07.58 Stats.csv", stats_content("Custom", "10"))
        self.assertEqual(self.watcher.scan_once(), 1)
        self.assertEqual(len(self.tracker.get_all_session_runs()), 1)
        self.assertEqual(self.tracker.get_all_scenario_session_bests(), [])

    def test_missing_directory_is_a_no_op(self) -> None:
        self.watcher.stats_dir = self.stats_dir / "missing"
        self.assertEqual(self.watcher.scan_once(), 0)

    def test_thread_stops_on_request(self) -> None:
        self.watcher.start()
        self.watcher.stop()
        self.watcher.join(timeout=2.0)
        self.assertFalse(self.watcher.is_alive())


class _NullTimer:
    def start(self) -> None:
        pass

    def cancel(self) -> None:
        pass


if __name__ == "__main__":
    unittest.main()

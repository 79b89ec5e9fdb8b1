from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from aimdash.main import create_app

BENCHMARKS = {
    "difficulties": {
        "Medium": [
            {"name": "Pasu Voltaic", "thresholds": {"Bronze": 100, "Silver": 200, "Gold": 400}},
        ]
    }
}


class TestApi(unittest.TestCase):
    def setUp(self) -> None:
        self.tempdir = tempfile.TemporaryDirectory()
        root = Path(self.tempdir.name)
        benchmarks_path = root / "benchmarks.json"
        benchmarks_path.write_text(json.dumps(BENCHMARKS), encoding="utf-8")
        app = create_app(
            db_path=root / "test.db",
            stats_dir=root / "stats",
            benchmarks_path=benchmarks_path,
            watcher_enabled=False,
        )
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        self.tempdir.cleanup()

    def _post_runs(self, *runs: dict[str, object]) -> dict:
        response = self.client.post("/api/runs", json={"runs": list(runs)})
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_health(self) -> None:
        body = self.client.get("/api/health").json()
        self.assertTrue(body["ok"])
        self.assertFalse(body["watcher_running"])
        self.assertFalse(body["stats_dir_exists"])
        self.assertEqual(body["difficulties"], ["Medium"])

    def test_register_runs_updates_session(self) -> None:
        body = self._post_runs(
            {"scenario_name": "Pasu Voltaic", "score": 150, "timestamp": "2026-01-06T11:00:00Z"},
            {"scenario_name": "Pasu Voltaic", "score": 250, "timestamp": "2026-01-06T11:03:00Z"},
            {"scenario_name": "Custom", "score": 5, "timestamp": "2026-01-06T11:04:00Z"},
        )
        self.assertTrue(body["ok"])
        session = body["session"]
        self.assertEqual(session["run_count"], 3)
        self.assertEqual(session["session_start"], "2026-01-06T11:00:00+00:00")
        self.assertEqual(len(session["bests"]), 1)
        self.assertEqual(session["bests"][0]["bestScore"], 250)
        self.assertEqual(session["bests"][0]["rankResult"]["currentRank"], "Silver")
        self.assertEqual(session["difficulty_bests"]["Medium"]["rankLevel"], 1)

        again = self._post_runs({"scenario_name": "Pasu Voltaic", "score": 250, "timestamp": "2026-01-06T11:03:00Z"})
        self.assertEqual(again["session"]["run_count"], 3)

    def test_scale_view_uses_recorded_history(self) -> None:
        self._post_runs(
            {"scenario_name": "Pasu Voltaic", "score": 150, "timestamp": "2026-01-06T11:00:00Z"},
            {"scenario_name": "Pasu Voltaic", "score": 250, "timestamp": "2026-01-06T11:03:00Z"},
        )
        body = self.client.get("/api/scale/Pasu%20Voltaic", params={"width": 100, "mode": "aligned"}).json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["bounds"], {"minRU": 0.0, "maxRU": 2.0})
        self.assertEqual(sorted(dot["x"] for dot in body["dots"]), [25, 63])
        self.assertEqual([label["rank"] for label in body["labels"]], ["Bronze", "Silver", "Gold"])

        empty = self.client.get("/api/scale/Nothing").json()
        self.assertIsNone(empty["bounds"])

    def test_ranked_flow(self) -> None:
        response = self.client.post("/api/ranked/start", json={"start_time": "2026-01-06T10:59:00Z"})
        self.assertTrue(response.json()["session"]["ranked"]["active"])
        playlist = self.client.post("/api/ranked/playlist", json={"names": ["Pasu Voltaic"]}).json()
        self.assertEqual(playlist["playlist"], ["Pasu Voltaic"])

        body = self._post_runs(
            {"scenario_name": "Pasu Voltaic", "score": 150, "timestamp": "2026-01-06T11:00:00Z"},
            {"scenario_name": "Custom", "score": 5, "timestamp": "2026-01-06T11:01:00Z"},
        )
        ranked = body["session"]["ranked"]
        self.assertEqual(ranked["run_count"], 1)
        self.assertEqual(ranked["bests"][0]["scenarioName"], "Pasu Voltaic")

        reset = self.client.post("/api/session/reset", params={"clear_ranked": "false"}).json()
        self.assertEqual(reset["session"]["run_count"], 0)
        self.assertEqual(reset["session"]["ranked"]["run_count"], 1)

        stopped = self.client.post("/api/ranked/stop").json()["session"]["ranked"]
        self.assertFalse(stopped["active"])
        self.assertIsNone(stopped["playlist"])
        self.assertEqual(stopped["run_count"], 1)

    def test_session_timeout_setting(self) -> None:
        body = self.client.post("/api/settings/session-timeout", json={"minutes": 15}).json()
        self.assertEqual(body, {"ok": True, "session_timeout_minutes": 15})
        self.assertEqual(self.client.get("/api/session").json()["session"]["timeout_minutes"], 15)

        rejected = self.client.post("/api/settings/session-timeout", json={"minutes": 0}).json()
        self.assertFalse(rejected["ok"])

        settings = self.client.get("/api/settings").json()["settings"]
        self.assertEqual(settings, {"session_timeout_minutes": 15, "ranked_interval_minutes": 60})


if __name__ == "__main__":
    unittest.main()

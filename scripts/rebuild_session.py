from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aimdash.benchmarks import BenchmarkCatalog
from aimdash.database import Database
from aimdash.rank_evaluator import RankEvaluator
from aimdash.session_tracker import STATE_SESSION, RunEvent, SessionTracker
from config import BENCHMARKS_PATH, DB_PATH, SESSION_TIMEOUT_MINUTES


def main() -> None:
    db = Database(DB_PATH)
    tracker: SessionTracker | None = None
    try:
        db.delete_state(STATE_SESSION)
        catalog = BenchmarkCatalog.load(BENCHMARKS_PATH)
        tracker = SessionTracker(db, RankEvaluator(), timeout_minutes=SESSION_TIMEOUT_MINUTES)
        rows = db.query_all(
            """
            SELECT scenario_name, score, difficulty, completed_at_ms
            FROM run_history
            ORDER BY completed_at_ms ASC, id ASC
            """
        )
        events: list[RunEvent] = []
        for row in rows:
            match = catalog.find(str(row["scenario_name"]))
            events.append(
                RunEvent(
                    scenario_name=str(row["scenario_name"]),
                    score=float(row["score"]),
                    timestamp=datetime.fromtimestamp(int(row["completed_at_ms"]) / 1000, tz=UTC),
                    scenario=match[0] if match is not None else None,
                    difficulty=row["difficulty"] or (match[1] if match is not None else None),
                )
            )
        tracker.register_multiple_runs(events)

        print(f"Replayed runs: {len(events)}")
        print(f"Current session: {tracker.session_id or '-'}")
        print(f"Runs in current session: {len(tracker.get_all_session_runs())}")
    finally:
        if tracker is not None:
            tracker.close()
        db.close()


if __name__ == "__main__":
    main()

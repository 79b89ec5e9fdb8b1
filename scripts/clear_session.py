from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from aimdash.database import Database
from aimdash.session_settings import STATE_SESSION_SETTINGS
from aimdash.session_tracker import STATE_SESSION
from config import DB_PATH


def main() -> int:
    parser = argparse.ArgumentParser(description="Drop the persisted session snapshot.")
    parser.add_argument("--history", action="store_true", help="Also delete ingested run history.")
    parser.add_argument("--settings", action="store_true", help="Also reset session settings.")
    args = parser.parse_args()

    db = Database(DB_PATH)
    try:
        db.delete_state(STATE_SESSION)
        cleared = [STATE_SESSION]
        if args.settings:
            db.delete_state(STATE_SESSION_SETTINGS)
            cleared.append(STATE_SESSION_SETTINGS)
        deleted_runs = 0
        if args.history:
            row = db.query_one("SELECT COUNT(*) AS n FROM run_history")
            deleted_runs = int(row["n"]) if row is not None else 0
            db.execute("DELETE FROM run_history")

        print(f"DB: {DB_PATH}")
        print(f"Cleared state keys: {', '.join(cleared)}")
        if args.history:
            print(f"Deleted run history rows: {deleted_runs}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())

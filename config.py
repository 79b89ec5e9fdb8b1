from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
DATA_DIR = PROJECT_ROOT / "data"

DB_PATH = Path(os.getenv("AIM_DASH_DB_PATH", str(DATA_DIR / "aim_dash.db")))

STATS_DIR = Path(
    os.getenv(
        "AIM_DASH_STATS_DIR",
        str(DATA_DIR / "stats"),
    )
)
BENCHMARKS_PATH = Path(
    os.getenv(
        "AIM_DASH_BENCHMARKS_PATH",
        str(DATA_DIR / "benchmarks.json"),
    )
)

WATCHER_ENABLED = os.getenv("AIM_DASH_WATCHER_ENABLED", "1").strip().lower() not in {"0", "false", "no", "off"}
POLL_SECONDS = float(os.getenv("AIM_DASH_POLL_SECONDS", "1.0"))
SESSION_TIMEOUT_MINUTES = float(os.getenv("AIM_DASH_SESSION_TIMEOUT_MINUTES", "10"))
DEFAULT_RANK_INTERVAL = float(os.getenv("AIM_DASH_DEFAULT_RANK_INTERVAL", "100"))

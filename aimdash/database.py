from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable


class Database:
    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_schema()

    def _init_schema(self) -> None:
        schema = """
        PRAGMA journal_mode = WAL;
        PRAGMA synchronous = NORMAL;

        CREATE TABLE IF NOT EXISTS kv_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS run_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            file_name TEXT NOT NULL UNIQUE,
            scenario_name TEXT NOT NULL,
            score REAL NOT NULL,
            difficulty TEXT,
            completed_at_ms INTEGER NOT NULL,
            ingested_at_utc TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_run_history_scenario_completed
            ON run_history (scenario_name, completed_at_ms);
        """
        with self._lock:
            self._conn.executescript(schema)
            self._conn.commit()

    def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        with self._lock:
            cur = self._conn.execute(sql, tuple(params))
            self._conn.commit()
            return int(cur.lastrowid or 0)

    def query_all(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(sql, tuple(params))
            return list(cur.fetchall())

    def query_one(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(sql, tuple(params))
            return cur.fetchone()

    def get_state(self, key: str, default: str | None = None) -> str | None:
        row = self.query_one("SELECT value FROM kv_state WHERE key = ?", (key,))
        if row is None:
            return default
        return str(row["value"])

    def set_state(self, key: str, value: str) -> None:
        self.execute(
            """
            INSERT INTO kv_state (key, value)
            VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )

    def delete_state(self, key: str) -> None:
        self.execute("DELETE FROM kv_state WHERE key = ?", (key,))

    def has_run_file(self, file_name: str) -> bool:
        row = self.query_one("SELECT 1 FROM run_history WHERE file_name = ?", (file_name,))
        return row is not None

    def record_run(
        self,
        file_name: str,
        scenario_name: str,
        score: float,
        difficulty: str | None,
        completed_at_ms: int,
        ingested_at_utc: str,
    ) -> int:
        return self.execute(
            """
            INSERT OR IGNORE INTO run_history (
                file_name,
                scenario_name,
                score,
                difficulty,
                completed_at_ms,
                ingested_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (file_name, scenario_name, score, difficulty, completed_at_ms, ingested_at_utc),
        )

    def recent_scores(self, scenario_name: str, limit: int = 500) -> list[float]:
        rows = self.query_all(
            """
            SELECT score
            FROM run_history
            WHERE scenario_name = ?
            ORDER BY completed_at_ms DESC, id DESC
            LIMIT ?
            """,
            (scenario_name, limit),
        )
        return [float(row["score"]) for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

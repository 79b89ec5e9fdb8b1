from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path

from .benchmarks import BenchmarkCatalog
from .database import Database
from .session_tracker import RunEvent, SessionTracker, to_epoch_ms
from .stats_parser import ParsedStatsFile, parse_stats_csv

STATE_LAST_HEARTBEAT = "stats_reader.last_heartbeat_utc"
STATE_LAST_SCAN_FILES = "stats_reader.last_scan_new_files"


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


class StatsWatcher(threading.Thread):
    def __init__(
        self,
        stats_dir: Path,
        poll_seconds: float,
        db: Database,
        tracker: SessionTracker,
        catalog: BenchmarkCatalog,
    ) -> None:
        super().__init__(daemon=True, name="aim-dash-stats-watcher")
        self.stats_dir = stats_dir
        self.poll_seconds = poll_seconds
        self.db = db
        self.tracker = tracker
        self.catalog = catalog
        self.stop_event = threading.Event()
        self._unreadable: set[str] = set()

    def stop(self) -> None:
        self.stop_event.set()

    def run(self) -> None:
        while not self.stop_event.is_set():
            self.scan_once()
            self.db.set_state(STATE_LAST_HEARTBEAT, utc_now())
            self.stop_event.wait(self.poll_seconds)

    def scan_once(self) -> int:
        if not self.stats_dir.is_dir():
            return 0

        parsed_files: list[ParsedStatsFile] = []
        for path in sorted(self.stats_dir.glob("*.csv")):
            if self.db.has_run_file(path.name):
                continue
            parsed = self._read_stats_file(path)
            if parsed is None:
                continue
            parsed_files.append(parsed)

        if not parsed_files:
            return 0

        # The tracker decides session boundaries in input order.
        parsed_files.sort(key=lambda item: (item.completed_at or datetime.fromtimestamp(0, tz=UTC), item.file_name))
        events: list[RunEvent] = []
        ingested_at = utc_now()
        for parsed in parsed_files:
            completed_at = parsed.completed_at or datetime.now(UTC)
            match = self.catalog.find(parsed.scenario_name)
            scenario, difficulty = match if match is not None else (None, None)
            self.db.record_run(
                file_name=parsed.file_name,
                scenario_name=parsed.scenario_name,
                score=parsed.score,
                difficulty=difficulty,
                completed_at_ms=to_epoch_ms(completed_at),
                ingested_at_utc=ingested_at,
            )
            events.append(
                RunEvent(
                    scenario_name=parsed.scenario_name,
                    score=parsed.score,
                    timestamp=completed_at,
                    scenario=scenario,
                    difficulty=difficulty,
                )
            )

        self.tracker.register_multiple_runs(events)
        self.db.set_state(STATE_LAST_SCAN_FILES, str(len(events)))
        return len(events)

    def _read_stats_file(self, path: Path) -> ParsedStatsFile | None:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            print(f"[aim-dash] Could not read stats file {path.name}: {exc}")
            return None
        parsed = parse_stats_csv(content, file_name=path.name)
        if parsed is None and path.name not in self._unreadable:
            self._unreadable.add(path.name)
            print(f"[aim-dash] Skipping stats file without scenario/score: {path.name}")
        return parsed

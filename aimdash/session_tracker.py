from __future__ import annotations

import json
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, Protocol

from config import SESSION_TIMEOUT_MINUTES
from .database import Database
from .rank_evaluator import RankCalculator, RankResult, ScenarioMetadata
from .session_settings import SessionSettings, SessionSettingsStore
from .session_window import RecordedRun, SessionRankRecord, SessionWindow, floor_to_second

STATE_SESSION = "session_state"
MS_PER_MINUTE = 60 * 1000

SessionListener = Callable[[list[str] | None], None]


class ExpiryTimer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], ExpiryTimer]


def _daemon_timer(delay_seconds: float, callback: Callable[[], None]) -> ExpiryTimer:
    timer = threading.Timer(delay_seconds, callback)
    timer.daemon = True
    return timer


def to_epoch_ms(timestamp: datetime) -> int:
    return int(round(timestamp.timestamp() * 1000))


def from_epoch_ms(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


@dataclass(slots=True)
class RunEvent:
    scenario_name: str
    score: float
    timestamp: datetime
    scenario: ScenarioMetadata | None = None
    difficulty: str | None = None


class SessionTracker:
    def __init__(
        self,
        db: Database,
        rank_evaluator: RankCalculator,
        settings: SessionSettingsStore | None = None,
        timeout_minutes: float = SESSION_TIMEOUT_MINUTES,
        clock: Callable[[], float] = time.time,
        timer_factory: TimerFactory = _daemon_timer,
    ) -> None:
        self.db = db
        self.rank_evaluator = rank_evaluator
        self._clock = clock
        self._timer_factory = timer_factory
        self._timeout_ms = int(timeout_minutes * MS_PER_MINUTE)
        self._lock = threading.RLock()
        self._listeners: list[SessionListener] = []
        self._timer: ExpiryTimer | None = None
        self._timer_generation = 0

        self._session = SessionWindow(track_difficulty=True)
        self._ranked = SessionWindow(track_difficulty=False)
        self._session_id: str | None = None
        self._session_start_ms: int | None = None
        self._last_run_ms: int | None = None
        self._ranked_start_ms: int | None = None
        self._ranked_playlist: list[str] | None = None

        self._load_state()
        self._unsubscribe_settings: Callable[[], None] | None = None
        if settings is not None:
            self._unsubscribe_settings = settings.subscribe(self._apply_settings)
        else:
            self._schedule_expiry_check()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def session_start_timestamp(self) -> datetime | None:
        return from_epoch_ms(self._session_start_ms) if self._session_start_ms is not None else None

    @property
    def last_run_timestamp(self) -> datetime | None:
        return from_epoch_ms(self._last_run_ms) if self._last_run_ms is not None else None

    @property
    def ranked_start_timestamp(self) -> datetime | None:
        return from_epoch_ms(self._ranked_start_ms) if self._ranked_start_ms is not None else None

    @property
    def session_timeout_minutes(self) -> float:
        return self._timeout_ms / MS_PER_MINUTE

    @property
    def is_ranked_active(self) -> bool:
        return self._ranked_start_ms is not None

    def is_session_active(self, now: datetime | None = None) -> bool:
        with self._lock:
            if self._last_run_ms is None:
                return False
            now_ms = to_epoch_ms(now) if now is not None else int(self._clock() * 1000)
            return now_ms - self._last_run_ms <= self._timeout_ms

    def get_scenario_session_best(self, scenario_name: str) -> SessionRankRecord | None:
        return self._session.best_ranks.get(scenario_name)

    def get_difficulty_session_best(self, difficulty: str) -> RankResult | None:
        return self._session.best_per_difficulty.get(difficulty)

    def get_all_scenario_session_bests(self) -> list[SessionRankRecord]:
        return list(self._session.best_ranks.values())

    def get_all_difficulty_session_bests(self) -> dict[str, RankResult]:
        return dict(self._session.best_per_difficulty)

    def get_all_session_runs(self) -> list[RecordedRun]:
        return list(self._session.runs)

    def get_ranked_scenario_best(self, scenario_name: str) -> SessionRankRecord | None:
        return self._ranked.best_ranks.get(scenario_name)

    def get_all_ranked_scenario_bests(self) -> list[SessionRankRecord]:
        return list(self._ranked.best_ranks.values())

    def get_all_ranked_session_runs(self) -> list[RecordedRun]:
        return list(self._ranked.runs)

    def get_ranked_playlist(self) -> list[str] | None:
        return list(self._ranked_playlist) if self._ranked_playlist is not None else None

    def on_session_updated(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def register_run(
        self,
        scenario_name: str,
        score: float,
        scenario: ScenarioMetadata | None = None,
        difficulty: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        event = RunEvent(
            scenario_name=scenario_name,
            score=score,
            timestamp=timestamp if timestamp is not None else self._now(),
            scenario=scenario,
            difficulty=difficulty,
        )
        self.register_multiple_runs([event])

    def register_multiple_runs(self, events: Iterable[RunEvent]) -> None:
        touched: list[str] = []
        with self._lock:
            for event in events:
                run = RecordedRun(
                    scenario_name=event.scenario_name,
                    score=float(event.score),
                    difficulty=event.difficulty,
                    timestamp_ms=to_epoch_ms(event.timestamp),
                )
                if self._is_duplicate(run):
                    continue
                self._expire_if_idle(run.timestamp_ms)
                if self._session_id is None:
                    self._session_id = f"session_{run.timestamp_ms}"
                    self._session_start_ms = run.timestamp_ms
                self._last_run_ms = run.timestamp_ms
                self._session.record(run, event.scenario, self.rank_evaluator)
                if self._accepts_ranked(run):
                    self._ranked.record(run, event.scenario, self.rank_evaluator)
                if run.scenario_name not in touched:
                    touched.append(run.scenario_name)

            if not touched:
                return
            self._save_state()
            self._schedule_expiry_check()
        self._notify(touched)

    def reset_session(self, clear_ranked: bool = True) -> None:
        with self._lock:
            self._reset_casual()
            if clear_ranked:
                self._ranked.clear()
                self._ranked_start_ms = None
                self._ranked_playlist = None
            self._cancel_timer()
            self._save_state()
        self._notify(None)

    def start_ranked_session(self, start_time: datetime | None = None) -> None:
        start = start_time if start_time is not None else self._now()
        with self._lock:
            self._ranked.clear()
            # Stats files only carry whole seconds.
            self._ranked_start_ms = floor_to_second(to_epoch_ms(start))
            self._save_state()
        self._notify(None)

    def stop_ranked_session(self) -> None:
        with self._lock:
            self._ranked_start_ms = None
            self._ranked_playlist = None
            self._save_state()
        self._notify(None)

    def set_ranked_playlist(self, names: Iterable[str] | None) -> None:
        with self._lock:
            self._ranked_playlist = list(dict.fromkeys(names)) if names is not None else None
            self._save_state()
        self._notify(None)

    def set_session_timeout_minutes(self, minutes: float) -> None:
        with self._lock:
            self._timeout_ms = int(minutes * MS_PER_MINUTE)
            self._schedule_expiry_check()
        self._notify(None)

    def close(self) -> None:
        with self._lock:
            self._cancel_timer()
            if self._unsubscribe_settings is not None:
                self._unsubscribe_settings()
                self._unsubscribe_settings = None

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=UTC)

    def _apply_settings(self, settings: SessionSettings) -> None:
        self.set_session_timeout_minutes(settings.session_timeout_minutes)

    def _is_duplicate(self, run: RecordedRun) -> bool:
        if self._session.contains(run):
            return True
        return self._ranked_start_ms is not None and self._ranked.contains(run)

    def _accepts_ranked(self, run: RecordedRun) -> bool:
        if self._ranked_start_ms is None or self._ranked_start_ms > run.timestamp_ms:
            return False
        return self._ranked_playlist is None or run.scenario_name in self._ranked_playlist

    def _expire_if_idle(self, timestamp_ms: int) -> None:
        if self._last_run_ms is None:
            return
        if timestamp_ms - self._last_run_ms <= self._timeout_ms:
            return
        keep_ranked = self._ranked_start_ms is not None and self._ranked_start_ms <= timestamp_ms
        self._reset_casual()
        if not keep_ranked:
            self._ranked.clear()

    def _reset_casual(self) -> None:
        self._session.clear()
        self._session_id = None
        self._session_start_ms = None
        self._last_run_ms = None

    def _schedule_expiry_check(self) -> None:
        self._cancel_timer()
        if self._last_run_ms is None:
            return
        delay = (self._last_run_ms + self._timeout_ms) / 1000 - self._clock()
        if delay <= 0:
            return
        generation = self._timer_generation
        timer = self._timer_factory(delay, lambda: self._on_expiry_timer(generation))
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        # A callback already running cannot be cancelled; the bump makes it stale.
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_expiry_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation:
                return
            self._timer = None
        self._notify(None)

    def _notify(self, touched: list[str] | None) -> None:
        for listener in list(self._listeners):
            listener(touched)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "sessionId": self._session_id,
                "sessionStartTimestamp": self._session_start_ms,
                "lastRunTimestamp": self._last_run_ms,
                "isRanked": self._ranked_start_ms is not None,
                "bestRanks": self._session.best_rank_pairs(),
                "bestPerDifficulty": self._session.difficulty_pairs(),
                "allRuns": self._session.run_dicts(),
                "rankedStartTime": self._ranked_start_ms,
                "rankedBestRanks": self._ranked.best_rank_pairs(),
                "rankedAllRuns": self._ranked.run_dicts(),
                "rankedPlaylist": self.get_ranked_playlist(),
            }

    def _save_state(self) -> None:
        try:
            self.db.set_state(STATE_SESSION, json.dumps(self.snapshot()))
        except sqlite3.Error as exc:
            print(f"[aim-dash] Failed to persist session state: {exc}")

    def _load_state(self) -> None:
        raw = self.db.get_state(STATE_SESSION)
        if not raw:
            return
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("session state is not an object")
            self._session.load(
                payload.get("bestRanks") or [],
                payload.get("allRuns") or [],
                payload.get("bestPerDifficulty") or [],
            )
            self._ranked.load(payload.get("rankedBestRanks") or [], payload.get("rankedAllRuns") or [])
            self._session_id = _optional_str(payload.get("sessionId"))
            self._session_start_ms = _optional_int(payload.get("sessionStartTimestamp"))
            self._last_run_ms = _optional_int(payload.get("lastRunTimestamp"))
            self._ranked_start_ms = _optional_int(payload.get("rankedStartTime"))
            playlist = payload.get("rankedPlaylist")
            self._ranked_playlist = [str(name) for name in playlist] if playlist is not None else None
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as exc:
            print(f"[aim-dash] Dropping unreadable session state: {exc}")
            self._session.clear()
            self._ranked.clear()
            self._reset_casual()
            self._ranked_start_ms = None
            self._ranked_playlist = None
            try:
                self.db.delete_state(STATE_SESSION)
            except sqlite3.Error as delete_exc:
                print(f"[aim-dash] Failed to remove session state: {delete_exc}")


def _optional_int(value: Any) -> int | None:
    return int(value) if value is not None else None


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None

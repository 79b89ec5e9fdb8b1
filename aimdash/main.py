from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import UTC, datetime
import math
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Query, Request
from pydantic import BaseModel

from config import (
    BENCHMARKS_PATH,
    DB_PATH,
    DEFAULT_RANK_INTERVAL,
    POLL_SECONDS,
    STATS_DIR,
    WATCHER_ENABLED,
)
from .benchmarks import BenchmarkCatalog
from .database import Database
from .rank_evaluator import RankEvaluator, ScenarioMetadata
from .scale_view import build_scale_view
from .session_settings import SessionSettingsStore
from .session_tracker import RunEvent, SessionTracker, to_epoch_ms
from .stats_watcher import STATE_LAST_HEARTBEAT, StatsWatcher


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


class RunPayload(BaseModel):
    scenario_name: str
    score: float
    timestamp: datetime | None = None
    difficulty: str | None = None


class RegisterRunsRequest(BaseModel):
    runs: list[RunPayload]


class RankedStartRequest(BaseModel):
    start_time: datetime | None = None


class RankedPlaylistRequest(BaseModel):
    names: list[str] | None = None


class SessionTimeoutRequest(BaseModel):
    minutes: float


def _iso(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value is not None else None


def _track_payload(window_bests: list[Any], runs: list[Any]) -> dict[str, Any]:
    return {
        "bests": [record.to_dict() for record in window_bests],
        "run_count": len(runs),
        "runs": [run.to_dict() for run in runs],
    }


def session_payload(tracker: SessionTracker) -> dict[str, Any]:
    return {
        "session_id": tracker.session_id,
        "session_start": _iso(tracker.session_start_timestamp),
        "last_run": _iso(tracker.last_run_timestamp),
        "active": tracker.is_session_active(),
        "timeout_minutes": tracker.session_timeout_minutes,
        "difficulty_bests": {
            tier: result.to_dict() for tier, result in tracker.get_all_difficulty_session_bests().items()
        },
        **_track_payload(tracker.get_all_scenario_session_bests(), tracker.get_all_session_runs()),
        "ranked": {
            "active": tracker.is_ranked_active,
            "start_time": _iso(tracker.ranked_start_timestamp),
            "playlist": tracker.get_ranked_playlist(),
            **_track_payload(tracker.get_all_ranked_scenario_bests(), tracker.get_all_ranked_session_runs()),
        },
    }


def create_app(
    db_path: Path = DB_PATH,
    stats_dir: Path = STATS_DIR,
    benchmarks_path: Path = BENCHMARKS_PATH,
    watcher_enabled: bool = WATCHER_ENABLED,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(db_path)
        catalog = BenchmarkCatalog.load(benchmarks_path)
        settings = SessionSettingsStore(db)
        tracker = SessionTracker(db, RankEvaluator(), settings=settings)
        watcher: StatsWatcher | None = None
        if watcher_enabled:
            watcher = StatsWatcher(
                stats_dir=stats_dir,
                poll_seconds=POLL_SECONDS,
                db=db,
                tracker=tracker,
                catalog=catalog,
            )
            watcher.start()

        app.state.db = db
        app.state.catalog = catalog
        app.state.settings = settings
        app.state.tracker = tracker
        app.state.watcher = watcher
        app.state.started_at = utc_now()
        try:
            yield
        finally:
            if watcher is not None:
                watcher.stop()
                watcher.join(timeout=2.0)
            tracker.close()
            db.close()

    app = FastAPI(title="Aim Dash", lifespan=lifespan)

    @app.get("/api/health")
    def health(request: Request) -> dict[str, object]:
        db: Database = request.app.state.db
        watcher: StatsWatcher | None = request.app.state.watcher
        return {
            "ok": True,
            "started_at": request.app.state.started_at,
            "now": utc_now(),
            "db_path": str(db_path),
            "stats_dir": str(stats_dir),
            "stats_dir_exists": stats_dir.is_dir(),
            "watcher_running": bool(watcher is not None and watcher.is_alive()),
            "last_heartbeat_utc": db.get_state(STATE_LAST_HEARTBEAT, ""),
            "difficulties": request.app.state.catalog.difficulties(),
        }

    @app.get("/api/session")
    def get_session(request: Request) -> dict[str, object]:
        tracker: SessionTracker = request.app.state.tracker
        return {"ok": True, "session": session_payload(tracker)}

    @app.post("/api/runs")
    def register_runs(request: Request, payload: RegisterRunsRequest) -> dict[str, object]:
        db: Database = request.app.state.db
        catalog: BenchmarkCatalog = request.app.state.catalog
        tracker: SessionTracker = request.app.state.tracker
        events: list[RunEvent] = []
        for run in payload.runs:
            if not math.isfinite(run.score):
                return {"ok": False, "error": f"Score for {run.scenario_name} is not a finite number."}
            timestamp = run.timestamp or datetime.now(UTC)
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=UTC)
            match = catalog.find(run.scenario_name)
            scenario, difficulty = match if match is not None else (None, None)
            events.append(
                RunEvent(
                    scenario_name=run.scenario_name,
                    score=run.score,
                    timestamp=timestamp,
                    scenario=scenario,
                    difficulty=run.difficulty or difficulty,
                )
            )
        for event in events:
            timestamp_ms = to_epoch_ms(event.timestamp)
            db.record_run(
                file_name=f"api:{event.scenario_name}:{timestamp_ms}:{event.score}",
                scenario_name=event.scenario_name,
                score=event.score,
                difficulty=event.difficulty,
                completed_at_ms=timestamp_ms,
                ingested_at_utc=utc_now(),
            )
        tracker.register_multiple_runs(events)
        return {"ok": True, "session": session_payload(tracker)}

    @app.post("/api/session/reset")
    def reset_session(
        request: Request,
        clear_ranked: bool = Query(default=True),
    ) -> dict[str, object]:
        tracker: SessionTracker = request.app.state.tracker
        tracker.reset_session(clear_ranked=clear_ranked)
        return {"ok": True, "session": session_payload(tracker)}

    @app.post("/api/ranked/start")
    def start_ranked(request: Request, payload: RankedStartRequest | None = None) -> dict[str, object]:
        tracker: SessionTracker = request.app.state.tracker
        start_time = payload.start_time if payload is not None else None
        if start_time is not None and start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=UTC)
        tracker.start_ranked_session(start_time)
        return {"ok": True, "session": session_payload(tracker)}

    @app.post("/api/ranked/stop")
    def stop_ranked(request: Request) -> dict[str, object]:
        tracker: SessionTracker = request.app.state.tracker
        tracker.stop_ranked_session()
        return {"ok": True, "session": session_payload(tracker)}

    @app.post("/api/ranked/playlist")
    def set_ranked_playlist(request: Request, payload: RankedPlaylistRequest) -> dict[str, object]:
        tracker: SessionTracker = request.app.state.tracker
        tracker.set_ranked_playlist(payload.names)
        return {"ok": True, "playlist": tracker.get_ranked_playlist()}

    @app.get("/api/settings")
    def get_settings(request: Request) -> dict[str, object]:
        settings: SessionSettingsStore = request.app.state.settings
        # ranked_interval_minutes is only consumed by the dashboard frontend.
        return {"ok": True, "settings": asdict(settings.get_settings())}

    @app.post("/api/settings/session-timeout")
    def set_session_timeout(request: Request, payload: SessionTimeoutRequest) -> dict[str, object]:
        settings: SessionSettingsStore = request.app.state.settings
        if not math.isfinite(payload.minutes) or payload.minutes <= 0:
            return {"ok": False, "error": "Session timeout must be a positive number of minutes."}
        updated = settings.update_setting("session_timeout_minutes", payload.minutes)
        return {"ok": True, "session_timeout_minutes": updated.session_timeout_minutes}

    @app.get("/api/scale/{scenario_name}")
    def scale_view(
        request: Request,
        scenario_name: str,
        width: float = Query(default=1000.0, gt=0),
        mode: str = Query(default="floating"),
        limit: int = Query(default=500, ge=1, le=5000),
    ) -> dict[str, object]:
        db: Database = request.app.state.db
        catalog: BenchmarkCatalog = request.app.state.catalog
        match = catalog.find(scenario_name)
        scenario = match[0] if match is not None else ScenarioMetadata(name=scenario_name)
        view = build_scale_view(
            scenario,
            db.recent_scores(scenario_name, limit=limit),
            width=width,
            scaling_mode=mode,
            average_rank_interval=DEFAULT_RANK_INTERVAL,
        )
        return {"ok": True, **view.to_dict()}

    return app


app = create_app()

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Callable

from config import SESSION_TIMEOUT_MINUTES
from .database import Database

STATE_SESSION_SETTINGS = "session_settings"

SettingsListener = Callable[["SessionSettings"], None]


@dataclass(slots=True)
class SessionSettings:
    session_timeout_minutes: float = SESSION_TIMEOUT_MINUTES
    ranked_interval_minutes: float = 60


class SessionSettingsStore:
    def __init__(self, db: Database) -> None:
        self.db = db
        self._settings = self._load()
        self._listeners: list[SettingsListener] = []

    def get_settings(self) -> SessionSettings:
        return replace(self._settings)

    def update_setting(self, key: str, value: Any) -> SessionSettings:
        known = {f.name for f in fields(SessionSettings)}
        if key not in known:
            raise KeyError(f"Unknown session setting: {key}")
        number = float(value)
        if number <= 0:
            raise ValueError(f"{key} must be positive")
        setattr(self._settings, key, number)
        self._save()
        for listener in list(self._listeners):
            listener(self.get_settings())
        return self.get_settings()

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self.get_settings())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _load(self) -> SessionSettings:
        raw = self.db.get_state(STATE_SESSION_SETTINGS)
        if not raw:
            return SessionSettings()
        try:
            payload = json.loads(raw)
            defaults = SessionSettings()
            return SessionSettings(
                session_timeout_minutes=float(
                    payload.get("session_timeout_minutes", defaults.session_timeout_minutes)
                ),
                ranked_interval_minutes=float(
                    payload.get("ranked_interval_minutes", defaults.ranked_interval_minutes)
                ),
            )
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
            print("[aim-dash] Stored session settings unreadable, using defaults.")
            self.db.delete_state(STATE_SESSION_SETTINGS)
            return SessionSettings()

    def _save(self) -> None:
        try:
            self.db.set_state(STATE_SESSION_SETTINGS, json.dumps(asdict(self._settings)))
        except sqlite3.Error as exc:
            print(f"[aim-dash] Failed to save session settings: {exc}")

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from loguru import logger

from .nback_core import Phase, TurnSnapshot, UserResponse
from .persistence import (
    clear_all_data,
    load_all_sessions,
    load_session_by_id,
    load_settings,
    open_db,
    save_session,
    save_settings,
)
from .results import SessionRecord, SessionSummary, export_history_csv, session_record_from_session
from .session import DualNBackSession
from .settings import UserSettings


class NBackService:
    """Command layer over one session and one history database.

    Every command takes the same lock, so concurrent callers can never observe
    a half-processed turn. Callers only ever get copies back.
    """

    def __init__(self, *, db_path: Path, session: DualNBackSession | None = None) -> None:
        self._lock = threading.Lock()
        self._conn = open_db(db_path, check_same_thread=False)
        self._session = session if session is not None else DualNBackSession()
        self._settings = load_settings(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def load_user_settings(self) -> UserSettings:
        with self._lock:
            return self._settings

    def save_user_settings(self, settings: UserSettings) -> None:
        with self._lock:
            save_settings(self._conn, settings)
            self._settings = settings

    def start_game(self) -> None:
        """Start a session with the current settings.

        Raises SequenceConfigError when N does not fit the session length.
        """

        with self._lock:
            self._session.start(self._settings)

    def submit_user_input(self, response: UserResponse) -> SessionRecord | None:
        """Score one turn; returns the saved record when this turn ends the session."""

        with self._lock:
            if self._session.process_response(response) is None:
                return None
            if self._session.phase is not Phase.FINISHED:
                return None
            record = session_record_from_session(self._session)
            try:
                save_session(self._conn, record)
            except sqlite3.Error:
                logger.exception(f"Failed to save game session {record.id}")
            return record

    def get_game_state(self) -> TurnSnapshot:
        with self._lock:
            return self._session.snapshot()

    def get_game_history(self) -> list[SessionSummary]:
        with self._lock:
            return load_all_sessions(self._conn)

    def get_session_details(self, session_id: str) -> SessionRecord | None:
        with self._lock:
            return load_session_by_id(self._conn, session_id)

    def export_history_as_csv(self) -> str:
        with self._lock:
            return export_history_csv(load_all_sessions(self._conn))

    def reset_all_data(self) -> None:
        with self._lock:
            clear_all_data(self._conn)
            self._settings = load_settings(self._conn)

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from loguru import logger

from .results import SessionRecord, SessionSummary
from .settings import UserSettings

SCHEMA_VERSION = 1

SETTINGS_KEY = "user_settings"

# Anything a single corrupt row can raise while being decoded.
_DECODE_ERRORS = (json.JSONDecodeError, KeyError, TypeError, ValueError, OverflowError)


def open_db(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS game_session (
                id TEXT PRIMARY KEY,
                created_at_utc TEXT NOT NULL,
                payload TEXT NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_game_session_created ON game_session(created_at_utc);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


def save_settings(conn: sqlite3.Connection, settings: UserSettings) -> None:
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO kv(key, value) VALUES (?, ?)",
            (SETTINGS_KEY, json.dumps(settings.to_dict())),
        )


def load_settings(conn: sqlite3.Connection) -> UserSettings:
    """Stored settings, or defaults when missing or unreadable."""

    row = conn.execute("SELECT value FROM kv WHERE key = ?", (SETTINGS_KEY,)).fetchone()
    if row is None:
        return UserSettings()
    try:
        return UserSettings.from_dict(json.loads(row[0]))
    except _DECODE_ERRORS as exc:
        logger.warning(f"Stored settings are unreadable, using defaults: {exc}")
        return UserSettings()


def save_session(conn: sqlite3.Connection, record: SessionRecord) -> None:
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO game_session(id, created_at_utc, payload) VALUES (?, ?, ?)",
            (record.id, record.timestamp.isoformat(), json.dumps(record.to_dict())),
        )


def load_all_sessions(conn: sqlite3.Connection) -> list[SessionSummary]:
    """Summaries of every readable session, newest first.

    A corrupt row is logged and skipped; it never aborts the rest of the read.
    """

    summaries: list[SessionSummary] = []
    for session_id, payload in conn.execute("SELECT id, payload FROM game_session"):
        try:
            record = SessionRecord.from_dict(json.loads(payload))
        except _DECODE_ERRORS as exc:
            logger.warning(f"Skipping session {session_id} due to deserialization error: {exc}")
            continue
        summaries.append(record.summary())
    summaries.sort(key=lambda s: s.timestamp, reverse=True)
    return summaries


def load_session_by_id(conn: sqlite3.Connection, session_id: str) -> SessionRecord | None:
    row = conn.execute("SELECT payload FROM game_session WHERE id = ?", (session_id,)).fetchone()
    if row is None:
        return None
    try:
        return SessionRecord.from_dict(json.loads(row[0]))
    except _DECODE_ERRORS as exc:
        logger.warning(f"Failed to deserialize session {session_id}: {exc}")
        return None


def clear_all_data(conn: sqlite3.Connection) -> None:
    with conn:
        conn.execute("DELETE FROM game_session")
        conn.execute("DELETE FROM kv WHERE key = ?", (SETTINGS_KEY,))

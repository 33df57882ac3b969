from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

from .nback_core import SeededRng, UserResponse, clamp01
from .persistence import save_session
from .results import SessionRecord, session_record_from_session
from .session import DualNBackSession
from .settings import UserSettings


def simulate_session(
    settings: UserSettings,
    *,
    seed: int,
    press_probability: float = 0.2,
    timestamp: datetime | None = None,
) -> SessionRecord:
    """Play one full session with a player who presses each key at random."""

    p = clamp01(press_probability)
    rng = SeededRng(seed)
    session = DualNBackSession(seed=rng.randint(1, 2**31 - 1))
    session.start(settings)
    while session.is_running:
        session.process_response(
            UserResponse(visual_match=rng.random() < p, audio_match=rng.random() < p)
        )
    return session_record_from_session(session, timestamp=timestamp)


def generate_fake_history(
    conn: sqlite3.Connection,
    count: int = 15,
    *,
    seed: int,
    now: datetime | None = None,
) -> list[SessionRecord]:
    """Save ``count`` simulated sessions, one day apart going back from ``now``."""

    if count < 0:
        raise ValueError("count must be >= 0")
    rng = SeededRng(seed)
    now = now if now is not None else datetime.now(timezone.utc)
    records: list[SessionRecord] = []
    for i in range(count):
        settings = UserSettings(
            n_level=rng.randint(2, 4),
            speed_ms=rng.randint(2000, 3000),
            session_length=rng.randint(20, 30),
        )
        record = simulate_session(
            settings,
            seed=rng.randint(1, 2**31 - 1),
            timestamp=now - timedelta(days=i),
        )
        save_session(conn, record)
        records.append(record)
    return records

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dual_nback.persistence import load_all_sessions, open_db
from dual_nback.settings import UserSettings
from dual_nback.simulation import generate_fake_history, simulate_session


@pytest.fixture
def conn(tmp_path: Path) -> Iterator[sqlite3.Connection]:
    c = open_db(tmp_path / "nback.db")
    yield c
    c.close()


def test_simulated_session_is_deterministic() -> None:
    settings = UserSettings(n_level=2, session_length=20)
    ts = datetime(2024, 2, 2, tzinfo=timezone.utc)
    a = simulate_session(settings, seed=10, timestamp=ts)
    b = simulate_session(settings, seed=10, timestamp=ts)
    assert a == b
    assert len(a.events) == 20
    assert a.visual_stats.total == 20
    assert a.audio_stats.total == 20


def test_press_probability_extremes() -> None:
    settings = UserSettings(n_level=2, session_length=20)
    never = simulate_session(settings, seed=3, press_probability=-1.0)
    assert never.visual_stats.true_positives == never.visual_stats.false_positives == 0

    always = simulate_session(settings, seed=3, press_probability=5.0)
    assert always.audio_stats.false_negatives == always.audio_stats.true_negatives == 0


def test_generate_fake_history(conn: sqlite3.Connection) -> None:
    now = datetime(2024, 10, 15, 18, 0, tzinfo=timezone.utc)
    records = generate_fake_history(conn, seed=99, now=now)
    assert len(records) == 15
    assert [r.timestamp for r in records] == [now - timedelta(days=i) for i in range(15)]
    for r in records:
        assert 2 <= r.settings.n_level <= 4
        assert 2000 <= r.settings.speed_ms <= 3000
        assert 20 <= r.settings.session_length <= 30
        assert len(r.events) == r.settings.session_length

    summaries = load_all_sessions(conn)
    assert [s.id for s in summaries] == [r.id for r in records]


def test_generate_fake_history_rejects_negative_count(conn: sqlite3.Connection) -> None:
    with pytest.raises(ValueError):
        generate_fake_history(conn, -1, seed=1)
    assert generate_fake_history(conn, 0, seed=1) == []

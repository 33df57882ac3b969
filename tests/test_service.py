from __future__ import annotations

import threading
from collections.abc import Iterator
from pathlib import Path

import pytest

from dual_nback.nback_core import Phase, UserResponse
from dual_nback.persistence import open_db
from dual_nback.results import CSV_COLUMNS, SessionRecord
from dual_nback.sequences import SequenceConfigError
from dual_nback.service import NBackService
from dual_nback.session import DualNBackSession
from dual_nback.settings import UserSettings


@pytest.fixture
def service(tmp_path: Path) -> Iterator[NBackService]:
    svc = NBackService(db_path=tmp_path / "nback.db", session=DualNBackSession(seed=31))
    yield svc
    svc.close()


def _play_to_end(service: NBackService) -> SessionRecord:
    record: SessionRecord | None = None
    while service.get_game_state().is_running:
        record = service.submit_user_input(UserResponse(visual_match=True, audio_match=False))
    assert record is not None
    return record


def test_settings_persist_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nback.db"
    first = NBackService(db_path=path)
    assert first.load_user_settings() == UserSettings()
    first.save_user_settings(UserSettings(n_level=3, speed_ms=2500, session_length=40))
    first.close()

    second = NBackService(db_path=path)
    try:
        assert second.load_user_settings() == UserSettings(n_level=3, speed_ms=2500, session_length=40)
    finally:
        second.close()


def test_submit_before_start_is_ignored(service: NBackService) -> None:
    assert service.submit_user_input(UserResponse(True, True)) is None
    assert service.get_game_state().phase is Phase.IDLE


def test_finished_session_is_saved_once(service: NBackService) -> None:
    service.save_user_settings(UserSettings(n_level=2, session_length=12))
    service.start_game()
    state = service.get_game_state()
    assert state.is_running
    assert state.session_length == 12

    record = _play_to_end(service)
    assert len(record.events) == 12
    assert service.get_game_state().phase is Phase.FINISHED
    assert service.submit_user_input(UserResponse()) is None

    history = service.get_game_history()
    assert [s.id for s in history] == [record.id]
    assert service.get_session_details(record.id) == record
    assert service.get_session_details("session_unknown") is None


def test_start_game_rejects_oversized_n(service: NBackService) -> None:
    service.save_user_settings(UserSettings(n_level=15, session_length=10))
    with pytest.raises(SequenceConfigError):
        service.start_game()
    assert service.get_game_state().phase is Phase.IDLE


def test_export_and_reset(service: NBackService) -> None:
    service.save_user_settings(UserSettings(n_level=1, session_length=10))
    service.start_game()
    _play_to_end(service)

    lines = service.export_history_as_csv().splitlines()
    assert lines[0] == ",".join(CSV_COLUMNS)
    assert len(lines) == 2

    service.reset_all_data()
    assert service.get_game_history() == []
    assert service.load_user_settings() == UserSettings()
    assert service.export_history_as_csv().splitlines() == [",".join(CSV_COLUMNS)]


def test_concurrent_submissions_process_each_turn_once(service: NBackService) -> None:
    service.save_user_settings(UserSettings(n_level=2, session_length=40))
    service.start_game()
    records: list[SessionRecord] = []

    def worker() -> None:
        for _ in range(20):
            result = service.submit_user_input(UserResponse(audio_match=True))
            if result is not None:
                records.append(result)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    state = service.get_game_state()
    assert state.phase is Phase.FINISHED
    assert state.current_turn_index == 40
    assert len(records) == 1
    assert [e.turn_index for e in records[0].events] == list(range(40))
    assert records[0].audio_stats.total == 40


def test_service_starts_with_unreadable_settings_row(tmp_path: Path) -> None:
    path = tmp_path / "nback.db"
    conn = open_db(path)
    with conn:
        conn.execute(
            "INSERT INTO kv(key, value) VALUES ('user_settings', ?)",
            ('{"n_level": Infinity, "speed_ms": 2000, "session_length": 30}',),
        )
    conn.close()

    svc = NBackService(db_path=path)
    try:
        assert svc.load_user_settings() == UserSettings()
    finally:
        svc.close()

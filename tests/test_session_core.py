from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import pytest

from dual_nback.nback_core import Phase, Stimulus, UserResponse
from dual_nback.sequences import SequenceConfigError
from dual_nback.session import DualNBackSession
from dual_nback.settings import UserSettings

NO = UserResponse(visual_match=False, audio_match=False)


@dataclass
class FixedComposer:
    audio: tuple[str, ...]
    visual: tuple[int, ...]
    calls: int = 0

    def compose(self, n: int, length: int, audio_alphabet: Sequence[str]) -> tuple[tuple[str, ...], tuple[int, ...]]:
        self.calls += 1
        return self.audio, self.visual


def _fixed_session(audio: str, visual: list[int], *, n: int) -> DualNBackSession:
    composer = FixedComposer(tuple(audio), tuple(visual))
    session = DualNBackSession(composer=composer, min_length=1)
    session.start(UserSettings(n_level=n, session_length=len(visual)))
    return session


def test_new_session_is_idle_and_inert() -> None:
    session = DualNBackSession(seed=1)
    assert session.phase is Phase.IDLE
    assert session.peek_next_stimulus() is None
    assert session.process_response(UserResponse(True, True)) is None
    assert session.current_turn_index == 0
    assert session.events() == ()


def test_always_no_strategy_on_two_back_example() -> None:
    session = _fixed_session("ABCBD", [1, 2, 1, 4, 1], n=2)
    for _ in range(5):
        session.process_response(NO)

    v = session.visual_stats
    a = session.audio_stats
    # Visual matches at turns 2 and 4, audio match at turn 3.
    assert (v.true_negatives, v.false_negatives, v.true_positives, v.false_positives) == (3, 2, 0, 0)
    assert (a.true_negatives, a.false_negatives, a.true_positives, a.false_positives) == (4, 1, 0, 0)
    assert session.phase is Phase.FINISHED


def test_mixed_responses_on_two_back_example() -> None:
    session = _fixed_session("ABCBD", [1, 2, 1, 4, 1], n=2)

    session.process_response(NO)
    session.process_response(NO)
    assert session.visual_stats.true_negatives == 2
    assert session.audio_stats.true_negatives == 2

    event = session.process_response(UserResponse(visual_match=True, audio_match=False))
    assert event is not None
    assert event.turn_index == 2
    assert event.is_visual_match is True
    assert event.is_audio_match is False
    assert session.visual_stats.true_positives == 1
    assert session.audio_stats.true_negatives == 3

    session.process_response(UserResponse(visual_match=False, audio_match=True))
    assert session.visual_stats.true_negatives == 3
    assert session.audio_stats.true_positives == 1

    session.process_response(NO)
    assert session.visual_stats.false_negatives == 1
    assert session.audio_stats.true_negatives == 4
    assert session.current_turn_index == 5


def test_three_back_matches() -> None:
    session = _fixed_session("ABCADC", [1, 2, 3, 4, 2, 6], n=3)
    for _ in range(3):
        session.process_response(NO)
    assert session.visual_stats.true_negatives == 3
    assert session.audio_stats.true_negatives == 3

    session.process_response(UserResponse(visual_match=False, audio_match=True))
    assert session.audio_stats.true_positives == 1
    assert session.visual_stats.true_negatives == 4

    session.process_response(UserResponse(visual_match=True, audio_match=False))
    assert session.visual_stats.true_positives == 1
    assert session.audio_stats.true_negatives == 4

    session.process_response(NO)
    assert session.audio_stats.false_negatives == 1
    assert session.visual_stats.true_negatives == 5


def test_turns_before_n_are_never_matches() -> None:
    # Identical stimuli everywhere: only the lag-N rule can make these "matches".
    session = _fixed_session("AAAAAA", [0, 0, 0, 0, 0, 0], n=3)
    for _ in range(3):
        event = session.process_response(UserResponse(visual_match=True, audio_match=True))
        assert event is not None
        assert event.is_visual_match is False
        assert event.is_audio_match is False
    for stats in (session.visual_stats, session.audio_stats):
        assert stats.false_positives == 3
        assert stats.true_positives == 0
        assert stats.false_negatives == 0


def test_counters_sum_to_processed_turns_and_events_track_index() -> None:
    session = DualNBackSession(seed=5)
    session.start(UserSettings(n_level=2, session_length=20))
    for k in range(1, 21):
        session.process_response(UserResponse(visual_match=k % 3 == 0, audio_match=k % 4 == 0))
        assert session.visual_stats.total == k
        assert session.audio_stats.total == k
        assert len(session.events()) == session.current_turn_index == k


def test_finishes_exactly_at_session_length() -> None:
    session = DualNBackSession(seed=8)
    session.start(UserSettings(n_level=2, session_length=12))
    for _ in range(11):
        session.process_response(NO)
        assert session.phase is Phase.RUNNING
    session.process_response(NO)
    assert session.phase is Phase.FINISHED
    assert session.current_turn_index == 12
    assert session.peek_next_stimulus() is None

    assert session.process_response(NO) is None
    assert session.current_turn_index == 12
    assert session.visual_stats.total == 12


def test_peek_is_pure_and_matches_event_stimulus() -> None:
    session = _fixed_session("ABCBD", [1, 2, 1, 4, 1], n=2)
    first = session.peek_next_stimulus()
    assert first == Stimulus(visual=1, audio="A")
    assert session.peek_next_stimulus() == first
    assert session.current_turn_index == 0

    event = session.process_response(NO)
    assert event is not None
    assert event.stimulus == first
    assert session.peek_next_stimulus() == Stimulus(visual=2, audio="B")


def test_snapshot_reports_upcoming_ground_truth() -> None:
    session = _fixed_session("ABCBD", [1, 2, 1, 4, 1], n=2)
    snap = session.snapshot()
    assert snap.is_running is True
    assert snap.n_level == 2
    assert snap.session_length == 5
    assert (snap.is_visual_match, snap.is_audio_match) == (False, False)
    assert snap.visual_hit_rate == 1.0
    assert snap.visual_false_alarm_rate == 0.0

    session.process_response(NO)
    session.process_response(NO)
    snap = session.snapshot()
    assert snap.current_turn_index == 2
    assert (snap.is_visual_match, snap.is_audio_match) == (True, False)

    session.process_response(NO)
    assert session.upcoming_match() == (False, True)


def test_start_clamps_session_length() -> None:
    session = DualNBackSession(seed=3)
    session.start(UserSettings(n_level=2, session_length=5))
    assert session.session_length == 10
    assert session.settings is not None and session.settings.session_length == 10

    session.start(UserSettings(n_level=2, session_length=500))
    assert session.session_length == 100


def test_start_rejects_n_not_below_clamped_length() -> None:
    session = DualNBackSession(seed=3)
    with pytest.raises(SequenceConfigError):
        session.start(UserSettings(n_level=12, session_length=5))
    assert session.phase is Phase.IDLE


def test_start_replaces_previous_session_state() -> None:
    composer = FixedComposer(tuple("ABCBD"), (1, 2, 1, 4, 1))
    session = DualNBackSession(composer=composer, min_length=1)
    settings = UserSettings(n_level=2, session_length=5)
    session.start(settings)
    for _ in range(5):
        session.process_response(UserResponse(True, True))
    assert session.phase is Phase.FINISHED

    session.start(settings)
    assert composer.calls == 2
    assert session.phase is Phase.RUNNING
    assert session.current_turn_index == 0
    assert session.events() == ()
    assert session.visual_stats.total == 0
    assert session.audio_stats.total == 0


def test_reset_returns_to_idle() -> None:
    session = _fixed_session("ABCBD", [1, 2, 1, 4, 1], n=2)
    session.process_response(NO)
    session.reset()
    assert session.phase is Phase.IDLE
    assert session.settings is None
    assert session.peek_next_stimulus() is None
    assert session.events() == ()


def test_composer_with_wrong_length_is_rejected() -> None:
    session = DualNBackSession(composer=FixedComposer(("A", "B"), (1, 2)), min_length=1)
    with pytest.raises(SequenceConfigError):
        session.start(UserSettings(n_level=1, session_length=5))
    assert session.phase is Phase.IDLE


def test_stats_accessors_return_copies() -> None:
    session = _fixed_session("ABCBD", [1, 2, 1, 4, 1], n=2)
    stats = session.visual_stats
    stats.record(claimed=True, actual=True)
    assert session.visual_stats.total == 0


def test_start_clamps_zero_and_negative_lengths_up_to_minimum() -> None:
    session = DualNBackSession(seed=4)
    session.start(UserSettings(n_level=2, session_length=0))
    assert session.session_length == 10
    assert session.phase is Phase.RUNNING

    session.start(UserSettings(n_level=2, session_length=-7))
    assert session.session_length == 10
    assert session.settings is not None and session.settings.session_length == 10

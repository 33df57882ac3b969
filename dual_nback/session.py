from __future__ import annotations

from loguru import logger

from .accuracy import AccuracyStats
from .nback_core import GameEvent, Phase, SeededRng, Stimulus, TurnSnapshot, UserResponse
from .sequences import DualSequenceComposer, SequenceComposer, SequenceConfigError
from .settings import MAX_SESSION_LENGTH, MIN_SESSION_LENGTH, UserSettings


class DualNBackSession:
    """Turn-scoring state machine: IDLE -> RUNNING -> FINISHED.

    - Both sequences are generated once in ``start`` and never mutated.
    - ``current_turn_index`` counts turns *processed*, so it always equals the
      length of the event history.
    - Calls that arrive in the wrong phase are ignored rather than raised, so a
      late key press from the UI cannot corrupt the session.
    """

    def __init__(
        self,
        *,
        composer: SequenceComposer | None = None,
        seed: int | None = None,
        min_length: int = MIN_SESSION_LENGTH,
        max_length: int = MAX_SESSION_LENGTH,
    ) -> None:
        if min_length < 1:
            raise ValueError("min_length must be >= 1")
        if max_length < min_length:
            raise ValueError("max_length must be >= min_length")

        self._composer: SequenceComposer = (
            composer if composer is not None else DualSequenceComposer(SeededRng(seed))
        )
        self._min_length = int(min_length)
        self._max_length = int(max_length)

        self._phase: Phase = Phase.IDLE
        self._settings: UserSettings | None = None
        self._audio_sequence: tuple[str, ...] = ()
        self._visual_sequence: tuple[int, ...] = ()
        self._index = 0
        self._events: list[GameEvent] = []
        self._visual_stats = AccuracyStats()
        self._audio_stats = AccuracyStats()

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_running(self) -> bool:
        return self._phase is Phase.RUNNING

    @property
    def settings(self) -> UserSettings | None:
        return self._settings

    @property
    def current_turn_index(self) -> int:
        return self._index

    @property
    def session_length(self) -> int:
        return len(self._visual_sequence)

    @property
    def visual_stats(self) -> AccuracyStats:
        return self._visual_stats.copy()

    @property
    def audio_stats(self) -> AccuracyStats:
        return self._audio_stats.copy()

    def events(self) -> tuple[GameEvent, ...]:
        return tuple(self._events)

    def start(self, settings: UserSettings) -> None:
        settings = settings.with_clamped_length(min_length=self._min_length, max_length=self._max_length)
        n = settings.n_level
        length = settings.session_length
        if n < 1 or n >= length:
            raise SequenceConfigError(f"n_level ({n}) must be in [1, session_length) with session_length={length}")

        audio, visual = self._composer.compose(n, length, settings.auditory_stimulus_set.symbols)
        if len(audio) != length or len(visual) != length:
            raise SequenceConfigError(
                f"composer returned sequences of length {len(audio)}/{len(visual)}, expected {length}"
            )

        self._settings = settings
        self._audio_sequence = tuple(audio)
        self._visual_sequence = tuple(visual)
        self._index = 0
        self._events = []
        self._visual_stats = AccuracyStats()
        self._audio_stats = AccuracyStats()
        self._phase = Phase.RUNNING
        logger.info(f"Session started: n={n} length={length} set={settings.auditory_stimulus_set.value}")

    def reset(self) -> None:
        self._phase = Phase.IDLE
        self._settings = None
        self._audio_sequence = ()
        self._visual_sequence = ()
        self._index = 0
        self._events = []
        self._visual_stats = AccuracyStats()
        self._audio_stats = AccuracyStats()

    def peek_next_stimulus(self) -> Stimulus | None:
        if self._phase is not Phase.RUNNING or self._index >= self.session_length:
            return None
        return self._stimulus_at(self._index)

    def upcoming_match(self) -> tuple[bool, bool]:
        """Ground truth (visual, audio) for the turn ``peek_next_stimulus`` shows."""

        if self.peek_next_stimulus() is None:
            return False, False
        return self._ground_truth(self._index)

    def process_response(self, response: UserResponse) -> GameEvent | None:
        if self._phase is not Phase.RUNNING:
            return None
        assert self._settings is not None

        index = self._index
        is_visual_match, is_audio_match = self._ground_truth(index)
        self._visual_stats.record(claimed=response.visual_match, actual=is_visual_match)
        self._audio_stats.record(claimed=response.audio_match, actual=is_audio_match)

        event = GameEvent(
            turn_index=index,
            stimulus=self._stimulus_at(index),
            is_visual_match=is_visual_match,
            is_audio_match=is_audio_match,
            user_response=response,
        )
        self._events.append(event)
        self._index += 1

        if self._index >= self.session_length:
            self._phase = Phase.FINISHED
            logger.info(
                f"Session finished: visual accuracy={self._visual_stats.composite_accuracy():.3f} "
                f"audio accuracy={self._audio_stats.composite_accuracy():.3f}"
            )
        return event

    def snapshot(self) -> TurnSnapshot:
        is_visual_match, is_audio_match = self.upcoming_match()
        settings = self._settings
        return TurnSnapshot(
            phase=self._phase,
            is_running=self.is_running,
            n_level=0 if settings is None else settings.n_level,
            session_length=self.session_length,
            current_turn_index=self._index,
            current_stimulus=self.peek_next_stimulus(),
            visual_hit_rate=self._visual_stats.hit_rate(),
            visual_false_alarm_rate=self._visual_stats.false_alarm_rate(),
            audio_hit_rate=self._audio_stats.hit_rate(),
            audio_false_alarm_rate=self._audio_stats.false_alarm_rate(),
            is_visual_match=is_visual_match,
            is_audio_match=is_audio_match,
        )

    def _stimulus_at(self, index: int) -> Stimulus:
        return Stimulus(visual=self._visual_sequence[index], audio=self._audio_sequence[index])

    def _ground_truth(self, index: int) -> tuple[bool, bool]:
        assert self._settings is not None
        n = self._settings.n_level
        # No lag-N comparison exists yet.
        if index < n:
            return False, False
        return (
            self._visual_sequence[index] == self._visual_sequence[index - n],
            self._audio_sequence[index] == self._audio_sequence[index - n],
        )

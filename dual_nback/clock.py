from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Turn pacing depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TurnTimer:
    """Fixed-interval pacing: one stimulus every ``speed_ms``.

    ``poll`` returns True once per elapsed interval. The next deadline is
    scheduled from the previous one, not from the poll time, so a slow frame
    does not stretch the session.
    """

    def __init__(self, *, clock: Clock, speed_ms: int) -> None:
        if speed_ms <= 0:
            raise ValueError("speed_ms must be > 0")
        self._clock = clock
        self._interval_s = speed_ms / 1000.0
        self._deadline_s: float | None = None

    @property
    def interval_s(self) -> float:
        return self._interval_s

    def start(self) -> None:
        self._deadline_s = self._clock.now() + self._interval_s

    def stop(self) -> None:
        self._deadline_s = None

    @property
    def running(self) -> bool:
        return self._deadline_s is not None

    def elapsed_fraction(self) -> float:
        if self._deadline_s is None:
            return 0.0
        remaining = self._deadline_s - self._clock.now()
        return max(0.0, min(1.0, 1.0 - remaining / self._interval_s))

    def poll(self) -> bool:
        if self._deadline_s is None:
            return False
        now = self._clock.now()
        if now < self._deadline_s:
            return False
        self._deadline_s += self._interval_s
        if self._deadline_s <= now:
            # Fell more than a full interval behind; resync instead of bursting.
            self._deadline_s = now + self._interval_s
        return True

from __future__ import annotations

import random
from collections.abc import MutableSequence, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

T = TypeVar("T")


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class Stimulus:
    visual: int  # 0..8, row-major index into the 3x3 grid
    audio: str


@dataclass(frozen=True, slots=True)
class UserResponse:
    visual_match: bool = False
    audio_match: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"visual_match": bool(self.visual_match), "audio_match": bool(self.audio_match)}

    @classmethod
    def from_dict(cls, data: object) -> "UserResponse":
        if not isinstance(data, dict):
            raise TypeError("user_response must be a mapping")
        return cls(
            visual_match=bool(data.get("visual_match", False)),
            audio_match=bool(data.get("audio_match", False)),
        )


@dataclass(frozen=True, slots=True)
class GameEvent:
    """One processed turn: what was shown, the ground truth and the answer."""

    turn_index: int
    stimulus: Stimulus
    is_visual_match: bool
    is_audio_match: bool
    user_response: UserResponse

    def to_dict(self) -> dict[str, object]:
        return {
            "turn_index": int(self.turn_index),
            "stimulus": {"visual": int(self.stimulus.visual), "audio": str(self.stimulus.audio)},
            "is_visual_match": bool(self.is_visual_match),
            "is_audio_match": bool(self.is_audio_match),
            "user_response": self.user_response.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: object) -> "GameEvent":
        if not isinstance(data, dict):
            raise TypeError("event must be a mapping")
        raw_stimulus = data["stimulus"]
        if not isinstance(raw_stimulus, dict):
            raise TypeError("stimulus must be a mapping")
        return cls(
            turn_index=int(data["turn_index"]),
            stimulus=Stimulus(visual=int(raw_stimulus["visual"]), audio=str(raw_stimulus["audio"])),
            is_visual_match=bool(data["is_visual_match"]),
            is_audio_match=bool(data["is_audio_match"]),
            user_response=UserResponse.from_dict(data.get("user_response", {})),
        )


@dataclass(frozen=True, slots=True)
class TurnSnapshot:
    """View model for the UI (pure data)."""

    phase: Phase
    is_running: bool
    n_level: int
    session_length: int
    current_turn_index: int
    current_stimulus: Stimulus | None
    visual_hit_rate: float
    visual_false_alarm_rate: float
    audio_hit_rate: float
    audio_false_alarm_rate: float
    is_visual_match: bool
    is_audio_match: bool


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def shuffle(self, items: MutableSequence[T]) -> None:
        self._rng.shuffle(items)

    def random(self) -> float:
        return self._rng.random()


def clamp_int(value: int, lo: int, hi: int) -> int:
    return lo if value <= lo else hi if value >= hi else int(value)


def clamp01(x: float) -> float:
    return 0.0 if x <= 0.0 else 1.0 if x >= 1.0 else float(x)

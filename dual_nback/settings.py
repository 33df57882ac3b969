from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .nback_core import clamp_int

DB_PATH_ENV = "DUAL_NBACK_DB_PATH"

MIN_SESSION_LENGTH = 10
MAX_SESSION_LENGTH = 100
MIN_SPEED_MS = 500
MAX_SPEED_MS = 5000


class AuditoryStimulusSet(str, Enum):
    ALL_LETTERS = "AllLetters"
    NON_CONFUSING_LETTERS = "NonConfusingLetters"
    TIAN_GAN_DI_ZHI = "TianGanDiZhi"

    @property
    def symbols(self) -> tuple[str, ...]:
        return AUDITORY_ALPHABETS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


AUDITORY_ALPHABETS: dict[AuditoryStimulusSet, tuple[str, ...]] = {
    AuditoryStimulusSet.ALL_LETTERS: tuple("ABCDEFGHIJKLMNOPQRSTUVWXYZ"),
    AuditoryStimulusSet.NON_CONFUSING_LETTERS: ("A", "K", "Q", "R", "U", "W", "H", "L", "O"),
    AuditoryStimulusSet.TIAN_GAN_DI_ZHI: (
        "jia", "yi", "bing", "ding", "wu", "ji", "geng", "xin", "ren", "gui",
        "zi", "chou", "yin", "mao", "chen", "si", "wu_branch", "wei", "shen", "you", "xu", "hai",
    ),
}

_LABELS = {
    AuditoryStimulusSet.ALL_LETTERS: "All letters",
    AuditoryStimulusSet.NON_CONFUSING_LETTERS: "Non-confusing letters",
    AuditoryStimulusSet.TIAN_GAN_DI_ZHI: "Heavenly stems / earthly branches",
}


def display_symbol(symbol: str) -> str:
    """Readable form of an auditory symbol; drops the `_branch` disambiguation suffix."""
    return symbol.removesuffix("_branch")


@dataclass(frozen=True, slots=True)
class UserSettings:
    n_level: int = 2
    speed_ms: int = 2000
    session_length: int = 30
    auditory_stimulus_set: AuditoryStimulusSet = AuditoryStimulusSet.ALL_LETTERS

    def __post_init__(self) -> None:
        if self.n_level < 1:
            raise ValueError("n_level must be >= 1")
        if self.speed_ms <= 0:
            raise ValueError("speed_ms must be > 0")

    def with_clamped_length(
        self,
        *,
        min_length: int = MIN_SESSION_LENGTH,
        max_length: int = MAX_SESSION_LENGTH,
    ) -> "UserSettings":
        return replace(self, session_length=clamp_int(self.session_length, min_length, max_length))

    def with_clamped_speed(self) -> "UserSettings":
        return replace(self, speed_ms=clamp_int(self.speed_ms, MIN_SPEED_MS, MAX_SPEED_MS))

    def to_dict(self) -> dict[str, Any]:
        return {
            "n_level": int(self.n_level),
            "speed_ms": int(self.speed_ms),
            "session_length": int(self.session_length),
            "auditory_stimulus_set": self.auditory_stimulus_set.value,
        }

    @classmethod
    def from_dict(cls, data: object) -> "UserSettings":
        """Strict decode; raises on malformed input so callers can fall back."""

        if not isinstance(data, dict):
            raise TypeError("settings must be a mapping")
        raw_set = data.get("auditory_stimulus_set", AuditoryStimulusSet.ALL_LETTERS.value)
        return cls(
            n_level=int(data["n_level"]),
            speed_ms=int(data["speed_ms"]),
            session_length=int(data["session_length"]),
            auditory_stimulus_set=AuditoryStimulusSet(raw_set),
        )


def default_db_path() -> Path:
    explicit = os.environ.get(DB_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".dual_nback" / "nback.db"

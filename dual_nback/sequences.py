"""Sequence generation for the dual N-back task.

Responsibilities:
- Build one stimulus sequence per modality with a controlled number of lag-N
  repetitions ("matches"), validated against an acceptable ratio band.
- Compose the audio and visual streams so the visual stream avoids placing its
  matches at the turns where the audio stream already matches.

Ratios are kept as exact fractions so band checks never depend on float
rounding (e.g. 35 * 0.2 is not 7.0 in binary floating point).
"""

from __future__ import annotations

import math
from collections.abc import Collection, Hashable, Sequence
from fractions import Fraction
from typing import Protocol, TypeVar

from loguru import logger

from .nback_core import SeededRng, clamp_int

S = TypeVar("S", bound=Hashable)

TARGET_RATIO = Fraction(1, 5)
LOWER_BOUND_RATIO = Fraction(1, 6)
UPPER_BOUND_RATIO = Fraction(1, 4)
MAX_ATTEMPTS = 64

GRID_SIZE = 3
VISUAL_POSITIONS: tuple[int, ...] = tuple(range(GRID_SIZE * GRID_SIZE))


class SequenceConfigError(ValueError):
    """Lag/length combination that cannot produce a sequence."""


class AlphabetTooSmallError(SequenceConfigError):
    """Fewer than two distinct symbols: a non-match can never be drawn."""


def match_positions(sequence: Sequence[S], n: int) -> frozenset[int]:
    return frozenset(i for i in range(n, len(sequence)) if sequence[i] == sequence[i - n])


def match_ratio(sequence: Sequence[S], n: int) -> float:
    if not sequence:
        return 0.0
    return len(match_positions(sequence, n)) / len(sequence)


def in_acceptable_band(match_count: int, length: int) -> bool:
    if length <= 0:
        return False
    return LOWER_BOUND_RATIO <= Fraction(match_count, length) <= UPPER_BOUND_RATIO


def target_match_count(n: int, length: int) -> int:
    return math.ceil((length - n) * TARGET_RATIO)


def validate_parameters(n: int, length: int, alphabet: Sequence[S]) -> tuple[S, ...]:
    """Check lag/length/alphabet and return the distinct symbols in order."""

    if n < 1:
        raise SequenceConfigError(f"n must be >= 1, got {n}")
    if n >= length:
        raise SequenceConfigError(f"n ({n}) must be less than the sequence length ({length})")
    distinct = tuple(dict.fromkeys(alphabet))
    if len(distinct) < 2:
        raise AlphabetTooSmallError(f"alphabet needs at least 2 distinct symbols, got {len(distinct)}")
    return distinct


def generate_sequence(
    n: int,
    length: int,
    alphabet: Sequence[S],
    forbidden_positions: Collection[int] = frozenset(),
    *,
    rng: SeededRng | None = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> tuple[S, ...]:
    """Generate one sequence whose lag-``n`` match ratio lies in [1/6, 1/4].

    Match slots are drawn from positions outside ``forbidden_positions`` first
    and only fall back to forbidden ones when the free slots run out. Every
    position that is not a planned match is resampled until it differs from the
    symbol ``n`` steps back, so no unplanned repetition can appear.

    After ``max_attempts`` rejected candidates the match count is clamped into
    the band directly; if the band cannot be reached at all (very short
    sequences or large ``n``) the closest achievable count is used instead.
    """

    symbols = validate_parameters(n, length, alphabet)
    if max_attempts < 0:
        raise ValueError("max_attempts must be >= 0")
    rng = rng if rng is not None else SeededRng()
    forbidden = frozenset(forbidden_positions)
    target = target_match_count(n, length)
    # The realised count always equals the planned one, so an out-of-band
    # target can never be accepted.
    attempts = max_attempts if in_acceptable_band(target, length) else 0

    for attempt in range(1, attempts + 1):
        planned = _plan_match_positions(n, length, forbidden, target, rng)
        sequence = _build_sequence(n, length, symbols, planned, rng)
        actual = len(match_positions(sequence, n))
        if in_acceptable_band(actual, length):
            return tuple(sequence)
        logger.debug(
            f"Rejected sequence attempt {attempt}: {actual}/{length} matches outside band (n={n})"
        )

    count = _fallback_match_count(n, length, target)
    if not in_acceptable_band(count, length):
        logger.warning(
            f"Match ratio band unreachable for n={n}, length={length}; using {count} matches"
        )
    planned = _plan_match_positions(n, length, forbidden, count, rng)
    return tuple(_build_sequence(n, length, symbols, planned, rng))


def _plan_match_positions(
    n: int,
    length: int,
    forbidden: frozenset[int],
    count: int,
    rng: SeededRng,
) -> frozenset[int]:
    free = [i for i in range(n, length) if i not in forbidden]
    constrained = [i for i in range(n, length) if i in forbidden]
    rng.shuffle(free)
    rng.shuffle(constrained)

    chosen = free[:count]
    remaining = count - len(chosen)
    if remaining > 0:
        chosen.extend(constrained[:remaining])
    return frozenset(chosen)


def _build_sequence(
    n: int,
    length: int,
    symbols: tuple[S, ...],
    planned: frozenset[int],
    rng: SeededRng,
) -> list[S]:
    sequence: list[S] = []
    for i in range(length):
        if i < n:
            sequence.append(rng.choice(symbols))
            continue
        previous = sequence[i - n]
        if i in planned:
            sequence.append(previous)
            continue
        candidate = rng.choice(symbols)
        while candidate == previous:
            candidate = rng.choice(symbols)
        sequence.append(candidate)
    return sequence


def _fallback_match_count(n: int, length: int, target: int) -> int:
    available = length - n
    lo = math.ceil(length * LOWER_BOUND_RATIO)
    hi = math.floor(length * UPPER_BOUND_RATIO)
    if lo <= hi and lo <= available:
        return clamp_int(target, lo, min(hi, available))
    if lo > available:
        return available
    # Empty band (very short sequence): keep the unconstrained target.
    return min(target, available)


def compose_dual_sequences(
    n: int,
    length: int,
    audio_alphabet: Sequence[str],
    *,
    rng: SeededRng | None = None,
) -> tuple[tuple[str, ...], tuple[int, ...]]:
    """Audio first, then visual with the audio match turns forbidden."""

    rng = rng if rng is not None else SeededRng()
    audio = generate_sequence(n, length, audio_alphabet, frozenset(), rng=rng)
    audio_matches = match_positions(audio, n)
    visual = generate_sequence(n, length, VISUAL_POSITIONS, audio_matches, rng=rng)
    return audio, visual


class SequenceComposer(Protocol):
    """Source of the two pre-generated session sequences."""

    def compose(
        self, n: int, length: int, audio_alphabet: Sequence[str]
    ) -> tuple[tuple[str, ...], tuple[int, ...]]:
        ...


class DualSequenceComposer:
    def __init__(self, rng: SeededRng) -> None:
        self._rng = rng

    def compose(
        self, n: int, length: int, audio_alphabet: Sequence[str]
    ) -> tuple[tuple[str, ...], tuple[int, ...]]:
        return compose_dual_sequences(n, length, audio_alphabet, rng=self._rng)

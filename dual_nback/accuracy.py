from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Outcome(str, Enum):
    TRUE_POSITIVE = "true_positive"
    FALSE_POSITIVE = "false_positive"
    FALSE_NEGATIVE = "false_negative"
    TRUE_NEGATIVE = "true_negative"


# (claimed match, actual match) -> outcome
CONFUSION_TABLE: dict[tuple[bool, bool], Outcome] = {
    (True, True): Outcome.TRUE_POSITIVE,
    (True, False): Outcome.FALSE_POSITIVE,
    (False, True): Outcome.FALSE_NEGATIVE,
    (False, False): Outcome.TRUE_NEGATIVE,
}


def classify(*, claimed: bool, actual: bool) -> Outcome:
    return CONFUSION_TABLE[(bool(claimed), bool(actual))]


_COUNTER_FIELDS = ("true_positives", "true_negatives", "false_positives", "false_negatives")

_OUTCOME_COUNTERS: dict[Outcome, str] = {
    Outcome.TRUE_POSITIVE: "true_positives",
    Outcome.FALSE_POSITIVE: "false_positives",
    Outcome.FALSE_NEGATIVE: "false_negatives",
    Outcome.TRUE_NEGATIVE: "true_negatives",
}


@dataclass(slots=True)
class AccuracyStats:
    """Confusion-matrix counters for one modality.

    Counters only ever go up; a new session gets a fresh instance. Every
    derived rate is a pure function of the four counts.
    """

    true_positives: int = 0
    true_negatives: int = 0
    false_positives: int = 0
    false_negatives: int = 0

    def record(self, *, claimed: bool, actual: bool) -> Outcome:
        outcome = classify(claimed=claimed, actual=actual)
        name = _OUTCOME_COUNTERS[outcome]
        setattr(self, name, getattr(self, name) + 1)
        return outcome

    @property
    def total(self) -> int:
        return self.true_positives + self.true_negatives + self.false_positives + self.false_negatives

    @property
    def match_trials(self) -> int:
        return self.true_positives + self.false_negatives

    @property
    def non_match_trials(self) -> int:
        return self.true_negatives + self.false_positives

    def hit_rate(self) -> float:
        """Sensitivity. 1.0 when no match trials occurred."""
        if self.match_trials == 0:
            return 1.0
        return self.true_positives / self.match_trials

    def miss_rate(self) -> float:
        if self.match_trials == 0:
            return 0.0
        return self.false_negatives / self.match_trials

    def false_alarm_rate(self) -> float:
        if self.non_match_trials == 0:
            return 0.0
        return self.false_positives / self.non_match_trials

    def specificity(self) -> float:
        """Correct-rejection rate. 1.0 when no non-match trials occurred."""
        if self.non_match_trials == 0:
            return 1.0
        return self.true_negatives / self.non_match_trials

    def correct_rejection_rate(self) -> float:
        return self.specificity()

    def composite_accuracy(self) -> float:
        return (self.hit_rate() + self.specificity()) / 2.0

    def copy(self) -> "AccuracyStats":
        return AccuracyStats(
            true_positives=self.true_positives,
            true_negatives=self.true_negatives,
            false_positives=self.false_positives,
            false_negatives=self.false_negatives,
        )

    def to_dict(self) -> dict[str, int]:
        return {name: int(getattr(self, name)) for name in _COUNTER_FIELDS}

    @classmethod
    def from_dict(cls, data: object) -> "AccuracyStats":
        if not isinstance(data, dict):
            raise TypeError("accuracy stats must be a mapping")
        values: dict[str, int] = {}
        for name in _COUNTER_FIELDS:
            raw = data.get(name, 0)
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise ValueError(f"{name} must be an integer, got {raw!r}")
            if raw < 0:
                raise ValueError(f"{name} must be >= 0, got {raw}")
            values[name] = raw
        return cls(**values)

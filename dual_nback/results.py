from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .accuracy import AccuracyStats
from .nback_core import GameEvent, Phase
from .session import DualNBackSession
from .settings import UserSettings


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """A finished session without its per-turn event log (for list views)."""

    id: str
    timestamp: datetime
    settings: UserSettings
    visual_stats: AccuracyStats
    audio_stats: AccuracyStats


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Persistable summary + event log for a finished session."""

    id: str
    timestamp: datetime
    settings: UserSettings
    events: tuple[GameEvent, ...]
    visual_stats: AccuracyStats
    audio_stats: AccuracyStats

    def summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.id,
            timestamp=self.timestamp,
            settings=self.settings,
            visual_stats=self.visual_stats.copy(),
            audio_stats=self.audio_stats.copy(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "settings": self.settings.to_dict(),
            "event_history": [e.to_dict() for e in self.events],
            "visual_stats": self.visual_stats.to_dict(),
            "audio_stats": self.audio_stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: object) -> "SessionRecord":
        if not isinstance(data, dict):
            raise TypeError("session record must be a mapping")
        raw_events = data.get("event_history", [])
        if not isinstance(raw_events, list):
            raise TypeError("event_history must be a list")
        timestamp = datetime.fromisoformat(str(data["timestamp"]))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            id=str(data["id"]),
            timestamp=timestamp,
            settings=UserSettings.from_dict(data["settings"]),
            events=tuple(GameEvent.from_dict(e) for e in raw_events),
            visual_stats=AccuracyStats.from_dict(data["visual_stats"]),
            audio_stats=AccuracyStats.from_dict(data["audio_stats"]),
        )


def new_session_id(timestamp: datetime) -> str:
    micros = int(timestamp.timestamp() * 1_000_000)
    return f"session_{micros}"


def session_record_from_session(
    session: DualNBackSession,
    *,
    timestamp: datetime | None = None,
) -> SessionRecord:
    """Build a SessionRecord from a finished DualNBackSession."""

    if session.phase is not Phase.FINISHED or session.settings is None:
        raise ValueError("session record is only available once the session has finished")
    ts = timestamp if timestamp is not None else datetime.now(timezone.utc)
    return SessionRecord(
        id=new_session_id(ts),
        timestamp=ts,
        settings=session.settings,
        events=session.events(),
        visual_stats=session.visual_stats,
        audio_stats=session.audio_stats,
    )


def history_rows(summaries: Iterable[SessionSummary]) -> list[dict[str, Any]]:
    """Chart/list rows: one per session, percentages in 0..100."""

    rows: list[dict[str, Any]] = []
    for x, s in enumerate(summaries):
        rows.append(
            {
                "id": s.id,
                "x": x,
                "date": s.timestamp.date().isoformat(),
                "n_level": s.settings.n_level,
                "speed_ms": s.settings.speed_ms,
                "session_length": s.settings.session_length,
                "visual_accuracy": s.visual_stats.composite_accuracy() * 100.0,
                "audio_accuracy": s.audio_stats.composite_accuracy() * 100.0,
                "visual_false_alarm_rate": s.visual_stats.false_alarm_rate() * 100.0,
                "audio_false_alarm_rate": s.audio_stats.false_alarm_rate() * 100.0,
            }
        )
    return rows


CSV_COLUMNS = (
    "timestamp",
    "n_level",
    "speed_ms",
    "session_length",
    "visual_true_positives",
    "visual_true_negatives",
    "visual_false_positives",
    "visual_false_negatives",
    "audio_true_positives",
    "audio_true_negatives",
    "audio_false_positives",
    "audio_false_negatives",
)


def export_history_csv(summaries: Iterable[SessionSummary]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for s in summaries:
        row: dict[str, Any] = {
            "timestamp": s.timestamp.isoformat(),
            "n_level": s.settings.n_level,
            "speed_ms": s.settings.speed_ms,
            "session_length": s.settings.session_length,
        }
        for prefix, stats in (("visual", s.visual_stats), ("audio", s.audio_stats)):
            for key, value in stats.to_dict().items():
                row[f"{prefix}_{key}"] = value
        writer.writerow(row)
    return buf.getvalue()

"""Value types produced by the conflict index and availability queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .intervals import Interval, merge_intervals


class ConflictSource(str, Enum):
    BOOKING = "booking"
    EVENT_HOLD = "event_hold"
    CLOSURE = "closure"


@dataclass(frozen=True)
class OccupiedInterval:
    """One occupant of a resource-day with its exact and buffered extents."""

    source: ConflictSource
    record_id: str
    interval: Interval
    buffered: Interval
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "record_id": self.record_id,
            "start": self.interval.start.isoformat(),
            "end": self.interval.end.isoformat(),
            "buffered_start": self.buffered.start.isoformat(),
            "buffered_end": self.buffered.end.isoformat(),
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OccupiedInterval":
        return cls(
            source=ConflictSource(data["source"]),
            record_id=data["record_id"],
            interval=Interval(
                datetime.fromisoformat(data["start"]), datetime.fromisoformat(data["end"])
            ),
            buffered=Interval(
                datetime.fromisoformat(data["buffered_start"]),
                datetime.fromisoformat(data["buffered_end"]),
            ),
            label=data.get("label"),
        )


@dataclass(frozen=True)
class ConflictReport:
    """Conflicting occupants grouped by source, for human-readable rejections."""

    bookings: Tuple[OccupiedInterval, ...] = ()
    event_holds: Tuple[OccupiedInterval, ...] = ()
    closures: Tuple[OccupiedInterval, ...] = ()

    @classmethod
    def from_occupants(cls, occupants: Iterable[OccupiedInterval]) -> "ConflictReport":
        grouped: Dict[ConflictSource, List[OccupiedInterval]] = {s: [] for s in ConflictSource}
        for occupant in occupants:
            grouped[occupant.source].append(occupant)
        return cls(
            bookings=tuple(grouped[ConflictSource.BOOKING]),
            event_holds=tuple(grouped[ConflictSource.EVENT_HOLD]),
            closures=tuple(grouped[ConflictSource.CLOSURE]),
        )

    @property
    def has_conflicts(self) -> bool:
        return bool(self.bookings or self.event_holds or self.closures)

    def __len__(self) -> int:
        return len(self.bookings) + len(self.event_holds) + len(self.closures)

    def describe(self) -> str:
        parts = []
        if self.bookings:
            parts.append(f"{len(self.bookings)} existing booking(s)")
        if self.event_holds:
            parts.append(
                "event(s): " + ", ".join(o.label or o.record_id for o in self.event_holds)
            )
        if self.closures:
            parts.append("closure(s): " + ", ".join(o.label or o.record_id for o in self.closures))
        if not parts:
            return "No conflicts"
        return "Conflicts with " + "; ".join(parts)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "bookings": [o.to_dict() for o in self.bookings],
            "event_holds": [o.to_dict() for o in self.event_holds],
            "closures": [o.to_dict() for o in self.closures],
        }


@dataclass(frozen=True)
class ConflictSnapshot:
    """Every occupant of one resource-day, pre-buffered. Immutable once built."""

    day: date
    buffer_minutes: int
    occupants: Tuple[OccupiedInterval, ...] = ()
    built_at: Optional[datetime] = None

    def without(self, record_id: Optional[str]) -> "ConflictSnapshot":
        if not record_id:
            return self
        return ConflictSnapshot(
            day=self.day,
            buffer_minutes=self.buffer_minutes,
            occupants=tuple(o for o in self.occupants if o.record_id != record_id),
            built_at=self.built_at,
        )

    def conflicts_with(self, candidate: Interval) -> List[OccupiedInterval]:
        if candidate.is_degenerate:
            return list(self.occupants)
        return [o for o in self.occupants if candidate.overlaps(o.buffered)]

    def is_free(self, candidate: Interval) -> bool:
        if candidate.is_degenerate:
            return False
        return not any(candidate.overlaps(o.buffered) for o in self.occupants)

    def report(self, candidate: Interval) -> ConflictReport:
        return ConflictReport.from_occupants(self.conflicts_with(candidate))

    def occupied(self) -> List[Interval]:
        """Merged buffered intervals, sorted."""
        return merge_intervals(o.buffered for o in self.occupants)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "buffer_minutes": self.buffer_minutes,
            "built_at": self.built_at.isoformat() if self.built_at else None,
            "occupants": [o.to_dict() for o in self.occupants],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ConflictSnapshot":
        built_at = payload.get("built_at")
        return cls(
            day=date.fromisoformat(payload["day"]),
            buffer_minutes=int(payload["buffer_minutes"]),
            occupants=tuple(OccupiedInterval.from_dict(o) for o in payload["occupants"]),
            built_at=datetime.fromisoformat(built_at) if built_at else None,
        )


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration_minutes": self.duration_minutes,
        }


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    reasons: Tuple[str, ...] = ()
    conflicts: ConflictReport = field(default_factory=ConflictReport)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "reasons": list(self.reasons),
            "conflicts": self.conflicts.to_dict(),
        }

"""Half-open time intervals and the free-list arithmetic used for availability."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional


@dataclass(frozen=True, order=True)
class Interval:
    """
    A ``[start, end)`` range of naive venue-local datetimes.

    Abutting intervals do not overlap. Degenerate intervals (end <= start)
    overlap nothing, not even themselves.
    """

    start: datetime
    end: datetime

    @classmethod
    def on_day(cls, day: date, start: time, end: time) -> "Interval":
        return cls(datetime.combine(day, start), datetime.combine(day, end))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    @property
    def is_degenerate(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "Interval") -> bool:
        if self.is_degenerate or other.is_degenerate:
            return False
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def contains_instant(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def buffered(self, minutes: int) -> "Interval":
        """Expand outward on both ends by ``minutes``."""
        if minutes <= 0:
            return self
        pad = timedelta(minutes=minutes)
        return Interval(self.start - pad, self.end + pad)

    def clip(self, bounds: "Interval") -> Optional["Interval"]:
        start = max(self.start, bounds.start)
        end = min(self.end, bounds.end)
        if end <= start:
            return None
        return Interval(start, end)

    def subtract(self, others: Iterable["Interval"]) -> List["Interval"]:
        """Return the pieces of this interval not covered by ``others``, in order."""
        free: List[Interval] = []
        cursor = self.start
        for taken in merge_intervals(o for o in others if o.overlaps(self)):
            if taken.start > cursor:
                free.append(Interval(cursor, taken.start))
            cursor = max(cursor, taken.end)
            if cursor >= self.end:
                break
        if cursor < self.end:
            free.append(Interval(cursor, self.end))
        return free

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def overlaps(a: Interval, b: Interval) -> bool:
    return a.overlaps(b)


def buffered_overlap(candidate: Interval, occupied: Interval, buffer_minutes: int) -> bool:
    """Test a candidate against an occupant widened by the turnover buffer."""
    if candidate.is_degenerate:
        return True
    return candidate.overlaps(occupied.buffered(buffer_minutes))


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Coalesce overlapping or abutting intervals into a sorted list."""
    merged: List[Interval] = []
    for current in sorted(i for i in intervals if not i.is_degenerate):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def day_window(day: date) -> Interval:
    start = datetime.combine(day, time.min)
    return Interval(start, start + timedelta(days=1))

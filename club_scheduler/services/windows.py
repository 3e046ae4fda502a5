"""
Half-open time windows.

A TimeWindow is the [start, end) pair every overlap test in the scheduler
runs on. Adjacent windows (one ends exactly when the other starts) do not
overlap.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from club_scheduler.exceptions import ValidationError
from club_scheduler.models.base import as_utc


@dataclass(frozen=True)
class TimeWindow:
    """Immutable [start, end) interval of UTC instants."""

    start: datetime
    end: datetime

    def __post_init__(self):
        # Normalize so naive and aware values compare safely
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end <= self.start:
            raise ValidationError(
                "Window end must be after start",
                details={"start": self.start.isoformat(), "end": self.end.isoformat()},
            )

    @classmethod
    def of(cls, obj) -> "TimeWindow":
        """Window of anything with start_time / end_time (events, bookings)."""
        return cls(obj.start_time, obj.end_time)

    @classmethod
    def for_dates(cls, first: date, last: date) -> "TimeWindow":
        """Window covering whole UTC days from first through last inclusive."""
        start = datetime(first.year, first.month, first.day)
        end = datetime(last.year, last.month, last.day) + timedelta(days=1)
        return cls(start, end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        instant = as_utc(instant)
        return self.start <= instant < self.end

    def widen(self, before: timedelta = timedelta(0), after: timedelta = timedelta(0)) -> "TimeWindow":
        return TimeWindow(self.start - before, self.end + after)

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"

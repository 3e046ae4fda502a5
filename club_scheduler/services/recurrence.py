"""
Recurrence expansion service.

Turns a repeating pattern plus its anchor event into concrete occurrences:
- Patterns are frozen, validated once at construction, and hashable
- Expansion walks calendar dates explicitly (no rrule library)
- Exceptions are whole-day exclusions
- Pattern-date expansion is memoized per (pattern, range, policy)

Week days are numbered 0-6 from Sunday and months 0-11 from January, the
numbering stored on RecurrenceRule rows.
"""

import calendar
from dataclasses import dataclass, field
from datetime import MAXYEAR, date, datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any, Iterable, Iterator, Optional, Protocol
from uuid import UUID

from dateutil.parser import isoparse

from club_scheduler.config import get_settings
from club_scheduler.exceptions import InvalidRuleError
from club_scheduler.models.base import as_utc
from club_scheduler.models.recurrence import RecurrenceRule
from club_scheduler.services.windows import TimeWindow

WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTH_NAMES = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class MonthDayPolicy(str, Enum):
    """
    Handling of month days a month does not have (31 in April, 29 Feb).

    SKIP: the month produces no occurrence for that day.
    CLIP: the occurrence falls on the month's last day instead.
    """

    SKIP = "skip"
    CLIP = "clip"


_PERIOD_UNITS = {
    Frequency.DAILY: "day",
    Frequency.WEEKLY: "week",
    Frequency.MONTHLY: "month",
    Frequency.YEARLY: "year",
}


class AnchorLike(Protocol):
    """What expansion reads from an anchor event."""

    id: UUID
    series_id: Optional[UUID]
    title: str
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class Occurrence:
    """One concrete, dated materialization of a series."""

    start_time: datetime
    end_time: datetime
    title: str
    series_id: Optional[UUID]
    parent_event_id: UUID
    recurrence_instance_index: int

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start_time, self.end_time)

    @property
    def date(self) -> date:
        return self.start_time.date()

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "title": self.title,
            "series_id": str(self.series_id) if self.series_id else None,
            "parent_event_id": str(self.parent_event_id),
            "recurrence_instance_index": self.recurrence_instance_index,
        }


def parse_exception_date(value: Any) -> date:
    """
    Normalize an exception date to a calendar date.

    Accepts dates, datetimes and ISO strings. Instants are converted to UTC
    before taking the date, so "2025-07-17T16:00:00Z" excludes 2025-07-17.

    Raises:
        InvalidRuleError: If a string is not ISO 8601
    """
    if isinstance(value, datetime):
        return as_utc(value).date()
    if isinstance(value, date):
        return value
    try:
        parsed = isoparse(str(value))
    except (ValueError, OverflowError) as e:
        raise InvalidRuleError(
            f"Invalid exception date: {value!r}",
            details={"exception_date": str(value)},
        ) from e
    return as_utc(parsed).date() if parsed.tzinfo else parsed.date()


def validate_recurrence(
    frequency: Any,
    start: Optional[datetime] = None,
    interval: Any = 1,
    end_date: Optional[date] = None,
    count: Any = None,
    week_days: Iterable[int] = (),
    month_days: Iterable[int] = (),
    months: Iterable[int] = (),
) -> list[str]:
    """
    Check recurrence fields against their domains.

    Returns:
        List of problems (empty when the rule is valid)
    """
    errors = []

    if frequency not in {f.value for f in Frequency}:
        errors.append(f"frequency must be one of daily, weekly, monthly, yearly (got {frequency!r})")

    if not isinstance(interval, int) or isinstance(interval, bool) or interval < 1:
        errors.append("interval must be an integer >= 1")

    if count is not None and (not isinstance(count, int) or isinstance(count, bool) or count < 1):
        errors.append("count must be an integer >= 1")

    if end_date is not None and start is not None and end_date < as_utc(start).date():
        errors.append("end_date must not be before the start date")

    if any(d not in range(0, 7) for d in week_days):
        errors.append("week_days must be between 0 (Sunday) and 6 (Saturday)")

    if any(d not in range(1, 32) for d in month_days):
        errors.append("month_days must be between 1 and 31")

    if any(m not in range(0, 12) for m in months):
        errors.append("months must be between 0 (January) and 11 (December)")

    return errors


@dataclass(frozen=True)
class RecurrencePattern:
    """
    Validated, hashable view of a recurrence rule.

    Raises InvalidRuleError on construction when any field is out of its
    domain, so expansion never re-validates.
    """

    frequency: Frequency
    start: datetime
    interval: int = 1
    end_date: Optional[date] = None
    count: Optional[int] = None
    week_days: frozenset[int] = field(default_factory=frozenset)
    month_days: frozenset[int] = field(default_factory=frozenset)
    months: frozenset[int] = field(default_factory=frozenset)
    exception_dates: frozenset[date] = field(default_factory=frozenset)

    def __post_init__(self):
        frequency = self.frequency.value if isinstance(self.frequency, Frequency) else self.frequency
        week_days = frozenset(self.week_days or ())
        month_days = frozenset(self.month_days or ())
        months = frozenset(self.months or ())

        errors = validate_recurrence(
            frequency,
            start=self.start,
            interval=self.interval,
            end_date=self.end_date,
            count=self.count,
            week_days=week_days,
            month_days=month_days,
            months=months,
        )
        if errors:
            raise InvalidRuleError(
                f"Invalid recurrence rule: {', '.join(errors)}",
                details={"errors": errors},
            )

        object.__setattr__(self, "frequency", Frequency(frequency))
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "week_days", week_days)
        object.__setattr__(self, "month_days", month_days)
        object.__setattr__(self, "months", months)
        object.__setattr__(
            self,
            "exception_dates",
            frozenset(parse_exception_date(d) for d in (self.exception_dates or ())),
        )

    @classmethod
    def from_rule(cls, rule: RecurrenceRule) -> "RecurrencePattern":
        """Build a pattern from a stored rule."""
        return cls(
            frequency=rule.frequency,
            start=rule.start_date,
            interval=rule.interval,
            end_date=rule.end_date,
            count=rule.count,
            week_days=frozenset(rule.week_days or ()),
            month_days=frozenset(rule.month_days or ()),
            months=frozenset(rule.months or ()),
            exception_dates=frozenset(rule.exception_dates or ()),
        )

    @property
    def start_day(self) -> date:
        return self.start.date()

    def to_columns(self) -> dict[str, Any]:
        """Column values for a RecurrenceRule row."""
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "start_date": self.start,
            "end_date": self.end_date,
            "count": self.count,
            "week_days": sorted(self.week_days) or None,
            "month_days": sorted(self.month_days) or None,
            "months": sorted(self.months) or None,
            "exception_dates": sorted(d.isoformat() for d in self.exception_dates),
            "description": describe_recurrence(self),
        }


# =============================================================================
# Calendar arithmetic
# =============================================================================


def _sunday_weekday(day: date) -> int:
    """Weekday numbered 0-6 from Sunday."""
    return (day.weekday() + 1) % 7


def _add_days(day: date, days: int) -> Optional[date]:
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return None


def _add_months(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def _month_dates(year: int, month: int, days: Iterable[int], policy: MonthDayPolicy) -> list[date]:
    """Sorted distinct dates for the given days of one month."""
    last = calendar.monthrange(year, month)[1]
    chosen = set()
    for day in days:
        if day <= last:
            chosen.add(day)
        elif policy is MonthDayPolicy.CLIP:
            chosen.add(last)
    return [date(year, month, d) for d in sorted(chosen)]


def _candidate_dates(pattern: RecurrencePattern, until: date, policy: MonthDayPolicy) -> Iterator[date]:
    """
    Dates matching the frequency filter, ascending, from the start date
    through until. Ignores count, end_date and exceptions.
    """
    start = pattern.start_day
    interval = pattern.interval

    if pattern.frequency is Frequency.DAILY:
        day = start
        while day is not None and day <= until:
            yield day
            day = _add_days(day, interval)

    elif pattern.frequency is Frequency.WEEKLY:
        if not pattern.week_days:
            day = start
            while day is not None and day <= until:
                yield day
                day = _add_days(day, 7 * interval)
            return

        week_start = start - timedelta(days=_sunday_weekday(start))
        while week_start is not None and week_start <= until:
            for offset in range(7):
                day = _add_days(week_start, offset)
                if day is None or day > until:
                    return
                if day >= start and _sunday_weekday(day) in pattern.week_days:
                    yield day
            week_start = _add_days(week_start, 7 * interval)

    elif pattern.frequency is Frequency.MONTHLY:
        days = sorted(pattern.month_days) or [start.day]
        year, month = start.year, start.month
        while year <= MAXYEAR and date(year, month, 1) <= until:
            for day in _month_dates(year, month, days, policy):
                if day > until:
                    return
                if day >= start:
                    yield day
            year, month = _add_months(year, month, interval)

    elif pattern.frequency is Frequency.YEARLY:
        months = sorted(m + 1 for m in pattern.months) or [start.month]
        days = sorted(pattern.month_days) or [start.day]
        year = start.year
        while year <= MAXYEAR and date(year, 1, 1) <= until:
            for month in months:
                for day in _month_dates(year, month, days, policy):
                    if day > until:
                        return
                    if day >= start:
                        yield day
            year += interval


def _pattern_dates(pattern: RecurrencePattern, until: date, policy: MonthDayPolicy) -> Iterator[tuple[int, date]]:
    """
    (instance index, date) pairs of the series through until.

    Applies end_date and count; exception dates are still included because
    they consume a slot of the count.
    """
    limit = until if pattern.end_date is None else min(until, pattern.end_date)
    for index, day in enumerate(_candidate_dates(pattern, limit, policy)):
        if pattern.count is not None and index >= pattern.count:
            return
        yield index, day


def _resolve_policy(policy: Optional[MonthDayPolicy]) -> MonthDayPolicy:
    if policy is None:
        return MonthDayPolicy(get_settings().month_day_policy)
    return MonthDayPolicy(policy)


def _last_day_of(window: TimeWindow) -> date:
    """Last calendar date with an instant inside the half-open window."""
    return (window.end - timedelta(microseconds=1)).date()


def _iter_dates_in_range(
    pattern: RecurrencePattern,
    query_range: TimeWindow,
    policy: MonthDayPolicy,
    start_of_day: datetime,
) -> Iterator[tuple[int, date]]:
    time_of_day = start_of_day.timetz()
    for index, day in _pattern_dates(pattern, _last_day_of(query_range), policy):
        if day in pattern.exception_dates:
            continue
        if query_range.contains(datetime.combine(day, time_of_day)):
            yield index, day


@lru_cache(maxsize=1024)
def _cached_dates(
    pattern: RecurrencePattern,
    query_range: TimeWindow,
    policy: MonthDayPolicy,
    start_of_day: datetime,
) -> tuple[tuple[int, date], ...]:
    return tuple(_iter_dates_in_range(pattern, query_range, policy, start_of_day))


def _build_occurrence(anchor: AnchorLike, index: int, day: date) -> Occurrence:
    anchor_start = as_utc(anchor.start_time)
    duration = as_utc(anchor.end_time) - anchor_start
    start = datetime.combine(day, anchor_start.timetz())
    return Occurrence(
        start_time=start,
        end_time=start + duration,
        title=anchor.title,
        series_id=anchor.series_id,
        parent_event_id=anchor.id,
        recurrence_instance_index=index,
    )


# =============================================================================
# Public operations
# =============================================================================


def iter_occurrences(
    pattern: RecurrencePattern,
    anchor: AnchorLike,
    query_range: TimeWindow,
    policy: Optional[MonthDayPolicy] = None,
) -> Iterator[Occurrence]:
    """
    Lazily expand a series over a query range.

    An occurrence is produced when its start lies in [range.start, range.end).
    Each occurrence has the anchor's duration and UTC time of day.

    Args:
        pattern: Validated recurrence pattern
        anchor: Series anchor event (duration, title, ids)
        query_range: Half-open range to materialize
        policy: Month-day overflow policy (settings default if None)

    Yields:
        Occurrences in ascending start order
    """
    resolved = _resolve_policy(policy)
    for index, day in _iter_dates_in_range(pattern, query_range, resolved, as_utc(anchor.start_time)):
        yield _build_occurrence(anchor, index, day)


def expand_recurrence(
    pattern: RecurrencePattern,
    anchor: AnchorLike,
    query_range: TimeWindow,
    policy: Optional[MonthDayPolicy] = None,
) -> list[Occurrence]:
    """
    Expand a series over a query range into a list.

    Same result as iter_occurrences; the underlying date walk is memoized
    so repeated expansions of an unchanged rule are cheap.
    """
    resolved = _resolve_policy(policy)
    dates = _cached_dates(pattern, query_range, resolved, as_utc(anchor.start_time))
    return [_build_occurrence(anchor, index, day) for index, day in dates]


def clear_expansion_cache() -> None:
    """Drop memoized expansions (rules are immutable values, so this is optional)."""
    _cached_dates.cache_clear()


def count_occurrences_before(
    pattern: RecurrencePattern,
    day: date,
    policy: Optional[MonthDayPolicy] = None,
) -> int:
    """
    Number of pattern instances dated before day.

    Excepted dates count, matching how count caps the series.
    """
    resolved = _resolve_policy(policy)
    until = _add_days(day, -1)
    if until is None or until < pattern.start_day:
        return 0
    return sum(1 for _ in _pattern_dates(pattern, until, resolved))


def is_occurrence_date(
    pattern: RecurrencePattern,
    day: date,
    policy: Optional[MonthDayPolicy] = None,
) -> bool:
    """Whether day is a live (not excepted) occurrence date of the series."""
    if day in pattern.exception_dates or day < pattern.start_day:
        return False
    resolved = _resolve_policy(policy)
    return any(d == day for _, d in _pattern_dates(pattern, day, resolved))


def next_occurrence(
    pattern: RecurrencePattern,
    anchor: AnchorLike,
    after: datetime,
    policy: Optional[MonthDayPolicy] = None,
) -> Optional[Occurrence]:
    """
    First occurrence starting at or after the given instant.

    Searches a horizon wide enough for any active period (and for leap-day
    yearly rules) to come around; returns None past it.
    """
    after = as_utc(after)
    horizon = timedelta(days=366 * 4 * pattern.interval + 366)
    try:
        search = TimeWindow(after, after + horizon)
    except OverflowError:
        return None
    return next(iter_occurrences(pattern, anchor, search, policy), None)


def describe_recurrence(pattern: RecurrencePattern) -> str:
    """
    Human-readable summary of a pattern.

    Example:
        "Repeats weekly on Thu until 2025-08-31"
    """
    description = f"Repeats {pattern.frequency.value}"

    if pattern.interval > 1:
        description += f" every {pattern.interval} {_PERIOD_UNITS[pattern.frequency]}s"

    if pattern.frequency is Frequency.WEEKLY and pattern.week_days:
        description += " on " + ", ".join(WEEKDAY_NAMES[d] for d in sorted(pattern.week_days))

    if pattern.frequency is Frequency.YEARLY and pattern.months:
        description += " in " + ", ".join(MONTH_NAMES[m] for m in sorted(pattern.months))

    if pattern.frequency in (Frequency.MONTHLY, Frequency.YEARLY) and pattern.month_days:
        description += " on day " + ", ".join(str(d) for d in sorted(pattern.month_days))

    if pattern.end_date:
        description += f" until {pattern.end_date.isoformat()}"
    elif pattern.count:
        description += f" for {pattern.count} occurrences"

    return description

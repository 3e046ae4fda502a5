"""
Series editing service.

Applies "this occurrence", "this and future" and "all occurrences" edits and
deletes to a recurring series:
- single: carve one date out of the rule, optionally replacing it with an
  exception event
- future: clip the rule before the target date and start a new series there
- all: change the anchor (and so every generated occurrence)

The editor mutates rows through the store but never commits; the booking
coordinator wraps it in a locked, conflict-checked transaction.
"""

import dataclasses
import logging
import uuid
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from club_scheduler.exceptions import (
    InvalidEditTypeError,
    NotRecurringError,
    ValidationError,
)
from club_scheduler.models.base import as_utc
from club_scheduler.models.events import Event
from club_scheduler.models.recurrence import RecurrenceRule
from club_scheduler.services.events import (
    EventChanges,
    apply_changes,
    cancel_event,
    copy_event,
)
from club_scheduler.services.recurrence import (
    MonthDayPolicy,
    RecurrencePattern,
    count_occurrences_before,
    describe_recurrence,
    is_occurrence_date,
)
from club_scheduler.store.base import EventStore

logger = logging.getLogger(__name__)


class EditMode(str, Enum):
    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


def coerce_edit_mode(mode: Any) -> EditMode:
    """
    Raises:
        InvalidEditTypeError: If mode is not single, future or all
    """
    try:
        return EditMode(mode)
    except ValueError as e:
        raise InvalidEditTypeError(
            f"Invalid edit type: {mode!r}. Must be one of: single, future, all",
            details={"mode": str(mode)},
        ) from e


def occurrence_start(anchor: Event, day: date) -> datetime:
    """Start instant of the occurrence on day (anchor's UTC time of day)."""
    return datetime.combine(day, as_utc(anchor.start_time).timetz())


class SeriesEditor:
    """
    Edits and deletes parts of a recurring series.

    Example:
        editor = SeriesEditor(store)
        exception = editor.edit(anchor, date(2025, 7, 17), changes, "single")
    """

    def __init__(self, store: EventStore, policy: Optional[MonthDayPolicy] = None):
        self._store = store
        self._policy = policy

    # =========================================================================
    # Edits
    # =========================================================================

    def edit(
        self,
        anchor: Event,
        target_date: Optional[date],
        changes: EventChanges,
        mode: Union[EditMode, str],
    ) -> Union[Event, list[Event]]:
        """
        Edit one occurrence, the occurrences from a date on, or the series.

        Args:
            anchor: Series anchor event
            target_date: Occurrence date (ignored for "all")
            changes: Fields to change
            mode: "single", "future" or "all"

        Returns:
            single: the new exception event
            future: [original_anchor, new_anchor]
            all: the anchor

        Raises:
            NotRecurringError: If anchor has no recurrence rule
            InvalidEditTypeError: On an unknown mode
            ValidationError: If target_date is not a live occurrence date
        """
        mode = coerce_edit_mode(mode)
        rule = self._rule_of(anchor)

        if mode is EditMode.ALL:
            return self._edit_all(anchor, rule, changes)

        pattern = RecurrencePattern.from_rule(rule)
        self._require_occurrence(anchor, pattern, target_date)

        if mode is EditMode.SINGLE:
            return self._edit_single(anchor, rule, target_date, changes)

        before = count_occurrences_before(pattern, target_date, self._policy)
        if before == 0:
            return [self._edit_all(anchor, rule, changes)]
        return self._split(anchor, rule, pattern, target_date, before, changes)

    def _edit_single(
        self,
        anchor: Event,
        rule: RecurrenceRule,
        target_date: date,
        changes: EventChanges,
    ) -> Event:
        start = occurrence_start(anchor, target_date)
        duration = as_utc(anchor.end_time) - as_utc(anchor.start_time)

        exception = copy_event(anchor, start, start + duration)
        exception.series_id = anchor.series_id
        exception.parent_event_id = anchor.id
        exception.recurrence_exception_date = target_date
        apply_changes(exception, changes)

        rule.add_exception_date(target_date)
        self._store.add(exception)
        self._store.flush()

        logger.info(f"Created exception {exception.id} for series {anchor.series_id} on {target_date}")
        return exception

    def _split(
        self,
        anchor: Event,
        rule: RecurrenceRule,
        pattern: RecurrencePattern,
        target_date: date,
        before: int,
        changes: EventChanges,
    ) -> list[Event]:
        start = occurrence_start(anchor, target_date)
        duration = as_utc(anchor.end_time) - as_utc(anchor.start_time)

        new_anchor = copy_event(anchor, start, start + duration)
        new_anchor.series_id = new_anchor.id
        apply_changes(new_anchor, changes)

        remaining = pattern.count - before if pattern.count is not None else None
        new_pattern = dataclasses.replace(
            pattern,
            start=new_anchor.start_time,
            count=remaining,
            exception_dates=frozenset(d for d in pattern.exception_dates if d >= target_date),
        )
        new_rule = RecurrenceRule(id=uuid.uuid4(), **new_pattern.to_columns())
        new_anchor.recurrence_rule_id = new_rule.id
        new_anchor.recurrence_rule = new_rule

        self._clip(rule, pattern, target_date, before)

        for exception in self._store.get_exception_events(anchor.id):
            if exception.recurrence_exception_date and exception.recurrence_exception_date >= target_date:
                exception.parent_event_id = new_anchor.id
                exception.series_id = new_anchor.series_id

        self._store.add(new_rule)
        self._store.add(new_anchor)
        self._store.flush()

        logger.info(
            f"Split series {anchor.series_id} at {target_date} into new series {new_anchor.series_id}"
        )
        return [anchor, new_anchor]

    def _edit_all(self, anchor: Event, rule: RecurrenceRule, changes: EventChanges) -> Event:
        old_start = as_utc(anchor.start_time)
        apply_changes(anchor, changes)

        if as_utc(anchor.start_time) != old_start:
            rule.start_date = anchor.start_time
        # Revalidates end_date against a moved start
        rule.description = describe_recurrence(RecurrencePattern.from_rule(rule))
        self._store.flush()

        logger.info(f"Updated all occurrences of series {anchor.series_id}")
        return anchor

    # =========================================================================
    # Deletes
    # =========================================================================

    def delete(
        self,
        anchor: Event,
        target_date: Optional[date],
        mode: Union[EditMode, str],
        reason: Optional[str] = None,
    ) -> list[Event]:
        """
        Delete one occurrence, the occurrences from a date on, or the series.

        Returns:
            Events cancelled by the delete (empty when only an exception
            date was added or the rule was clipped)

        Raises:
            NotRecurringError: If anchor has no recurrence rule
            InvalidEditTypeError: On an unknown mode
            ValidationError: If target_date is not an occurrence date
        """
        mode = coerce_edit_mode(mode)
        rule = self._rule_of(anchor)

        if mode is EditMode.ALL:
            return self._delete_all(anchor, reason)

        pattern = RecurrencePattern.from_rule(rule)
        exceptions = self._store.get_exception_events(anchor.id)

        if mode is EditMode.SINGLE:
            # An edited occurrence is already excepted; cancel its replacement
            replaced = [e for e in exceptions if e.recurrence_exception_date == target_date]
            if replaced:
                for exception in replaced:
                    cancel_event(exception, reason)
                self._store.flush()
                return replaced
            self._require_occurrence(anchor, pattern, target_date)
            rule.add_exception_date(target_date)
            self._store.flush()
            logger.info(f"Excluded {target_date} from series {anchor.series_id}")
            return []

        self._require_occurrence(anchor, pattern, target_date)
        before = count_occurrences_before(pattern, target_date, self._policy)
        if before == 0:
            return self._delete_all(anchor, reason)

        self._clip(rule, pattern, target_date, before)
        cancelled = []
        for exception in exceptions:
            if exception.recurrence_exception_date and exception.recurrence_exception_date >= target_date:
                cancelled.append(cancel_event(exception, reason))
        self._store.flush()

        logger.info(f"Ended series {anchor.series_id} before {target_date}")
        return cancelled

    def _delete_all(self, anchor: Event, reason: Optional[str]) -> list[Event]:
        cancelled = [cancel_event(anchor, reason)]
        for exception in self._store.get_exception_events(anchor.id):
            cancelled.append(cancel_event(exception, reason))
        self._store.flush()

        logger.info(f"Cancelled series {anchor.series_id} ({len(cancelled)} events)")
        return cancelled

    # =========================================================================
    # Helpers
    # =========================================================================

    def _rule_of(self, anchor: Event) -> RecurrenceRule:
        rule = None
        if anchor.recurrence_rule_id is not None:
            rule = anchor.recurrence_rule or self._store.get_rule(anchor.recurrence_rule_id)
        if rule is None:
            raise NotRecurringError(
                "Event is not a recurring series",
                details={"event_id": str(anchor.id)},
            )
        return rule

    def _require_occurrence(
        self,
        anchor: Event,
        pattern: RecurrencePattern,
        target_date: Optional[date],
    ) -> None:
        if target_date is None or not is_occurrence_date(pattern, target_date, self._policy):
            raise ValidationError(
                f"{target_date} is not an occurrence of this series",
                details={
                    "event_id": str(anchor.id),
                    "date": target_date.isoformat() if target_date else None,
                },
            )

    @staticmethod
    def _clip(rule: RecurrenceRule, pattern: RecurrencePattern, target_date: date, before: int) -> None:
        """End the rule the day before target_date, keeping its earlier instances."""
        rule.end_date = target_date - timedelta(days=1)
        if pattern.count is not None:
            rule.count = before
        rule.exception_dates = sorted(
            d.isoformat() for d in pattern.exception_dates if d < target_date
        )
        rule.description = describe_recurrence(RecurrencePattern.from_rule(rule))

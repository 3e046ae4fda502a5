"""
Event lifecycle helpers.

Request types for creating and changing events, plus the row-level
operations shared by the series editor and the booking coordinator:
building and copying events, keeping resource bookings in step with their
event, approval and cancellation.

None of these functions commit; callers run them inside a store
transaction.
"""

import logging
import uuid
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any, Optional, Sequence

from club_scheduler.config import get_settings
from club_scheduler.exceptions import ValidationError
from club_scheduler.models.base import as_utc, utcnow
from club_scheduler.models.events import (
    EVENT_STATUSES,
    EVENT_TYPES,
    EVENT_VISIBILITIES,
    PARTICIPANT_ROLES,
    PARTICIPANT_STATUSES,
    Event,
    EventParticipant,
)
from club_scheduler.models.resources import ResourceBooking
from club_scheduler.services.recurrence import RecurrencePattern
from club_scheduler.services.windows import TimeWindow

logger = logging.getLogger(__name__)


class _Unset:
    """Marker for fields an update leaves alone (None means "clear")."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# =============================================================================
# Request types
# =============================================================================


@dataclass
class ParticipantInput:
    participant_id: uuid.UUID
    role: str = "required"
    status: str = "pending"


@dataclass
class RecurrenceInput:
    """
    Repeating pattern for a new series; the start comes from the event.

    week_days use 0-6 from Sunday, months 0-11 from January.
    """

    frequency: str
    interval: int = 1
    end_date: Optional[date] = None
    count: Optional[int] = None
    week_days: Sequence[int] = ()
    month_days: Sequence[int] = ()
    months: Sequence[int] = ()
    exception_dates: Sequence[Any] = ()

    def to_pattern(self, start: datetime) -> RecurrencePattern:
        return RecurrencePattern(
            frequency=self.frequency,
            start=start,
            interval=self.interval,
            end_date=self.end_date,
            count=self.count,
            week_days=frozenset(self.week_days),
            month_days=frozenset(self.month_days),
            months=frozenset(self.months),
            exception_dates=frozenset(self.exception_dates),
        )


@dataclass
class NewEvent:
    """Request to create an event (single or series anchor)."""

    organization_id: uuid.UUID
    title: str
    start_time: datetime
    end_time: datetime
    created_by: uuid.UUID
    description: Optional[str] = None
    event_type: str = "practice"
    visibility: str = "team"
    status: Optional[str] = None
    team_id: Optional[uuid.UUID] = None
    location_id: Optional[uuid.UUID] = None
    resource_ids: Sequence[uuid.UUID] = ()
    participants: Sequence[ParticipantInput] = ()
    recurrence: Optional[RecurrenceInput] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class EventChanges:
    """
    Partial update of an event.

    Fields left as UNSET are not touched; None clears optional fields such
    as description, team_id or location_id.
    """

    title: Any = UNSET
    description: Any = UNSET
    event_type: Any = UNSET
    status: Any = UNSET
    visibility: Any = UNSET
    start_time: Any = UNSET
    end_time: Any = UNSET
    team_id: Any = UNSET
    location_id: Any = UNSET
    resource_ids: Any = UNSET
    metadata: Any = UNSET

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "EventChanges":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValidationError(
                f"Unknown event fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )
        return cls(**values)

    def as_dict(self) -> dict[str, Any]:
        """Fields that were set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not UNSET


@dataclass
class UpdateEvent:
    """Request to change an existing event."""

    event_id: uuid.UUID
    changes: EventChanges


# =============================================================================
# Validation
# =============================================================================


def check_choice(name: str, value: Any, choices: Sequence[str]) -> None:
    if value not in choices:
        raise ValidationError(
            f"Invalid {name}: {value!r}. Must be one of: {', '.join(choices)}",
            details={"field": name, "value": value},
        )


def _check_title(title: Any) -> None:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title must not be empty", details={"field": "title"})


def validate_new_event(request: NewEvent) -> TimeWindow:
    """
    Validate a creation request.

    Returns:
        The event window

    Raises:
        ValidationError: On an empty title, unknown enum value or bad window
    """
    _check_title(request.title)
    check_choice("event_type", request.event_type, EVENT_TYPES)
    check_choice("visibility", request.visibility, EVENT_VISIBILITIES)
    if request.status is not None:
        check_choice("status", request.status, EVENT_STATUSES)
        if request.status == "cancelled":
            raise ValidationError("Cannot create a cancelled event", details={"field": "status"})
    for participant in request.participants:
        check_choice("role", participant.role, PARTICIPANT_ROLES)
        check_choice("participant status", participant.status, PARTICIPANT_STATUSES)
    return TimeWindow(request.start_time, request.end_time)


# =============================================================================
# Building events
# =============================================================================


def build_event(request: NewEvent, status: str) -> Event:
    """
    Build an unsaved event with its participants and bookings.

    Series anchors get series_id == id; the caller attaches the rule.
    """
    window = TimeWindow(request.start_time, request.end_time)
    event_id = uuid.uuid4()
    event = Event(
        id=event_id,
        organization_id=request.organization_id,
        title=request.title.strip(),
        description=request.description,
        event_type=request.event_type,
        start_time=window.start,
        end_time=window.end,
        status=status,
        visibility=request.visibility,
        team_id=request.team_id,
        location_id=request.location_id,
        series_id=event_id if request.recurrence is not None else None,
        created_by=request.created_by,
        event_metadata=dict(request.metadata or {}),
    )

    seen = set()
    for participant in request.participants:
        if participant.participant_id in seen:
            continue
        seen.add(participant.participant_id)
        event.participants.append(
            EventParticipant(
                participant_id=participant.participant_id,
                role=participant.role,
                status=participant.status,
            )
        )

    sync_bookings(event, request.resource_ids)
    return event


def copy_event(source: Event, start: datetime, end: datetime) -> Event:
    """
    Unsaved copy of an event's descriptive fields for a new window.

    Participants keep their RSVP; bookings are recreated for the new window.
    Recurrence linkage is left for the caller to set.
    """
    copy = Event(
        id=uuid.uuid4(),
        organization_id=source.organization_id,
        title=source.title,
        description=source.description,
        event_type=source.event_type,
        start_time=as_utc(start),
        end_time=as_utc(end),
        status=source.status,
        visibility=source.visibility,
        team_id=source.team_id,
        location_id=source.location_id,
        created_by=source.created_by,
        approved_by=source.approved_by,
        approved_at=source.approved_at,
        event_metadata=dict(source.event_metadata or {}),
    )

    for participant in source.participants:
        if participant.is_deleted:
            continue
        copy.participants.append(
            EventParticipant(
                participant_id=participant.participant_id,
                role=participant.role,
                status=participant.status,
                responded_at=participant.responded_at,
                response_message=participant.response_message,
            )
        )

    sync_bookings(copy, source.resource_ids)
    return copy


# =============================================================================
# Bookings
# =============================================================================


def booking_status_for(event: Event) -> str:
    if event.status == "confirmed" or get_settings().auto_confirm_bookings:
        return "confirmed"
    return "pending"


def sync_bookings(event: Event, resource_ids: Sequence[uuid.UUID]) -> None:
    """
    Make the event's live bookings match resource_ids.

    Dropped resources have their bookings cancelled; kept ones are moved to
    the event window; new ones are booked.
    """
    wanted = list(dict.fromkeys(resource_ids or ()))
    live = {b.resource_id: b for b in event.bookings if b.status != "cancelled"}
    status = booking_status_for(event)

    for resource_id, booking in live.items():
        if resource_id not in wanted:
            booking.status = "cancelled"

    for resource_id in wanted:
        booking = live.get(resource_id)
        if booking is not None:
            booking.start_time = event.start_time
            booking.end_time = event.end_time
            continue
        event.bookings.append(
            ResourceBooking(
                resource_id=resource_id,
                start_time=event.start_time,
                end_time=event.end_time,
                status=status,
            )
        )


def retime_bookings(event: Event) -> None:
    """Move live bookings to the event's current window."""
    for booking in event.bookings:
        if booking.status != "cancelled":
            booking.start_time = event.start_time
            booking.end_time = event.end_time


# =============================================================================
# Changes and lifecycle
# =============================================================================

_PLAIN_FIELDS = ("title", "description", "event_type", "status", "visibility", "team_id", "location_id")


def apply_changes(event: Event, changes: EventChanges) -> list[str]:
    """
    Apply a partial update to an event in place.

    Validates the whole change set before touching the event.

    Returns:
        Names of the fields whose value actually changed

    Raises:
        ValidationError: On invalid values or a window with end <= start
    """
    values = changes.as_dict()

    if "title" in values:
        _check_title(values["title"])
        values["title"] = values["title"].strip()
    if "event_type" in values:
        check_choice("event_type", values["event_type"], EVENT_TYPES)
    if "visibility" in values:
        check_choice("visibility", values["visibility"], EVENT_VISIBILITIES)
    if "status" in values:
        check_choice("status", values["status"], EVENT_STATUSES)
        if values["status"] == "cancelled":
            raise ValidationError(
                "Use cancel to cancel an event",
                details={"field": "status"},
            )

    window = TimeWindow(
        values.get("start_time", event.start_time),
        values.get("end_time", event.end_time),
    )

    changed = []
    for name in _PLAIN_FIELDS:
        if name in values and getattr(event, name) != values[name]:
            setattr(event, name, values[name])
            changed.append(name)

    if "metadata" in values and values["metadata"] != event.event_metadata:
        event.event_metadata = dict(values["metadata"] or {})
        changed.append("metadata")

    if window != TimeWindow.of(event):
        if window.start != as_utc(event.start_time):
            changed.append("start_time")
        if window.end != as_utc(event.end_time):
            changed.append("end_time")
        event.start_time = window.start
        event.end_time = window.end
        retime_bookings(event)

    if "resource_ids" in values:
        wanted = list(dict.fromkeys(values["resource_ids"] or ()))
        if wanted != event.resource_ids:
            sync_bookings(event, wanted)
            changed.append("resource_ids")

    if "status" in changed and event.status == "confirmed":
        _confirm_bookings(event)

    return changed


def _confirm_bookings(event: Event) -> None:
    for booking in event.bookings:
        if booking.status == "pending":
            booking.status = "confirmed"


def approve_event(event: Event, approver_id: uuid.UUID, now: Optional[datetime] = None) -> Event:
    """
    Confirm an event and its pending bookings.

    Raises:
        ValidationError: If the event is cancelled
    """
    if event.is_cancelled:
        raise ValidationError(
            "Cannot approve a cancelled event",
            details={"event_id": str(event.id)},
        )
    event.status = "confirmed"
    event.approved_by = approver_id
    event.approved_at = now or utcnow()
    _confirm_bookings(event)
    logger.info(f"Approved event {event.id} by {approver_id}")
    return event


def cancel_event(event: Event, reason: Optional[str] = None, now: Optional[datetime] = None) -> Event:
    """
    Cancel (soft delete) an event and release its bookings.

    The row stays for audit; cancelled events are ignored by conflict checks
    and expansion.
    """
    if event.is_cancelled:
        return event
    event.status = "cancelled"
    event.cancelled_at = now or utcnow()
    event.deleted_at = event.cancelled_at
    event.cancellation_reason = reason
    for booking in event.bookings:
        booking.status = "cancelled"
    logger.info(f"Cancelled event {event.id}")
    return event


def recipient_ids(event: Event) -> tuple[uuid.UUID, ...]:
    """Participants who should hear about changes (everyone but decliners)."""
    return tuple(
        p.participant_id
        for p in event.participants
        if not p.is_deleted and p.status != "declined"
    )

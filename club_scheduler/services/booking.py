"""
Booking coordinator.

Entry point for every write that claims time: creating and updating events,
editing and deleting series, approval, cancellation, RSVPs and participant
changes. Event listings are served from here too.

Each booking write runs as one unit:
1. Validate the request and its references
2. Take the scope locks (resources, team, location) in sorted order
3. Apply the change inside a store transaction
4. Re-check conflicts against the resulting state, excluding the event or
   series being written
5. Commit, or roll everything back and raise ConflictError

Notifications go out after commit and never fail the operation.
"""

import logging
import math
from dataclasses import dataclass
from datetime import MAXYEAR, date, datetime, timedelta, timezone
from itertools import islice
from typing import Callable, Iterator, Optional, Sequence, TypeVar, Union
from uuid import UUID

from club_scheduler.config import Settings, get_settings
from club_scheduler.exceptions import ConflictError, NotFoundError, ValidationError
from club_scheduler.models.base import as_utc
from club_scheduler.models.events import PARTICIPANT_ROLES, PARTICIPANT_STATUSES, Event, EventParticipant
from club_scheduler.models.recurrence import RecurrenceRule
from club_scheduler.services import events as lifecycle
from club_scheduler.services.conflicts import ConflictCandidate, ConflictDetector, ConflictEntry
from club_scheduler.services.events import (
    EventChanges,
    NewEvent,
    ParticipantInput,
    UpdateEvent,
    build_event,
    check_choice,
    validate_new_event,
)
from club_scheduler.services.notifications import (
    LoggingNotifier,
    NotificationIntent,
    NotificationKind,
    Notifier,
    dispatch,
)
from club_scheduler.services.recurrence import (
    MonthDayPolicy,
    Occurrence,
    RecurrencePattern,
    iter_occurrences,
)
from club_scheduler.services.series import EditMode, SeriesEditor, coerce_edit_mode, occurrence_start
from club_scheduler.services.windows import TimeWindow
from club_scheduler.store.base import EventFilters, EventStore
from club_scheduler.store.locks import ScopeLockRegistry, get_lock_registry, scope_keys

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Changes that move or claim time and so need a fresh conflict check
_SCHEDULING_FIELDS = frozenset({"start_time", "end_time", "resource_ids", "team_id", "location_id"})

# Occurrence windows checked per store lookup when validating a series
_CHECK_CHUNK_SIZE = 200

# Search end for count-bounded series; the count stops the walk first
_END_OF_CALENDAR = datetime(MAXYEAR, 12, 31, tzinfo=timezone.utc)


@dataclass
class EventPage:
    """One page of an event listing."""

    events: list[Event]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


class BookingCoordinator:
    """
    Serializes conflict-check-then-commit for bookings.

    Example:
        coordinator = BookingCoordinator(SQLAlchemyEventStore(session))
        event = coordinator.create_event(NewEvent(...))
    """

    def __init__(
        self,
        store: EventStore,
        notifier: Optional[Notifier] = None,
        locks: Optional[ScopeLockRegistry] = None,
        settings: Optional[Settings] = None,
        policy: Optional[MonthDayPolicy] = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._policy = MonthDayPolicy(policy or self._settings.month_day_policy)
        self._notifier = notifier or LoggingNotifier()
        self._locks = locks or get_lock_registry()
        self.detector = ConflictDetector(store, self._policy)
        self.editor = SeriesEditor(store, self._policy)

    # =========================================================================
    # Conflict checks
    # =========================================================================

    def check_conflicts(self, candidate: ConflictCandidate) -> list[ConflictEntry]:
        """Read-only conflict check; takes no locks and writes nothing."""
        return self.detector.find_conflicts(candidate)

    def get_event(self, event_id: UUID) -> Event:
        """
        Get an event, cancelled ones included.

        Raises:
            NotFoundError: If no such event exists
        """
        event = self._store.get_event(event_id, include_deleted=True)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found", details={"event_id": str(event_id)})
        return event

    # =========================================================================
    # Listings
    # =========================================================================

    def list_events(self, filters: EventFilters, page: int = 1, limit: int = 20) -> EventPage:
        """
        One page of live events matching the filters, ordered by start.

        Series appear once, as their anchor.

        Raises:
            ValidationError: If page or limit is below 1
        """
        if page < 1 or limit < 1:
            raise ValidationError(
                "page and limit must be at least 1",
                details={"page": page, "limit": limit},
            )
        total = self._store.count_events(filters)
        events = self._store.list_events(filters, offset=(page - 1) * limit, limit=limit)
        return EventPage(events=list(events), page=page, limit=limit, total=total)

    def events_in_range(self, organization_id: UUID, query_range: TimeWindow) -> list[Event]:
        """Live events of an organization starting inside the range."""
        filters = EventFilters(organization_id=organization_id, starts_in=query_range)
        return list(self._store.list_events(filters))

    def upcoming_events(self, user_id: UUID, organization_id: UUID, days: int = 7) -> list[Event]:
        """
        Events starting in the next `days` days that the user can see.

        Public events count, as do events the user takes part in.
        Cancelled events are left out.
        """
        if days < 1:
            raise ValidationError("days must be at least 1", details={"days": days})
        now = self._store.now()
        filters = EventFilters(
            organization_id=organization_id,
            starts_in=TimeWindow(now, now + timedelta(days=days)),
            visible_to=user_id,
        )
        return list(self._store.list_events(filters))

    # =========================================================================
    # Create / update
    # =========================================================================

    def create_or_update(self, request: Union[NewEvent, UpdateEvent]) -> Event:
        if isinstance(request, NewEvent):
            return self.create_event(request)
        if isinstance(request, UpdateEvent):
            return self.update_event(request.event_id, request.changes)
        raise ValidationError(f"Unsupported booking request: {type(request).__name__}")

    def create_event(self, request: NewEvent) -> Event:
        """
        Create a single event or a series anchor with its bookings.

        Raises:
            ValidationError: On invalid fields or window
            InvalidRuleError: On an invalid recurrence
            NotFoundError: If the team, location or a resource does not exist
            ConflictError: If the new commitments collide with existing ones
        """
        window = validate_new_event(request)
        pattern = request.recurrence.to_pattern(window.start) if request.recurrence else None
        self._require_references(request.team_id, request.location_id, request.resource_ids)

        status = request.status or self._settings.default_event_status
        keys = scope_keys(request.resource_ids, request.team_id, request.location_id)

        def mutate() -> Event:
            event = build_event(request, status)
            if pattern is not None:
                rule = RecurrenceRule(**pattern.to_columns())
                event.recurrence_rule = rule
                self._store.add(rule)
            self._store.add(event)
            self._store.flush()
            self._raise_on_conflicts(event)
            return event

        event = self._locked(keys, mutate)
        logger.info(f"Created event {event.id} ({event.title})")
        self._notify(NotificationKind.CREATED, event)
        return event

    def update_event(self, event_id: UUID, changes: EventChanges) -> Event:
        """
        Apply a partial update to an event.

        Updates to a series anchor apply to all occurrences.

        Raises:
            NotFoundError: If the event (or a new reference) does not exist
            ValidationError: On invalid fields or a cancelled event
            ConflictError: If the updated commitments collide
        """
        event = self._get_live_event(event_id)
        if event.is_recurring:
            return self.edit_series(event_id, None, changes, EditMode.ALL)

        keys = self._scope_keys_after(event, changes)

        def mutate() -> tuple[Event, list[str]]:
            changed = lifecycle.apply_changes(event, changes)
            self._store.flush()
            self._raise_on_conflicts(event)
            return event, changed

        self._require_changed_references(changes)
        event, changed = self._locked(keys, mutate)
        logger.info(f"Updated event {event.id}: {', '.join(changed) or 'no changes'}")
        if changed:
            self._notify(NotificationKind.UPDATED, event, changed)
        return event

    # =========================================================================
    # Series
    # =========================================================================

    def edit_series(
        self,
        anchor_id: UUID,
        target_date: Optional[date],
        changes: EventChanges,
        mode: Union[EditMode, str],
    ) -> Union[Event, list[Event]]:
        """
        Edit one occurrence, the occurrences from a date on, or a whole series.

        Returns:
            As SeriesEditor.edit

        Raises:
            NotFoundError: If the anchor does not exist
            NotRecurringError / InvalidEditTypeError / ValidationError:
                From the series editor
            ConflictError: If the edited occurrences collide
        """
        mode = coerce_edit_mode(mode)
        anchor = self._get_live_event(anchor_id)
        self._require_changed_references(changes)
        keys = self._scope_keys_after(anchor, changes)

        # Single and future edits create events; "all" only matters when it moves time
        needs_check = mode is not EditMode.ALL or bool(_SCHEDULING_FIELDS & set(changes.as_dict()))

        def mutate() -> Union[Event, list[Event]]:
            result = self.editor.edit(anchor, target_date, changes, mode)
            if needs_check:
                for event in result if isinstance(result, list) else [result]:
                    self._raise_on_conflicts(event)
            return result

        result = self._locked(keys, mutate)
        for event in result if isinstance(result, list) else [result]:
            self._notify(
                NotificationKind.UPDATED,
                event,
                list(changes.as_dict()),
                occurrence_date=target_date if mode is EditMode.SINGLE else None,
            )
        return result

    def delete_series(
        self,
        anchor_id: UUID,
        target_date: Optional[date],
        mode: Union[EditMode, str],
        reason: Optional[str] = None,
    ) -> list[Event]:
        """
        Delete one occurrence, the occurrences from a date on, or a whole series.

        Deletes only release time, so no conflict check is needed.

        Returns:
            Events cancelled by the delete
        """
        mode = coerce_edit_mode(mode)
        anchor = self._get_live_event(anchor_id)
        keys = scope_keys(anchor.resource_ids, anchor.team_id, anchor.location_id)

        def mutate() -> list[Event]:
            return self.editor.delete(anchor, target_date, mode, reason)

        cancelled = self._locked(keys, mutate)
        for event in cancelled:
            self._notify(NotificationKind.CANCELLED, event)
        if not cancelled:
            self._notify(NotificationKind.UPDATED, anchor, ["recurrence"], occurrence_date=target_date)
        return cancelled

    def list_instances(
        self,
        event_id: UUID,
        query_range: TimeWindow,
        limit: Optional[int] = None,
    ) -> list[Union[Occurrence, Event]]:
        """
        Everything a series puts on the calendar in a range.

        Generated occurrences plus live exception events, sorted by start.
        A non-recurring event is returned alone when it overlaps the range.
        """
        event = self._get_live_event(event_id)
        limit = limit or self._settings.max_expansion_instances

        if not event.is_recurring:
            return [event] if TimeWindow.of(event).overlaps(query_range) else []

        pattern = RecurrencePattern.from_rule(event.recurrence_rule)
        instances: list[Union[Occurrence, Event]] = list(
            islice(iter_occurrences(pattern, event, query_range, self._policy), limit)
        )
        for exception in self._store.get_exception_events(event.id):
            if query_range.contains(exception.start_time):
                instances.append(exception)

        instances.sort(key=lambda i: (as_utc(i.start_time), as_utc(i.end_time)))
        return instances[:limit]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def approve_event(self, event_id: UUID, approver_id: UUID) -> Event:
        """
        Confirm a pending event and its bookings.

        Raises:
            NotFoundError: If the event does not exist or is cancelled
        """
        event = self._get_live_event(event_id)
        with self._store.transaction():
            lifecycle.approve_event(event, approver_id, now=self._store.now())
            self._store.flush()
        self._notify(NotificationKind.APPROVED, event, ["status"])
        return event

    def cancel_event(self, event_id: UUID, reason: Optional[str] = None) -> Event:
        """
        Cancel an event and release its bookings.

        Cancelling a series anchor cancels the whole series.

        Raises:
            NotFoundError: If the event does not exist or is already cancelled
            ValidationError: If the event has already ended
        """
        event = self._get_live_event(event_id)
        if event.is_recurring:
            cancelled = self.delete_series(event_id, None, EditMode.ALL, reason)
            return cancelled[0]

        now = self._store.now()
        if as_utc(event.end_time) <= now:
            raise ValidationError(
                "Cannot cancel an event that has already ended",
                details={"event_id": str(event.id), "end_time": as_utc(event.end_time).isoformat()},
            )

        with self._store.transaction():
            lifecycle.cancel_event(event, reason, now=now)
            self._store.flush()
        self._notify(NotificationKind.CANCELLED, event)
        return event

    def respond(
        self,
        event_id: UUID,
        participant_id: UUID,
        status: str,
        message: Optional[str] = None,
    ) -> EventParticipant:
        """
        Record a participant's RSVP.

        Raises:
            ValidationError: On an unknown status
            NotFoundError: If the event or participant does not exist
        """
        check_choice("status", status, PARTICIPANT_STATUSES)
        self._get_live_event(event_id)
        participant = self._store.get_participant(event_id, participant_id)
        if participant is None:
            raise NotFoundError(
                f"Participant {participant_id} not found on event {event_id}",
                details={"event_id": str(event_id), "participant_id": str(participant_id)},
            )

        with self._store.transaction():
            participant.status = status
            participant.response_message = message
            participant.responded_at = self._store.now()
            self._store.flush()

        logger.info(f"Participant {participant_id} responded {status} to event {event_id}")
        return participant

    def add_participants(
        self,
        event_id: UUID,
        participants: Sequence[ParticipantInput],
    ) -> list[EventParticipant]:
        """
        Invite participants to an event.

        People already on the event are left as they are. Someone removed
        earlier is invited again with a fresh RSVP.

        Returns:
            The participant rows for everyone requested, in request order

        Raises:
            ValidationError: On an empty list or an unknown role or status
            NotFoundError: If the event does not exist or is cancelled
        """
        if not participants:
            raise ValidationError("No participants given", details={"field": "participants"})
        for participant in participants:
            check_choice("role", participant.role, PARTICIPANT_ROLES)
            check_choice("participant status", participant.status, PARTICIPANT_STATUSES)
        event = self._get_live_event(event_id)

        rows: dict[UUID, EventParticipant] = {}
        added = 0
        with self._store.transaction():
            for participant in participants:
                if participant.participant_id in rows:
                    continue
                row = self._store.get_participant(event_id, participant.participant_id, include_deleted=True)
                if row is None:
                    row = EventParticipant(
                        participant_id=participant.participant_id,
                        role=participant.role,
                        status=participant.status,
                    )
                    event.participants.append(row)
                    added += 1
                elif row.is_deleted:
                    row.deleted_at = None
                    row.role = participant.role
                    row.status = participant.status
                    row.responded_at = None
                    row.response_message = None
                    added += 1
                rows[participant.participant_id] = row
            self._store.flush()

        logger.info(f"Added {added} participants to event {event_id}")
        if added:
            self._notify(NotificationKind.UPDATED, event, ["participants"])
        return list(rows.values())

    def remove_participant(self, event_id: UUID, participant_id: UUID) -> EventParticipant:
        """
        Take a participant off an event.

        The row is soft deleted, so the participant stops blocking their
        time and stops receiving notifications for the event.

        Raises:
            NotFoundError: If the event or participant does not exist
        """
        event = self._get_live_event(event_id)
        participant = self._store.get_participant(event_id, participant_id)
        if participant is None:
            raise NotFoundError(
                f"Participant {participant_id} not found on event {event_id}",
                details={"event_id": str(event_id), "participant_id": str(participant_id)},
            )

        with self._store.transaction():
            participant.deleted_at = self._store.now()
            self._store.flush()

        logger.info(f"Removed participant {participant_id} from event {event_id}")
        self._notify(NotificationKind.UPDATED, event, ["participants"])
        return participant

    # =========================================================================
    # Internals
    # =========================================================================

    def _locked(self, keys: Sequence[str], mutate: Callable[[], T]) -> T:
        with self._locks.hold(keys, timeout=self._settings.lock_timeout_seconds):
            with self._store.transaction():
                self._store.lock_scopes(keys)
                return mutate()

    def _raise_on_conflicts(self, event: Event) -> None:
        conflicts = self._conflicts_of(event)
        if conflicts:
            logger.info(f"Rejected booking for {event.title}: {len(conflicts)} conflicts")
            raise ConflictError(
                f"Booking conflicts with {len(conflicts)} existing commitments",
                conflicts,
            )

    def _conflicts_of(self, event: Event) -> list[ConflictEntry]:
        """Conflicts of an event's stored state, ignoring itself (or its series)."""
        if event.is_cancelled:
            return []

        if event.recurrence_rule is None:
            candidate = ConflictCandidate(
                window=TimeWindow.of(event),
                resource_ids=tuple(event.resource_ids),
                team_id=event.team_id,
                location_id=event.location_id,
                exclude_event_id=event.id,
            )
            return self.detector.find_conflicts(candidate)

        entries: set[ConflictEntry] = set()
        for windows in self._series_windows(event):
            candidate = ConflictCandidate(
                window=windows[0],
                resource_ids=tuple(event.resource_ids),
                team_id=event.team_id,
                location_id=event.location_id,
                exclude_event_id=event.id,
                exclude_series_ids=(event.series_id,) if event.series_id else (),
            )
            entries.update(self.detector.find_conflicts_for_windows(candidate, windows))
        return sorted(entries, key=lambda e: e.sort_key)

    def _series_windows(self, anchor: Event) -> Iterator[list[TimeWindow]]:
        """
        Occurrence windows of a series, in chunks of _CHECK_CHUNK_SIZE.

        Series bounded by end_date or count are walked to their last
        occurrence; open-ended ones up to series_check_horizon_days.
        """
        pattern = RecurrencePattern.from_rule(anchor.recurrence_rule)
        start = as_utc(anchor.start_time)
        if pattern.end_date is not None:
            search_end = occurrence_start(anchor, pattern.end_date) + timedelta(days=1)
        elif pattern.count is not None:
            search_end = _END_OF_CALENDAR
        else:
            search_end = start + timedelta(days=self._settings.series_check_horizon_days)
        search = TimeWindow(start, max(search_end, as_utc(anchor.end_time)))

        occurrences = iter_occurrences(pattern, anchor, search, self._policy)
        while True:
            chunk = [o.window for o in islice(occurrences, _CHECK_CHUNK_SIZE)]
            if not chunk:
                return
            yield chunk

    def _get_live_event(self, event_id: UUID) -> Event:
        event = self._store.get_event(event_id)
        if event is None or event.is_cancelled:
            raise NotFoundError(f"Event {event_id} not found", details={"event_id": str(event_id)})
        return event

    def _require_references(
        self,
        team_id: Optional[UUID],
        location_id: Optional[UUID],
        resource_ids: Sequence[UUID],
    ) -> None:
        if team_id is not None and not self._store.team_exists(team_id):
            raise NotFoundError(f"Team {team_id} not found", details={"team_id": str(team_id)})
        if location_id is not None and not self._store.location_exists(location_id):
            raise NotFoundError(
                f"Location {location_id} not found",
                details={"location_id": str(location_id)},
            )
        missing = [str(rid) for rid in resource_ids if not self._store.resource_exists(rid)]
        if missing:
            raise NotFoundError(
                f"Resources not found: {', '.join(missing)}",
                details={"resource_ids": missing},
            )

    def _require_changed_references(self, changes: EventChanges) -> None:
        self._require_references(
            changes.team_id if changes.is_set("team_id") else None,
            changes.location_id if changes.is_set("location_id") else None,
            (changes.resource_ids or ()) if changes.is_set("resource_ids") else (),
        )

    @staticmethod
    def _scope_keys_after(event: Event, changes: EventChanges) -> list[str]:
        """Scope keys of the event as it will be after changes."""
        values = changes.as_dict()
        return scope_keys(
            values.get("resource_ids", event.resource_ids) or (),
            values.get("team_id", event.team_id),
            values.get("location_id", event.location_id),
        )

    def _notify(
        self,
        kind: NotificationKind,
        event: Event,
        changes: Sequence[str] = (),
        occurrence_date: Optional[date] = None,
    ) -> None:
        intent = NotificationIntent.for_event(kind, event, changes, occurrence_date)
        dispatch(self._notifier, intent)

"""
Event store protocol.

Defines the persistence port the scheduling services run on. The booking
coordinator only talks to storage through this interface, so the
conflict-check-then-write sequence can be reasoned about in one place.
"""

from abc import abstractmethod
from dataclasses import dataclass
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence, TYPE_CHECKING
from uuid import UUID

from club_scheduler.models.events import Event, EventParticipant
from club_scheduler.models.recurrence import RecurrenceRule

if TYPE_CHECKING:
    from club_scheduler.services.windows import TimeWindow

# Participant RSVP statuses that block the participant's time
BLOCKING_PARTICIPANT_STATUSES = ("accepted", "tentative")


@dataclass(frozen=True)
class EventFilters:
    """
    Criteria for event listings. Unset fields do not filter.

    starts_in keeps events whose start falls inside the window. search
    matches title or description, case-insensitively. visible_to keeps
    public events and events the user takes part in, and drops cancelled
    ones.
    """

    organization_id: Optional[UUID] = None
    team_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    resource_id: Optional[UUID] = None
    event_type: Optional[str] = None
    status: Optional[str] = None
    created_by: Optional[UUID] = None
    participant_id: Optional[UUID] = None
    starts_in: Optional["TimeWindow"] = None
    search: Optional[str] = None
    visible_to: Optional[UUID] = None


class EventStore(Protocol):
    """
    Protocol for scheduling storage backends.

    Implementations:
    - SQLAlchemyEventStore: Uses the relational database (SQLite or PostgreSQL)

    Reads never return soft-deleted rows unless asked to.
    """

    @abstractmethod
    def get_event(self, event_id: UUID, include_deleted: bool = False) -> Optional[Event]:
        """
        Get a single event by ID.

        Args:
            event_id: Event ID
            include_deleted: Also return cancelled (soft-deleted) events

        Returns:
            Event or None if not found
        """
        ...

    @abstractmethod
    def get_rule(self, rule_id: UUID) -> Optional[RecurrenceRule]:
        """Get a recurrence rule by ID."""
        ...

    @abstractmethod
    def get_exception_events(self, anchor_id: UUID) -> Sequence[Event]:
        """
        Get live exception instances of a series anchor.

        Returns:
            Exception events ordered by the occurrence date they replace
        """
        ...

    @abstractmethod
    def get_participant(
        self,
        event_id: UUID,
        participant_id: UUID,
        include_deleted: bool = False,
    ) -> Optional[EventParticipant]:
        """Get one participant row of an event (removed ones only when asked)."""
        ...

    @abstractmethod
    def list_events(
        self,
        filters: EventFilters,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Sequence[Event]:
        """
        Get live events matching the filters.

        Series are listed once, by their anchor; exception instances are
        listed as events of their own.

        Args:
            filters: Listing criteria
            offset: Rows to skip
            limit: Maximum rows to return (None for all)

        Returns:
            Events ordered by start time, with participants and bookings loaded
        """
        ...

    @abstractmethod
    def count_events(self, filters: EventFilters) -> int:
        """Number of events list_events would return without paging."""
        ...

    @abstractmethod
    def find_single_commitments(
        self,
        window: "TimeWindow",
        resource_ids: Sequence[UUID] = (),
        team_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        participant_ids: Sequence[UUID] = (),
    ) -> Sequence[Event]:
        """
        Get live non-recurring events that could collide with a window.

        An event qualifies when it overlaps the window and shares the team,
        the location or a blocking participant, or when one of its live
        bookings of a listed resource overlaps the window. Exception
        instances of a series are non-recurring events.

        Returns:
            Events with bookings and participants loaded
        """
        ...

    @abstractmethod
    def find_recurring_anchors(
        self,
        window: "TimeWindow",
        resource_ids: Sequence[UUID] = (),
        team_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        participant_ids: Sequence[UUID] = (),
    ) -> Sequence[Event]:
        """
        Get live series anchors sharing any listed dimension whose rule
        starts before the window ends.

        Callers expand the rule to decide actual overlap.

        Returns:
            Anchors with their rule, bookings and participants loaded
        """
        ...

    @abstractmethod
    def team_exists(self, team_id: UUID) -> bool:
        ...

    @abstractmethod
    def location_exists(self, location_id: UUID) -> bool:
        ...

    @abstractmethod
    def resource_exists(self, resource_id: UUID) -> bool:
        ...

    @abstractmethod
    def add(self, instance: Any) -> None:
        """Stage a new row for insertion."""
        ...

    @abstractmethod
    def flush(self) -> None:
        """Push staged changes to the database without committing."""
        ...

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Unit of work: commits when the block exits normally, rolls back
        every staged change when it raises.
        """
        ...

    @abstractmethod
    def lock_scopes(self, keys: Sequence[str]) -> None:
        """
        Take database-level locks on scope keys for the current transaction.

        Backends without cross-process locking treat this as a no-op; the
        process-local ScopeLockRegistry still serializes writers.
        """
        ...

    @abstractmethod
    def now(self) -> datetime:
        """Current UTC instant as seen by the store."""
        ...

"""
SQLAlchemy implementation of the event store.

Provides the query patterns the scheduler needs with:
- Eager loading of bookings and participants to avoid N+1 queries
- Soft deletion handling
- Overlap filtering pushed into SQL
- PostgreSQL advisory locks for cross-process serialization
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional, Sequence, TYPE_CHECKING
from uuid import UUID

from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.orm import Session, selectinload

from club_scheduler.models.base import utcnow
from club_scheduler.models.events import Event, EventParticipant
from club_scheduler.models.organization import Team
from club_scheduler.models.recurrence import RecurrenceRule
from club_scheduler.models.resources import Location, Resource, ResourceBooking
from club_scheduler.store.base import BLOCKING_PARTICIPANT_STATUSES, EventFilters

if TYPE_CHECKING:
    from club_scheduler.services.windows import TimeWindow

logger = logging.getLogger(__name__)


class SQLAlchemyEventStore:
    """
    Event store backed by a SQLAlchemy session.

    The store does not own the session: callers (API dependencies, tests)
    create and close it. transaction() commits or rolls back that session.
    """

    def __init__(self, session: Session):
        self.session = session

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_event(self, event_id: UUID, include_deleted: bool = False) -> Optional[Event]:
        conditions = [Event.id == event_id]
        if not include_deleted:
            conditions.append(Event.deleted_at.is_(None))

        stmt = (
            select(Event)
            .where(and_(*conditions))
            .options(
                selectinload(Event.recurrence_rule),
                selectinload(Event.participants),
                selectinload(Event.bookings),
            )
        )
        return self.session.scalars(stmt).first()

    def get_rule(self, rule_id: UUID) -> Optional[RecurrenceRule]:
        rule = self.session.get(RecurrenceRule, rule_id)
        if rule is None or rule.is_deleted:
            return None
        return rule

    def get_exception_events(self, anchor_id: UUID) -> Sequence[Event]:
        stmt = (
            select(Event)
            .where(
                and_(
                    Event.parent_event_id == anchor_id,
                    Event.deleted_at.is_(None),
                    Event.status != "cancelled",
                )
            )
            .options(
                selectinload(Event.participants),
                selectinload(Event.bookings),
            )
            .order_by(Event.recurrence_exception_date, Event.start_time)
        )
        return self.session.scalars(stmt).all()

    def get_participant(
        self,
        event_id: UUID,
        participant_id: UUID,
        include_deleted: bool = False,
    ) -> Optional[EventParticipant]:
        conditions = [
            EventParticipant.event_id == event_id,
            EventParticipant.participant_id == participant_id,
        ]
        if not include_deleted:
            conditions.append(EventParticipant.deleted_at.is_(None))

        stmt = select(EventParticipant).where(and_(*conditions))
        return self.session.scalars(stmt).first()

    # =========================================================================
    # Listings
    # =========================================================================

    def list_events(
        self,
        filters: EventFilters,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Sequence[Event]:
        stmt = (
            select(Event)
            .where(and_(*_listing_conditions(filters)))
            .options(
                selectinload(Event.recurrence_rule),
                selectinload(Event.participants),
                selectinload(Event.bookings),
            )
            .order_by(Event.start_time, Event.id)
            .offset(offset)
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def count_events(self, filters: EventFilters) -> int:
        stmt = select(func.count()).select_from(Event).where(and_(*_listing_conditions(filters)))
        return self.session.scalar(stmt) or 0

    # =========================================================================
    # Conflict candidates
    # =========================================================================

    def find_single_commitments(
        self,
        window: "TimeWindow",
        resource_ids: Sequence[UUID] = (),
        team_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        participant_ids: Sequence[UUID] = (),
    ) -> Sequence[Event]:
        overlaps = and_(Event.start_time < window.end, Event.end_time > window.start)

        dimensions = []
        if team_id is not None:
            dimensions.append(and_(overlaps, Event.team_id == team_id))
        if location_id is not None:
            dimensions.append(and_(overlaps, Event.location_id == location_id))
        if participant_ids:
            dimensions.append(
                and_(overlaps, Event.id.in_(_blocking_participations(participant_ids)))
            )
        if resource_ids:
            booked = select(ResourceBooking.event_id).where(
                and_(
                    ResourceBooking.resource_id.in_(list(resource_ids)),
                    ResourceBooking.status != "cancelled",
                    ResourceBooking.deleted_at.is_(None),
                    ResourceBooking.start_time < window.end,
                    ResourceBooking.end_time > window.start,
                )
            )
            dimensions.append(Event.id.in_(booked))

        if not dimensions:
            return []

        stmt = (
            select(Event)
            .where(
                and_(
                    Event.deleted_at.is_(None),
                    Event.status != "cancelled",
                    Event.recurrence_rule_id.is_(None),
                    or_(*dimensions),
                )
            )
            .options(
                selectinload(Event.participants),
                selectinload(Event.bookings),
            )
            .order_by(Event.start_time, Event.id)
        )
        return self.session.scalars(stmt).all()

    def find_recurring_anchors(
        self,
        window: "TimeWindow",
        resource_ids: Sequence[UUID] = (),
        team_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        participant_ids: Sequence[UUID] = (),
    ) -> Sequence[Event]:
        dimensions = []
        if team_id is not None:
            dimensions.append(Event.team_id == team_id)
        if location_id is not None:
            dimensions.append(Event.location_id == location_id)
        if participant_ids:
            dimensions.append(Event.id.in_(_blocking_participations(participant_ids)))
        if resource_ids:
            booked = select(ResourceBooking.event_id).where(
                and_(
                    ResourceBooking.resource_id.in_(list(resource_ids)),
                    ResourceBooking.status != "cancelled",
                    ResourceBooking.deleted_at.is_(None),
                )
            )
            dimensions.append(Event.id.in_(booked))

        if not dimensions:
            return []

        stmt = (
            select(Event)
            .join(RecurrenceRule, Event.recurrence_rule_id == RecurrenceRule.id)
            .where(
                and_(
                    Event.deleted_at.is_(None),
                    Event.status != "cancelled",
                    RecurrenceRule.deleted_at.is_(None),
                    RecurrenceRule.start_date < window.end,
                    or_(*dimensions),
                )
            )
            .options(
                selectinload(Event.recurrence_rule),
                selectinload(Event.participants),
                selectinload(Event.bookings),
            )
            .order_by(Event.start_time, Event.id)
        )
        return self.session.scalars(stmt).all()

    # =========================================================================
    # Existence checks
    # =========================================================================

    def _is_active(self, model: Any, row_id: UUID) -> bool:
        row = self.session.get(model, row_id)
        return row is not None and not row.is_deleted and row.active

    def team_exists(self, team_id: UUID) -> bool:
        return self._is_active(Team, team_id)

    def location_exists(self, location_id: UUID) -> bool:
        return self._is_active(Location, location_id)

    def resource_exists(self, resource_id: UUID) -> bool:
        return self._is_active(Resource, resource_id)

    # =========================================================================
    # Unit of work
    # =========================================================================

    def add(self, instance: Any) -> None:
        self.session.add(instance)

    def flush(self) -> None:
        self.session.flush()

    @contextmanager
    def transaction(self) -> Iterator["SQLAlchemyEventStore"]:
        """
        Commit on success, roll back on any exception.

        Example:
            with store.transaction():
                store.add(event)
        """
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def lock_scopes(self, keys: Sequence[str]) -> None:
        if self.session.get_bind().dialect.name != "postgresql":
            return
        # Transaction-scoped: released on commit or rollback
        for key in sorted(set(keys)):
            logger.debug(f"Taking advisory lock on {key}")
            self.session.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": key},
            )

    def now(self) -> datetime:
        return utcnow()


def _blocking_participations(participant_ids: Sequence[UUID]):
    """Subquery of event ids where any participant blocks their time."""
    return select(EventParticipant.event_id).where(
        and_(
            EventParticipant.participant_id.in_(list(participant_ids)),
            EventParticipant.status.in_(BLOCKING_PARTICIPANT_STATUSES),
            EventParticipant.deleted_at.is_(None),
        )
    )


def _participations(participant_id: UUID):
    """Subquery of event ids the participant has not been removed from."""
    return select(EventParticipant.event_id).where(
        and_(
            EventParticipant.participant_id == participant_id,
            EventParticipant.deleted_at.is_(None),
        )
    )


def _listing_conditions(filters: EventFilters) -> list:
    conditions = [Event.deleted_at.is_(None)]

    if filters.organization_id is not None:
        conditions.append(Event.organization_id == filters.organization_id)
    if filters.team_id is not None:
        conditions.append(Event.team_id == filters.team_id)
    if filters.location_id is not None:
        conditions.append(Event.location_id == filters.location_id)
    if filters.event_type is not None:
        conditions.append(Event.event_type == filters.event_type)
    if filters.status is not None:
        conditions.append(Event.status == filters.status)
    if filters.created_by is not None:
        conditions.append(Event.created_by == filters.created_by)
    if filters.resource_id is not None:
        booked = select(ResourceBooking.event_id).where(
            and_(
                ResourceBooking.resource_id == filters.resource_id,
                ResourceBooking.status != "cancelled",
                ResourceBooking.deleted_at.is_(None),
            )
        )
        conditions.append(Event.id.in_(booked))
    if filters.participant_id is not None:
        conditions.append(Event.id.in_(_participations(filters.participant_id)))
    if filters.starts_in is not None:
        conditions.append(Event.start_time >= filters.starts_in.start)
        conditions.append(Event.start_time < filters.starts_in.end)
    if filters.search:
        pattern = f"%{filters.search}%"
        conditions.append(or_(Event.title.ilike(pattern), Event.description.ilike(pattern)))
    if filters.visible_to is not None:
        conditions.append(Event.status != "cancelled")
        conditions.append(
            or_(
                Event.visibility == "public",
                Event.id.in_(_participations(filters.visible_to)),
            )
        )

    return conditions

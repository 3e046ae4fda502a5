"""
Event and EventParticipant models.

Entities:
- Event: One schedulable activity (practice, game, meeting), possibly the
  anchor of a recurring series or an exception instance of one
- EventParticipant: A user's participation and RSVP on an event
"""

import uuid
from datetime import date, datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Text, Date, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from club_scheduler.models.base import BaseModel, get_json_type

if TYPE_CHECKING:
    from club_scheduler.models.recurrence import RecurrenceRule
    from club_scheduler.models.resources import ResourceBooking


EVENT_TYPES = ("practice", "game", "meeting", "training", "tournament", "other")
EVENT_STATUSES = ("draft", "pending", "confirmed", "cancelled")
EVENT_VISIBILITIES = ("private", "team", "public")

PARTICIPANT_ROLES = ("organizer", "required", "optional")
PARTICIPANT_STATUSES = ("pending", "accepted", "declined", "tentative")


class Event(BaseModel):
    """
    Represents one schedulable activity.

    Events can be:
    - Single events
    - Series anchors (recurrence_rule_id set, series_id == id)
    - Exception instances (parent_event_id and recurrence_exception_date set)

    Lifecycle:
    - draft / pending (awaiting approval) → confirmed
    - any → cancelled (soft: deleted_at set, row kept for audit)
    """

    __tablename__ = "events"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        doc="Owning organization"
    )

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="practice",
        doc="Event type: 'practice', 'game', 'meeting', 'training', 'tournament', 'other'"
    )

    # Timing
    start_time: Mapped[datetime] = mapped_column(
        nullable=False,
        doc="Event start time (UTC)"
    )

    end_time: Mapped[datetime] = mapped_column(
        nullable=False,
        doc="Event end time (UTC, exclusive)"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="pending",
        doc="Status: 'draft', 'pending', 'confirmed', 'cancelled'"
    )

    visibility: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="team",
        doc="Visibility: 'private', 'team', 'public'"
    )

    # Associations
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("teams.id"),
        nullable=True,
    )

    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("locations.id"),
        nullable=True,
    )

    # Recurrence linkage
    recurrence_rule_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("recurrence_rules.id"),
        nullable=True,
        doc="Rule owned by this event when it anchors a series"
    )

    series_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        nullable=True,
        doc="Anchor id shared by every instance of a series"
    )

    parent_event_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("events.id"),
        nullable=True,
        doc="Anchor this exception instance belongs to"
    )

    recurrence_exception_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Occurrence date this exception instance replaces"
    )

    # Audit trail
    created_by: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        doc="User who created the event"
    )

    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        nullable=True,
    )

    approved_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True,
    )

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True,
    )

    cancellation_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    event_metadata: Mapped[dict] = mapped_column(
        get_json_type(),
        nullable=False,
        default=dict,
        doc="Additional event metadata"
    )

    # Relationships
    recurrence_rule: Mapped[Optional["RecurrenceRule"]] = relationship(
        "RecurrenceRule",
        foreign_keys=[recurrence_rule_id],
    )

    participants: Mapped[list["EventParticipant"]] = relationship(
        "EventParticipant",
        back_populates="event",
        cascade="all, delete-orphan",
    )

    bookings: Mapped[list["ResourceBooking"]] = relationship(
        "ResourceBooking",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    parent_event: Mapped[Optional["Event"]] = relationship(
        "Event",
        remote_side="Event.id",
        foreign_keys=[parent_event_id],
        back_populates="exception_events",
    )

    exception_events: Mapped[list["Event"]] = relationship(
        "Event",
        foreign_keys=[parent_event_id],
        back_populates="parent_event",
    )

    __table_args__ = (
        Index("idx_event_organization", "organization_id"),
        Index("idx_event_team", "team_id"),
        Index("idx_event_location", "location_id"),
        Index("idx_event_status", "status"),
        Index("idx_event_series", "series_id"),
        Index("idx_event_parent", "parent_event_id"),
        Index("idx_event_rule", "recurrence_rule_id"),
        Index("idx_event_deleted", "deleted_at"),
        # Composite index for time-range queries
        Index("idx_event_time_range", "organization_id", "start_time", "end_time"),
        Index("idx_event_status_time", "status", "start_time", "end_time"),
    )

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule_id is not None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def resource_ids(self) -> list[uuid.UUID]:
        """Resources held by live bookings, in booking order."""
        return [b.resource_id for b in self.bookings if b.status != "cancelled"]

    def __repr__(self) -> str:
        return f"<Event(title='{self.title}', start='{self.start_time}', status='{self.status}')>"


class EventParticipant(BaseModel):
    """
    A user's participation in an event.

    Only accepted and tentative participants block the user's time for
    conflict checks.
    """

    __tablename__ = "event_participants"

    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )

    participant_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        doc="User id of the participant"
    )

    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="required",
        doc="Role: 'organizer', 'required', 'optional'"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="pending",
        doc="RSVP: 'pending', 'accepted', 'declined', 'tentative'"
    )

    responded_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True,
    )

    response_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    event: Mapped["Event"] = relationship(
        "Event",
        back_populates="participants",
    )

    __table_args__ = (
        UniqueConstraint("event_id", "participant_id", name="uq_event_participant"),
        Index("idx_participant_event", "event_id"),
        Index("idx_participant_user", "participant_id"),
    )

    def __repr__(self) -> str:
        return f"<EventParticipant(event_id={self.event_id}, participant_id={self.participant_id}, status='{self.status}')>"

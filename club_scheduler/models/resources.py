"""
Location, Resource and ResourceBooking models.

Entities:
- Location: A venue that hosts events (rink, field house, clubhouse)
- Resource: A bookable shared asset (ice sheet, meeting room, team bus)
- ResourceBooking: A resource held by an event for a window
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Text, Integer, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from club_scheduler.models.base import BaseModel, get_json_type

if TYPE_CHECKING:
    from club_scheduler.models.events import Event


BOOKING_STATUSES = ("pending", "confirmed", "cancelled")


class Location(BaseModel):
    """
    A place where events happen.

    Two live events at the same location and time are a location conflict.
    """

    __tablename__ = "locations"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        doc="Owning organization"
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Location name (e.g., 'Ice Rink A')"
    )

    address: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Inactive locations cannot host new events"
    )

    __table_args__ = (
        Index("idx_location_organization", "organization_id"),
        Index("idx_location_deleted", "deleted_at"),
    )

    def __repr__(self) -> str:
        return f"<Location(name='{self.name}')>"


class Resource(BaseModel):
    """
    A shared resource that events book.

    Resources include:
    - Facilities (ice sheets, courts)
    - Rooms (meeting rooms, video room)
    - Vehicles (team bus)
    - Equipment

    Bookings are exclusive: any overlapping live booking is a conflict.
    """

    __tablename__ = "resources"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        doc="Owning organization"
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Resource name (e.g., 'Ice Rink A', 'Team Bus')"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    resource_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Resource type: 'facility', 'room', 'vehicle', 'equipment', 'other'"
    )

    capacity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="People the resource holds (informational)"
    )

    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("locations.id"),
        nullable=True,
        doc="Where the resource lives, if anywhere"
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Whether resource is currently bookable"
    )

    resource_metadata: Mapped[dict] = mapped_column(
        get_json_type(),
        nullable=False,
        default=dict,
        doc="Resource-specific attributes"
    )

    bookings: Mapped[list["ResourceBooking"]] = relationship(
        "ResourceBooking",
        back_populates="resource",
    )

    __table_args__ = (
        Index("idx_resource_organization", "organization_id"),
        Index("idx_resource_type", "resource_type"),
        Index("idx_resource_active", "active"),
        Index("idx_resource_deleted", "deleted_at"),
    )

    def __repr__(self) -> str:
        return f"<Resource(name='{self.name}', type='{self.resource_type}')>"


class ResourceBooking(BaseModel):
    """
    A resource held by an event for a window.

    Bookings follow their event: created with it, confirmed when it is
    approved, cancelled when it is cancelled, and removed with it on a hard
    delete (cascade).
    """

    __tablename__ = "resource_bookings"

    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        doc="Event holding the resource"
    )

    resource_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("resources.id"),
        nullable=False,
        doc="Resource being booked"
    )

    start_time: Mapped[datetime] = mapped_column(
        nullable=False,
        doc="Booking start (UTC)"
    )

    end_time: Mapped[datetime] = mapped_column(
        nullable=False,
        doc="Booking end (UTC)"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="pending",
        doc="Booking status: 'pending', 'confirmed', 'cancelled'"
    )

    event: Mapped["Event"] = relationship(
        "Event",
        back_populates="bookings",
    )

    resource: Mapped["Resource"] = relationship(
        "Resource",
        back_populates="bookings",
    )

    __table_args__ = (
        Index("idx_booking_event", "event_id"),
        Index("idx_booking_resource", "resource_id"),
        Index("idx_booking_status", "status"),
        # Resource availability lookups
        Index("idx_booking_resource_time", "resource_id", "start_time", "end_time"),
    )

    def __repr__(self) -> str:
        return f"<ResourceBooking(resource_id={self.resource_id}, start={self.start_time}, status='{self.status}')>"

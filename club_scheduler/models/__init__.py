"""
SQLAlchemy models for Club Scheduler.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

from club_scheduler.models.base import (
    Base,
    BaseModel,
    GUID,
    UTCDateTime,
    as_utc,
    get_json_type,
    utcnow,
)

# Import all models (must be imported for Alembic autogenerate)
from club_scheduler.models.organization import Team
from club_scheduler.models.resources import Location, Resource, ResourceBooking
from club_scheduler.models.recurrence import RecurrenceRule
from club_scheduler.models.events import Event, EventParticipant

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "UTCDateTime",
    "as_utc",
    "get_json_type",
    "utcnow",
    # Organization models
    "Team",
    # Resource models
    "Location",
    "Resource",
    "ResourceBooking",
    # Recurrence model
    "RecurrenceRule",
    # Event models
    "Event",
    "EventParticipant",
]

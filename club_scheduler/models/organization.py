"""
Team model.

Entities:
- Team: A roster inside an organization; events may be scheduled for a team

Organizations and users live in other services. Only their ids are stored
here.
"""

import uuid
from typing import Optional

from sqlalchemy import String, Text, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from club_scheduler.models.base import BaseModel


class Team(BaseModel):
    """
    A team that events are scheduled for.

    A team cannot be in two places at once, so it is one of the conflict
    dimensions. It filters visibility but does not own events; the
    organization does.
    """

    __tablename__ = "teams"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        doc="Owning organization"
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Team name (e.g., 'U14 Boys')"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Inactive teams cannot receive new events"
    )

    __table_args__ = (
        Index("idx_team_organization", "organization_id"),
        Index("idx_team_deleted", "deleted_at"),
    )

    def __repr__(self) -> str:
        return f"<Team(name='{self.name}', active={self.active})>"

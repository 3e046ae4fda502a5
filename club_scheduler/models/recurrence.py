"""
RecurrenceRule model.

Entities:
- RecurrenceRule: Declarative repeating pattern owned by a series anchor
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import String, Integer, Date, Index
from sqlalchemy.orm import Mapped, mapped_column

from club_scheduler.models.base import BaseModel, get_json_type


class RecurrenceRule(BaseModel):
    """
    Repeating pattern for a series.

    Owned 1:1 by its anchor event, but stored on its own so a "this and
    future" edit can clip this rule and hand a clone to a new series.

    Conventions:
    - week_days: 0-6, 0 = Sunday
    - month_days: 1-31
    - months: 0-11, 0 = January
    - end_date: inclusive calendar date
    - exception_dates: ISO dates (YYYY-MM-DD) excluded from expansion
    """

    __tablename__ = "recurrence_rules"

    frequency: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Frequency: 'daily', 'weekly', 'monthly', 'yearly'"
    )

    interval: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Periods between active periods (>= 1)"
    )

    start_date: Mapped[datetime] = mapped_column(
        nullable=False,
        doc="First candidate instant (the anchor's start)"
    )

    end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Last date an occurrence may fall on (inclusive)"
    )

    count: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Maximum number of pattern instances"
    )

    week_days: Mapped[Optional[list]] = mapped_column(
        get_json_type(),
        nullable=True,
    )

    month_days: Mapped[Optional[list]] = mapped_column(
        get_json_type(),
        nullable=True,
    )

    months: Mapped[Optional[list]] = mapped_column(
        get_json_type(),
        nullable=True,
    )

    exception_dates: Mapped[list] = mapped_column(
        get_json_type(),
        nullable=False,
        default=list,
    )

    description: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Human-readable summary (e.g. 'Repeats weekly on Thu')"
    )

    __table_args__ = (
        Index("idx_rule_deleted", "deleted_at"),
    )

    def add_exception_date(self, day: date) -> None:
        """
        Append a date to exception_dates, keeping the list ordered and unique.

        Reassigns the list so SQLAlchemy sees the JSON column change.
        """
        iso = day.isoformat()
        current = list(self.exception_dates or [])
        if iso not in current:
            current.append(iso)
        self.exception_dates = sorted(current)

    def __repr__(self) -> str:
        return f"<RecurrenceRule(frequency='{self.frequency}', interval={self.interval}, end_date={self.end_date})>"

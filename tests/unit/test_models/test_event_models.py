"""
Unit tests for the Event, EventParticipant, ResourceBooking and
RecurrenceRule models.

Tests relationships, cascades, constraints and model helpers.
"""

import uuid
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from club_scheduler.models.events import Event, EventParticipant
from club_scheduler.models.recurrence import RecurrenceRule
from club_scheduler.models.resources import ResourceBooking


def make_event(organization_id, user_id, **kwargs) -> Event:
    values = {
        "organization_id": organization_id,
        "title": "Practice",
        "start_time": datetime(2025, 7, 3, 16, tzinfo=timezone.utc),
        "end_time": datetime(2025, 7, 3, 18, tzinfo=timezone.utc),
        "created_by": user_id,
    }
    values.update(kwargs)
    return Event(**values)


class TestEventModel:
    """Test the Event model."""

    def test_defaults(self, db_session: Session, organization_id, user_id):
        """Test column defaults are applied on insert."""
        event = make_event(organization_id, user_id)
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)

        assert event.status == "pending"
        assert event.event_type == "practice"
        assert event.visibility == "team"
        assert event.event_metadata == {}
        assert not event.is_recurring
        assert not event.is_cancelled

    def test_bookings_cascade(self, db_session: Session, organization_id, user_id, sample_resource):
        """Test bookings are saved and removed with their event."""
        event = make_event(organization_id, user_id)
        event.bookings.append(
            ResourceBooking(
                resource_id=sample_resource.id,
                start_time=event.start_time,
                end_time=event.end_time,
            )
        )
        db_session.add(event)
        db_session.commit()

        assert db_session.query(ResourceBooking).count() == 1
        assert event.bookings[0].status == "pending"

        db_session.delete(event)
        db_session.commit()

        assert db_session.query(ResourceBooking).count() == 0

    def test_resource_ids_skip_cancelled_bookings(self, organization_id, user_id):
        """Test resource_ids only lists live bookings."""
        kept, dropped = uuid.uuid4(), uuid.uuid4()
        event = make_event(organization_id, user_id)
        event.bookings.append(ResourceBooking(resource_id=kept, start_time=event.start_time, end_time=event.end_time, status="pending"))
        event.bookings.append(ResourceBooking(resource_id=dropped, start_time=event.start_time, end_time=event.end_time, status="cancelled"))

        assert event.resource_ids == [kept]

    def test_exception_events_relationship(self, db_session: Session, organization_id, user_id):
        """Test exception instances point back at their anchor."""
        rule = RecurrenceRule(frequency="weekly", interval=1, start_date=datetime(2025, 7, 10, 16, tzinfo=timezone.utc))
        anchor = make_event(organization_id, user_id, recurrence_rule=rule)
        db_session.add_all([rule, anchor])
        db_session.flush()
        anchor.series_id = anchor.id

        exception = make_event(
            organization_id,
            user_id,
            series_id=anchor.id,
            parent_event=anchor,
            recurrence_exception_date=date(2025, 7, 17),
        )
        db_session.add(exception)
        db_session.commit()

        assert anchor.is_recurring
        assert anchor.exception_events == [exception]
        assert exception.parent_event_id == anchor.id


class TestEventParticipantModel:
    """Test the EventParticipant model."""

    def test_unique_per_event(self, db_session: Session, organization_id, user_id):
        """Test a user can only be added to an event once."""
        player = uuid.uuid4()
        event = make_event(organization_id, user_id)
        event.participants.append(EventParticipant(participant_id=player))
        event.participants.append(EventParticipant(participant_id=player))
        db_session.add(event)

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestRecurrenceRuleModel:
    """Test the RecurrenceRule model."""

    def test_add_exception_date(self):
        """Test exception dates stay sorted and unique."""
        rule = RecurrenceRule(frequency="weekly", interval=1, exception_dates=["2025-07-24"])

        rule.add_exception_date(date(2025, 7, 17))
        rule.add_exception_date(date(2025, 7, 24))

        assert rule.exception_dates == ["2025-07-17", "2025-07-24"]

    def test_json_columns_round_trip(self, db_session: Session):
        """Test list columns persist."""
        rule = RecurrenceRule(
            frequency="weekly",
            interval=2,
            start_date=datetime(2025, 7, 10, 16, tzinfo=timezone.utc),
            week_days=[1, 4],
            exception_dates=["2025-07-17"],
        )
        db_session.add(rule)
        db_session.commit()
        db_session.refresh(rule)

        assert rule.week_days == [1, 4]
        assert rule.exception_dates == ["2025-07-17"]
        assert rule.end_date is None

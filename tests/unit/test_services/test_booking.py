"""
Unit tests for the booking coordinator.

Tests the locked check-then-commit sequence: successful bookings,
conflict rejections with rollback, series edits and deletes, lifecycle
operations and best-effort notifications.
"""

import threading
import uuid
from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from club_scheduler.config import Settings
from club_scheduler.exceptions import (
    ConflictError,
    InvalidRuleError,
    LockTimeoutError,
    NotFoundError,
    ValidationError,
)
from club_scheduler.models.base import Base
from club_scheduler.models.events import Event
from club_scheduler.models.resources import Resource
from club_scheduler.services.booking import BookingCoordinator
from club_scheduler.services.conflicts import ConflictCandidate, ConflictReason
from club_scheduler.services.events import (
    EventChanges,
    ParticipantInput,
    RecurrenceInput,
    UpdateEvent,
)
from club_scheduler.services.notifications import NotificationKind, RecordingNotifier
from club_scheduler.services.windows import TimeWindow
from club_scheduler.store.base import EventFilters
from club_scheduler.store.locks import ScopeLockRegistry
from club_scheduler.store.sqlalchemy_store import SQLAlchemyEventStore

JULY_AUGUST = TimeWindow(datetime(2025, 7, 1, tzinfo=timezone.utc), datetime(2025, 9, 1, tzinfo=timezone.utc))


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def stored_events(db_session) -> list[Event]:
    return list(db_session.scalars(select(Event)).all())


@pytest.fixture
def booked(coordinator, new_event, sample_resource):
    """Single event holding the sample resource 16:00-18:00 on 3 July 2025."""
    return coordinator.create_event(new_event(resource_ids=[sample_resource.id]))


@pytest.fixture
def series(coordinator, new_event, sample_resource, weekly_thursdays):
    """Thursday practices 16:00-18:00 from 10 July to 31 August 2025."""
    return coordinator.create_event(
        new_event(
            start=utc(2025, 7, 10, 16),
            end=utc(2025, 7, 10, 18),
            resource_ids=[sample_resource.id],
            recurrence=weekly_thursdays,
        )
    )


class TestCreateEvent:
    """Test BookingCoordinator.create_event."""

    def test_creates_pending_event(self, coordinator, notifier, booked, sample_resource):
        """Test a free slot is booked with the default pending status."""
        assert booked.status == "pending"
        assert booked.resource_ids == [sample_resource.id]
        assert booked.bookings[0].status == "pending"
        assert [i.kind for i in notifier.intents] == [NotificationKind.CREATED]
        assert notifier.intents[0].event_id == booked.id

    def test_resource_conflict_is_rejected(self, db_session, coordinator, notifier, booked, new_event, sample_resource):
        """Test an overlapping booking of the same resource raises ConflictError."""
        with pytest.raises(ConflictError) as exc_info:
            coordinator.create_event(
                new_event(
                    start=utc(2025, 7, 3, 17),
                    end=utc(2025, 7, 3, 19),
                    resource_ids=[sample_resource.id],
                )
            )

        conflicts = exc_info.value.conflicts
        assert len(conflicts) == 1
        assert conflicts[0].reason is ConflictReason.RESOURCE
        assert conflicts[0].conflict_identifier == sample_resource.id
        assert conflicts[0].conflicting_event_id == booked.id
        assert exc_info.value.details["conflicts"][0]["reason"] == "resource"

    def test_rejected_booking_is_not_stored(self, db_session, coordinator, notifier, booked, new_event, sample_resource):
        """Test nothing from a rejected booking is committed or announced."""
        with pytest.raises(ConflictError):
            coordinator.create_event(
                new_event(start=utc(2025, 7, 3, 17), end=utc(2025, 7, 3, 19), resource_ids=[sample_resource.id])
            )

        assert [e.id for e in stored_events(db_session)] == [booked.id]
        assert len(notifier.intents) == 1

    def test_back_to_back_is_allowed(self, coordinator, booked, new_event, sample_resource):
        """Test a booking starting when another ends is accepted."""
        event = coordinator.create_event(
            new_event(start=utc(2025, 7, 3, 18), end=utc(2025, 7, 3, 20), resource_ids=[sample_resource.id])
        )

        assert event.id != booked.id

    def test_team_conflict(self, coordinator, new_event, sample_team):
        """Test a team cannot be booked twice at once."""
        coordinator.create_event(new_event(team_id=sample_team.id))

        with pytest.raises(ConflictError) as exc_info:
            coordinator.create_event(new_event(start=utc(2025, 7, 3, 17), end=utc(2025, 7, 3, 19), team_id=sample_team.id))

        assert exc_info.value.conflicts[0].reason is ConflictReason.TEAM

    def test_participants_do_not_block_bookings(self, coordinator, new_event):
        """Test participant overlaps are reported by checks but do not reject bookings."""
        player = uuid.uuid4()
        coordinator.create_event(new_event(participants=[ParticipantInput(player, status="accepted")]))

        second = coordinator.create_event(new_event(participants=[ParticipantInput(player, status="accepted")]))

        assert second.status == "pending"
        candidate = ConflictCandidate(TimeWindow.of(second), participant_ids=(player,))
        assert len(coordinator.check_conflicts(candidate)) == 2

    def test_single_event_against_series_occurrence(self, coordinator, series, new_event, sample_resource):
        """Test a single booking colliding with a generated occurrence is rejected."""
        with pytest.raises(ConflictError) as exc_info:
            coordinator.create_event(
                new_event(start=utc(2025, 7, 17, 17), end=utc(2025, 7, 17, 19), resource_ids=[sample_resource.id])
            )

        conflict = exc_info.value.conflicts[0]
        assert conflict.conflicting_event_id == series.id
        assert conflict.occurrence_date == date(2025, 7, 17)

    def test_series_against_single_event(self, db_session, coordinator, new_event, sample_resource, weekly_thursdays):
        """Test a new series is rejected when any occurrence collides."""
        blocker = coordinator.create_event(
            new_event(start=utc(2025, 7, 24, 16, 30), end=utc(2025, 7, 24, 17, 30), resource_ids=[sample_resource.id])
        )

        with pytest.raises(ConflictError) as exc_info:
            coordinator.create_event(
                new_event(
                    start=utc(2025, 7, 10, 16),
                    end=utc(2025, 7, 10, 18),
                    resource_ids=[sample_resource.id],
                    recurrence=weekly_thursdays,
                )
            )

        assert [c.conflicting_event_id for c in exc_info.value.conflicts] == [blocker.id]
        assert [e.id for e in stored_events(db_session)] == [blocker.id]

    def test_unknown_resource(self, coordinator, new_event):
        """Test booking a resource that does not exist raises NotFoundError."""
        with pytest.raises(NotFoundError):
            coordinator.create_event(new_event(resource_ids=[uuid.uuid4()]))

    def test_unknown_team(self, coordinator, new_event):
        """Test scheduling for a team that does not exist raises NotFoundError."""
        with pytest.raises(NotFoundError):
            coordinator.create_event(new_event(team_id=uuid.uuid4()))

    def test_invalid_recurrence(self, coordinator, new_event):
        """Test an invalid rule is rejected before anything is written."""
        with pytest.raises(InvalidRuleError):
            coordinator.create_event(new_event(recurrence=RecurrenceInput("weekly", week_days=[9])))

    def test_invalid_window(self, coordinator, new_event):
        """Test an inverted window is rejected."""
        with pytest.raises(ValidationError):
            coordinator.create_event(new_event(start=utc(2025, 7, 3, 18), end=utc(2025, 7, 3, 17)))

    def test_failure_after_write_rolls_back(self, db_session, coordinator, new_event, sample_resource):
        """Test an error during the conflict check leaves nothing behind."""
        with patch.object(coordinator.detector, "find_conflicts", side_effect=RuntimeError("connection lost")):
            with pytest.raises(RuntimeError):
                coordinator.create_event(new_event(resource_ids=[sample_resource.id]))

        assert stored_events(db_session) == []

    def test_failing_notifier_does_not_fail_booking(self, store, new_event, db_session):
        """Test notification errors are logged and swallowed."""
        notifier = MagicMock()
        notifier.notify.side_effect = RuntimeError("smtp down")
        coordinator = BookingCoordinator(store, notifier=notifier, locks=ScopeLockRegistry())

        event = coordinator.create_event(new_event())

        assert notifier.notify.called
        assert [e.id for e in stored_events(db_session)] == [event.id]

    def test_lock_timeout(self, store, new_event, sample_resource):
        """Test a booking gives up when its scope is held elsewhere."""
        locks = ScopeLockRegistry()
        coordinator = BookingCoordinator(
            store,
            notifier=RecordingNotifier(),
            locks=locks,
            settings=Settings(_env_file=None, lock_timeout_seconds=0.05),
        )

        with locks.hold([f"resource:{sample_resource.id}"]):
            with pytest.raises(LockTimeoutError) as exc_info:
                coordinator.create_event(new_event(resource_ids=[sample_resource.id]))

        assert exc_info.value.retryable is True


class TestCreateOrUpdate:
    """Test BookingCoordinator.create_or_update."""

    def test_dispatches_on_request_type(self, coordinator, new_event):
        """Test new and update requests reach the matching operation."""
        created = coordinator.create_or_update(new_event())
        updated = coordinator.create_or_update(UpdateEvent(created.id, EventChanges(title="Team meeting")))

        assert updated.id == created.id
        assert updated.title == "Team meeting"


class TestUpdateEvent:
    """Test BookingCoordinator.update_event."""

    def test_move_overlapping_own_slot(self, coordinator, notifier, booked):
        """Test an event does not conflict with its own previous window."""
        event = coordinator.update_event(
            booked.id,
            EventChanges(start_time=utc(2025, 7, 3, 17), end_time=utc(2025, 7, 3, 19)),
        )

        assert event.start_time == utc(2025, 7, 3, 17)
        assert event.bookings[0].start_time == utc(2025, 7, 3, 17)
        assert notifier.intents[-1].kind is NotificationKind.UPDATED
        assert notifier.intents[-1].changes == ("start_time", "end_time")

    def test_conflicting_move_is_rolled_back(self, coordinator, store, booked, new_event, sample_resource):
        """Test a rejected move leaves the event where it was."""
        later = coordinator.create_event(
            new_event(start=utc(2025, 7, 3, 19), end=utc(2025, 7, 3, 21), resource_ids=[sample_resource.id])
        )

        with pytest.raises(ConflictError):
            coordinator.update_event(
                later.id,
                EventChanges(start_time=utc(2025, 7, 3, 17), end_time=utc(2025, 7, 3, 19)),
            )

        reloaded = store.get_event(later.id)
        assert reloaded.start_time == utc(2025, 7, 3, 19)
        assert reloaded.bookings[0].start_time == utc(2025, 7, 3, 19)

    def test_no_changes_sends_nothing(self, coordinator, notifier, booked):
        """Test an update that changes nothing is not announced."""
        coordinator.update_event(booked.id, EventChanges(title=booked.title))

        assert [i.kind for i in notifier.intents] == [NotificationKind.CREATED]

    def test_unknown_event(self, coordinator):
        """Test updating a missing event raises NotFoundError."""
        with pytest.raises(NotFoundError):
            coordinator.update_event(uuid.uuid4(), EventChanges(title="x"))

    def test_series_anchor_update_applies_to_all(self, coordinator, series):
        """Test updating an anchor edits the whole series."""
        event = coordinator.update_event(series.id, EventChanges(title="Skills session"))

        assert event.id == series.id
        assert event.title == "Skills session"


class TestSeriesOperations:
    """Test edit_series, delete_series and list_instances."""

    def test_single_edit_conflict_rolls_back(self, coordinator, store, series, new_event, sample_resource):
        """Test a rejected occurrence edit leaves the rule untouched."""
        coordinator.create_event(
            new_event(start=utc(2025, 7, 17, 19), end=utc(2025, 7, 17, 20), resource_ids=[sample_resource.id])
        )

        with pytest.raises(ConflictError):
            coordinator.edit_series(
                series.id,
                date(2025, 7, 17),
                EventChanges(start_time=utc(2025, 7, 17, 18, 30), end_time=utc(2025, 7, 17, 20, 30)),
                "single",
            )

        anchor = store.get_event(series.id)
        assert anchor.recurrence_rule.exception_dates == []
        assert store.get_exception_events(series.id) == []

    def test_single_edit_notifies_with_date(self, coordinator, notifier, series):
        """Test an occurrence edit announces the edited date."""
        exception = coordinator.edit_series(series.id, date(2025, 7, 17), EventChanges(title="Scrimmage"), "single")

        intent = notifier.intents[-1]
        assert intent.kind is NotificationKind.UPDATED
        assert intent.event_id == exception.id
        assert intent.occurrence_date == date(2025, 7, 17)

    def test_future_edit_returns_both_anchors(self, coordinator, series):
        """Test a split returns the clipped and the new anchor."""
        original, new_anchor = coordinator.edit_series(
            series.id, date(2025, 7, 24), EventChanges(title="Late practice"), "future"
        )

        assert original.id == series.id
        assert new_anchor.recurrence_rule.start_date == utc(2025, 7, 24, 16)

    def test_single_delete(self, coordinator, notifier, series):
        """Test deleting one occurrence announces a recurrence change."""
        cancelled = coordinator.delete_series(series.id, date(2025, 7, 17), "single")

        assert cancelled == []
        assert notifier.intents[-1].kind is NotificationKind.UPDATED
        assert notifier.intents[-1].changes == ("recurrence",)

    def test_list_instances(self, coordinator, series):
        """Test generated occurrences and exception events are merged by start."""
        coordinator.edit_series(series.id, date(2025, 7, 17), EventChanges(title="Scrimmage"), "single")

        instances = coordinator.list_instances(series.id, JULY_AUGUST)

        assert len(instances) == 8
        assert isinstance(instances[1], Event)
        assert instances[1].title == "Scrimmage"
        assert [i.start_time.date() for i in instances][:3] == [date(2025, 7, 10), date(2025, 7, 17), date(2025, 7, 24)]

    def test_list_instances_limit(self, coordinator, series):
        """Test the limit caps the listing."""
        assert len(coordinator.list_instances(series.id, JULY_AUGUST, limit=3)) == 3

    def test_list_instances_of_single_event(self, coordinator, booked):
        """Test a single event lists itself when it overlaps the range."""
        assert coordinator.list_instances(booked.id, JULY_AUGUST) == [booked]
        assert coordinator.list_instances(
            booked.id, TimeWindow(utc(2025, 8, 1), utc(2025, 8, 2))
        ) == []


class TestLifecycle:
    """Test approve_event, cancel_event, respond and get_event."""

    def test_approve(self, coordinator, notifier, booked, user_id):
        """Test approval confirms the event and its bookings."""
        event = coordinator.approve_event(booked.id, user_id)

        assert event.status == "confirmed"
        assert event.approved_by == user_id
        assert event.bookings[0].status == "confirmed"
        assert notifier.intents[-1].kind is NotificationKind.APPROVED

    def test_cancel(self, coordinator, store, notifier, booked):
        """Test cancelling releases the booking and hides the event."""
        with patch.object(store, "now", return_value=utc(2025, 7, 1, 12)):
            event = coordinator.cancel_event(booked.id, "Pitch waterlogged")

        assert event.status == "cancelled"
        assert event.cancelled_at == utc(2025, 7, 1, 12)
        assert event.bookings[0].status == "cancelled"
        assert store.get_event(booked.id) is None
        assert coordinator.get_event(booked.id).id == booked.id
        assert notifier.intents[-1].kind is NotificationKind.CANCELLED

    def test_cancel_frees_the_slot(self, coordinator, store, booked, new_event, sample_resource):
        """Test the released resource can be booked again."""
        with patch.object(store, "now", return_value=utc(2025, 7, 1, 12)):
            coordinator.cancel_event(booked.id)

        event = coordinator.create_event(new_event(resource_ids=[sample_resource.id]))

        assert event.resource_ids == [sample_resource.id]

    def test_cannot_cancel_past_event(self, coordinator, store, booked):
        """Test an event that already ended cannot be cancelled."""
        with patch.object(store, "now", return_value=utc(2025, 7, 4)):
            with pytest.raises(ValidationError):
                coordinator.cancel_event(booked.id)

    def test_cancel_twice(self, coordinator, store, booked):
        """Test a cancelled event is no longer found."""
        with patch.object(store, "now", return_value=utc(2025, 7, 1, 12)):
            coordinator.cancel_event(booked.id)

            with pytest.raises(NotFoundError):
                coordinator.cancel_event(booked.id)

    def test_cancel_series_anchor(self, coordinator, series):
        """Test cancelling an anchor cancels the whole series."""
        event = coordinator.cancel_event(series.id)

        assert event.id == series.id
        assert event.status == "cancelled"

    def test_respond(self, coordinator, new_event):
        """Test an RSVP is recorded on the participant."""
        player = uuid.uuid4()
        event = coordinator.create_event(new_event(participants=[ParticipantInput(player)]))

        participant = coordinator.respond(event.id, player, "accepted", "See you there")

        assert participant.status == "accepted"
        assert participant.response_message == "See you there"
        assert participant.responded_at is not None

    def test_respond_unknown_participant(self, coordinator, booked):
        """Test responding for someone not invited raises NotFoundError."""
        with pytest.raises(NotFoundError):
            coordinator.respond(booked.id, uuid.uuid4(), "accepted")

    def test_respond_invalid_status(self, coordinator, booked):
        """Test an unknown RSVP status raises ValidationError."""
        with pytest.raises(ValidationError):
            coordinator.respond(booked.id, uuid.uuid4(), "maybe")

    def test_get_unknown_event(self, coordinator):
        """Test looking up a missing event raises NotFoundError."""
        with pytest.raises(NotFoundError):
            coordinator.get_event(uuid.uuid4())


class TestSeriesCheckRange:
    """Test how far ahead a new series is checked for conflicts."""

    def test_bounded_series_checked_to_end_date(self, db_session, coordinator, new_event, sample_resource):
        """Test a clash hundreds of occurrences in is still found."""
        blocker = coordinator.create_event(
            new_event(start=utc(2027, 2, 23, 17), end=utc(2027, 2, 23, 19), resource_ids=[sample_resource.id])
        )

        with pytest.raises(ConflictError) as exc_info:
            coordinator.create_event(
                new_event(
                    resource_ids=[sample_resource.id],
                    recurrence=RecurrenceInput("daily", end_date=date(2027, 12, 31)),
                )
            )

        assert [c.conflicting_event_id for c in exc_info.value.conflicts] == [blocker.id]
        assert [e.id for e in stored_events(db_session)] == [blocker.id]

    def test_count_series_checked_to_last_occurrence(self, db_session, coordinator, new_event, sample_resource):
        """Test the 60th weekly occurrence, over a year out, is checked."""
        blocker = coordinator.create_event(
            new_event(start=utc(2026, 8, 20, 16), end=utc(2026, 8, 20, 17), resource_ids=[sample_resource.id])
        )

        with pytest.raises(ConflictError) as exc_info:
            coordinator.create_event(
                new_event(
                    resource_ids=[sample_resource.id],
                    recurrence=RecurrenceInput("weekly", week_days=[4], count=60),
                )
            )

        assert [c.conflicting_event_id for c in exc_info.value.conflicts] == [blocker.id]
        assert exc_info.value.conflicts[0].window.start == utc(2026, 8, 20, 16)

    def test_count_series_stops_at_count(self, coordinator, new_event, sample_resource):
        """Test a booking one week after the last occurrence does not block the series."""
        coordinator.create_event(
            new_event(start=utc(2026, 8, 27, 16), end=utc(2026, 8, 27, 17), resource_ids=[sample_resource.id])
        )

        series = coordinator.create_event(
            new_event(
                resource_ids=[sample_resource.id],
                recurrence=RecurrenceInput("weekly", week_days=[4], count=60),
            )
        )

        assert series.is_recurring

    def test_open_ended_series_checked_to_horizon(self, store, new_event, sample_resource):
        """Test an open-ended series is only checked series_check_horizon_days ahead."""
        coordinator = BookingCoordinator(
            store,
            notifier=RecordingNotifier(),
            locks=ScopeLockRegistry(),
            settings=Settings(_env_file=None, series_check_horizon_days=30),
        )
        coordinator.create_event(
            new_event(start=utc(2025, 9, 4, 16), end=utc(2025, 9, 4, 18), resource_ids=[sample_resource.id])
        )

        series = coordinator.create_event(
            new_event(
                resource_ids=[sample_resource.id],
                recurrence=RecurrenceInput("weekly", week_days=[4]),
            )
        )

        assert series.is_recurring


class TestConcurrentBookings:
    """Test two coordinators racing for the same resource."""

    def test_overlapping_race_commits_once(self, tmp_path, organization_id, new_event):
        """Test exactly one of two simultaneous overlapping bookings commits."""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(bind=engine)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        with SessionLocal() as session:
            resource = Resource(
                organization_id=organization_id,
                name="Ice Sheet 1",
                resource_type="facility",
                active=True,
                resource_metadata={},
            )
            session.add(resource)
            session.commit()
            resource_id = resource.id

        locks = ScopeLockRegistry()
        barrier = threading.Barrier(2, timeout=5)
        outcomes: list[str] = []

        def book(start_hour: int) -> None:
            session = SessionLocal()
            try:
                racer = BookingCoordinator(
                    SQLAlchemyEventStore(session),
                    notifier=RecordingNotifier(),
                    locks=locks,
                )
                request = new_event(
                    start=utc(2025, 7, 3, start_hour),
                    end=utc(2025, 7, 3, start_hour + 2),
                    resource_ids=[resource_id],
                )
                barrier.wait()
                try:
                    racer.create_event(request)
                    outcomes.append("committed")
                except ConflictError:
                    outcomes.append("conflict")
                except Exception as exc:
                    outcomes.append(repr(exc))
            finally:
                session.close()

        threads = [threading.Thread(target=book, args=(hour,)) for hour in (16, 17)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        try:
            assert sorted(outcomes) == ["committed", "conflict"]
            with SessionLocal() as session:
                assert len(session.scalars(select(Event)).all()) == 1
        finally:
            engine.dispose()


class TestListings:
    """Test list_events, events_in_range and upcoming_events."""

    @pytest.fixture
    def week(self, coordinator, new_event):
        """Five practices at 16:00 on 1-5 July 2025, the 3rd one public."""
        return [
            coordinator.create_event(
                new_event(
                    start=utc(2025, 7, day, 16),
                    end=utc(2025, 7, day, 18),
                    title=f"Practice {day}",
                    visibility="public" if day == 3 else "team",
                )
            )
            for day in range(1, 6)
        ]

    def test_pages(self, coordinator, week):
        """Test pages slice the start-ordered list and report totals."""
        first = coordinator.list_events(EventFilters(), page=1, limit=2)
        last = coordinator.list_events(EventFilters(), page=3, limit=2)

        assert [e.title for e in first.events] == ["Practice 1", "Practice 2"]
        assert [e.title for e in last.events] == ["Practice 5"]
        assert (last.total, last.total_pages) == (5, 3)

    def test_empty_listing(self, coordinator):
        """Test an empty listing has no pages."""
        page = coordinator.list_events(EventFilters())

        assert page.events == []
        assert page.total_pages == 0

    @pytest.mark.parametrize("page,limit", [(0, 20), (1, 0)])
    def test_invalid_paging(self, coordinator, page, limit):
        """Test page and limit below 1 are rejected."""
        with pytest.raises(ValidationError):
            coordinator.list_events(EventFilters(), page=page, limit=limit)

    def test_series_listed_once(self, coordinator, series):
        """Test a series appears as its anchor, not per occurrence."""
        page = coordinator.list_events(EventFilters())

        assert [e.id for e in page.events] == [series.id]

    def test_events_in_range(self, coordinator, week, organization_id):
        """Test only events starting inside the range are returned."""
        window = TimeWindow(utc(2025, 7, 2), utc(2025, 7, 4))

        events = coordinator.events_in_range(organization_id, window)

        assert [e.title for e in events] == ["Practice 2", "Practice 3"]
        assert coordinator.events_in_range(uuid.uuid4(), window) == []

    def test_upcoming_events(self, coordinator, store, week, organization_id):
        """Test a stranger sees public events and a participant sees their own."""
        player = uuid.uuid4()
        coordinator.add_participants(week[1].id, [ParticipantInput(player)])

        with patch.object(store, "now", return_value=utc(2025, 7, 1, 17)):
            stranger = coordinator.upcoming_events(uuid.uuid4(), organization_id, days=7)
            mine = coordinator.upcoming_events(player, organization_id, days=7)
            tomorrow = coordinator.upcoming_events(player, organization_id, days=1)

        assert [e.title for e in stranger] == ["Practice 3"]
        assert [e.title for e in mine] == ["Practice 2", "Practice 3"]
        assert [e.title for e in tomorrow] == ["Practice 2"]

    def test_upcoming_skips_cancelled(self, coordinator, store, week, organization_id):
        """Test cancelled public events are not upcoming."""
        with patch.object(store, "now", return_value=utc(2025, 7, 1, 17)):
            coordinator.cancel_event(week[2].id)
            events = coordinator.upcoming_events(uuid.uuid4(), organization_id)

        assert events == []

    def test_upcoming_rejects_non_positive_days(self, coordinator, organization_id):
        """Test days below 1 is a validation error."""
        with pytest.raises(ValidationError):
            coordinator.upcoming_events(uuid.uuid4(), organization_id, days=0)


class TestParticipants:
    """Test add_participants and remove_participant."""

    def test_add(self, coordinator, notifier, booked):
        """Test new participants are added pending and notified."""
        player = uuid.uuid4()

        added = coordinator.add_participants(booked.id, [ParticipantInput(player, role="optional")])

        assert [(p.participant_id, p.role, p.status) for p in added] == [(player, "optional", "pending")]
        assert player in [p.participant_id for p in coordinator.get_event(booked.id).participants]
        assert notifier.intents[-1].kind == NotificationKind.UPDATED
        assert notifier.intents[-1].changes == ("participants",)

    def test_existing_participant_is_unchanged(self, coordinator, notifier, new_event):
        """Test re-adding someone keeps their RSVP and sends nothing."""
        player = uuid.uuid4()
        event = coordinator.create_event(new_event(participants=[ParticipantInput(player)]))
        coordinator.respond(event.id, player, "accepted")
        sent = len(notifier.intents)

        rows = coordinator.add_participants(event.id, [ParticipantInput(player), ParticipantInput(player)])

        assert [r.status for r in rows] == ["accepted"]
        assert len(notifier.intents) == sent

    def test_remove(self, coordinator, store, notifier, new_event):
        """Test removal soft deletes the row and hides it."""
        player = uuid.uuid4()
        event = coordinator.create_event(new_event(participants=[ParticipantInput(player)]))

        removed = coordinator.remove_participant(event.id, player)

        assert removed.is_deleted
        assert store.get_participant(event.id, player) is None
        assert notifier.intents[-1].kind == NotificationKind.UPDATED

    def test_re_add_after_removal(self, coordinator, new_event):
        """Test a removed participant comes back with a fresh RSVP."""
        player = uuid.uuid4()
        event = coordinator.create_event(new_event(participants=[ParticipantInput(player)]))
        coordinator.respond(event.id, player, "declined", "Away")
        coordinator.remove_participant(event.id, player)

        rows = coordinator.add_participants(event.id, [ParticipantInput(player, role="required")])

        assert not rows[0].is_deleted
        assert rows[0].status == "pending"
        assert rows[0].response_message is None

    def test_remove_unknown_participant(self, coordinator, booked):
        """Test removing someone not on the event raises NotFoundError."""
        with pytest.raises(NotFoundError):
            coordinator.remove_participant(booked.id, uuid.uuid4())

    def test_add_to_unknown_event(self, coordinator):
        """Test adding to a missing event raises NotFoundError."""
        with pytest.raises(NotFoundError):
            coordinator.add_participants(uuid.uuid4(), [ParticipantInput(uuid.uuid4())])

    def test_add_validates(self, coordinator, booked):
        """Test an empty list or unknown role is rejected."""
        with pytest.raises(ValidationError):
            coordinator.add_participants(booked.id, [])
        with pytest.raises(ValidationError):
            coordinator.add_participants(booked.id, [ParticipantInput(uuid.uuid4(), role="coach")])

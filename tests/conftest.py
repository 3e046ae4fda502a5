"""
Pytest configuration and fixtures for Club Scheduler tests.

Provides database session fixtures, a store and coordinator wired to that
session, and sample teams, locations and resources.
"""

import uuid
from datetime import datetime, timezone
from typing import Generator

import pytest
import sqlalchemy as sa
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from club_scheduler.models.base import Base
from club_scheduler.models.organization import Team
from club_scheduler.models.resources import Location, Resource
from club_scheduler.services.booking import BookingCoordinator
from club_scheduler.services.events import NewEvent, RecurrenceInput
from club_scheduler.services.notifications import RecordingNotifier
from club_scheduler.services.recurrence import clear_expansion_cache
from club_scheduler.store.locks import ScopeLockRegistry
from club_scheduler.store.sqlalchemy_store import SQLAlchemyEventStore


# Configure SQLite to enforce foreign key constraints in tests
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(autouse=True)
def clear_caches():
    """Drop memoized recurrence expansions between tests."""
    clear_expansion_cache()
    yield
    clear_expansion_cache()


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """
    In-memory SQLite engine with all tables.

    StaticPool keeps a single connection so sessions opened on other
    threads (the API test client) see the same database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    try:
        yield engine
    finally:
        # Disable foreign key constraints for drop operations
        with engine.begin() as connection:
            connection.execute(sa.text("PRAGMA foreign_keys=OFF"))
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """
    Create a clean database session for each test.

    Yields:
        Session: SQLAlchemy session for database operations
    """
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def store(db_session: Session) -> SQLAlchemyEventStore:
    return SQLAlchemyEventStore(db_session)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def coordinator(store: SQLAlchemyEventStore, notifier: RecordingNotifier) -> BookingCoordinator:
    """Coordinator with a private lock registry and a recording notifier."""
    return BookingCoordinator(store, notifier=notifier, locks=ScopeLockRegistry())


@pytest.fixture
def organization_id() -> uuid.UUID:
    return uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture
def sample_team(db_session: Session, organization_id: uuid.UUID) -> Team:
    """
    Create a sample Team for testing.

    Returns:
        Team: A persisted team
    """
    team = Team(
        organization_id=organization_id,
        name="U12 Girls",
        description="Under-12 girls squad",
        active=True,
    )
    db_session.add(team)
    db_session.commit()
    db_session.refresh(team)
    return team


@pytest.fixture
def second_team(db_session: Session, organization_id: uuid.UUID) -> Team:
    team = Team(organization_id=organization_id, name="U14 Boys", active=True)
    db_session.add(team)
    db_session.commit()
    db_session.refresh(team)
    return team


@pytest.fixture
def sample_location(db_session: Session, organization_id: uuid.UUID) -> Location:
    """
    Create a sample Location for testing.

    Returns:
        Location: A persisted location
    """
    location = Location(
        organization_id=organization_id,
        name="North Field",
        address="1 Park Road",
        active=True,
    )
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


@pytest.fixture
def sample_resource(db_session: Session, organization_id: uuid.UUID) -> Resource:
    """
    Create a sample Resource for testing.

    Returns:
        Resource: A persisted, bookable resource
    """
    resource = Resource(
        organization_id=organization_id,
        name="Ice Sheet 1",
        description="Main rink",
        resource_type="facility",
        capacity=40,
        active=True,
        resource_metadata={"surface": "ice"},
    )
    db_session.add(resource)
    db_session.commit()
    db_session.refresh(resource)
    return resource


@pytest.fixture
def second_resource(db_session: Session, organization_id: uuid.UUID) -> Resource:
    resource = Resource(
        organization_id=organization_id,
        name="Team Bus",
        resource_type="vehicle",
        capacity=30,
        active=True,
        resource_metadata={},
    )
    db_session.add(resource)
    db_session.commit()
    db_session.refresh(resource)
    return resource


@pytest.fixture
def new_event(organization_id: uuid.UUID, user_id: uuid.UUID):
    """
    Factory for NewEvent requests with sensible defaults.

    Example:
        request = new_event(start=datetime(...), end=datetime(...), resource_ids=[rid])
    """

    def _make(
        start: datetime = datetime(2025, 7, 3, 16, 0, tzinfo=timezone.utc),
        end: datetime = datetime(2025, 7, 3, 18, 0, tzinfo=timezone.utc),
        title: str = "Practice",
        **kwargs,
    ) -> NewEvent:
        return NewEvent(
            organization_id=organization_id,
            title=title,
            start_time=start,
            end_time=end,
            created_by=user_id,
            **kwargs,
        )

    return _make


@pytest.fixture
def weekly_thursdays() -> RecurrenceInput:
    """Weekly on Thursdays through the end of August 2025 (8 occurrences from 10 July)."""
    return RecurrenceInput(
        frequency="weekly",
        week_days=[4],
        end_date=datetime(2025, 8, 31).date(),
    )

"""
FastAPI dependency injection providers.

Provides database sessions, the event store, the booking coordinator and
user context.
"""

import logging
from typing import Generator, Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from club_scheduler.database import get_db
from club_scheduler.exceptions import ValidationError
from club_scheduler.services.booking import BookingCoordinator
from club_scheduler.services.notifications import LoggingNotifier, Notifier
from club_scheduler.store.sqlalchemy_store import SQLAlchemyEventStore

logger = logging.getLogger(__name__)

# Notifier shared by all requests (replace at startup for a real channel)
_notifier: Notifier = LoggingNotifier()


def set_notifier(notifier: Notifier) -> None:
    """Install the notification channel used by the API."""
    global _notifier
    _notifier = notifier
    logger.info(f"Notifier set to {type(notifier).__name__}")


def get_notifier() -> Notifier:
    return _notifier


def get_db_session() -> Generator[Session, None, None]:
    """
    Dependency injection for database session.

    Yields a database session and ensures cleanup.
    """
    yield from get_db()


def get_store(db: Session = Depends(get_db_session)) -> SQLAlchemyEventStore:
    return SQLAlchemyEventStore(db)


def get_coordinator(
    store: SQLAlchemyEventStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
) -> BookingCoordinator:
    return BookingCoordinator(store, notifier=notifier)


def get_user_id(
    x_user_id: Optional[str] = Header(None, description="User ID"),
) -> Optional[str]:
    """Raw user ID from the X-User-ID header."""
    return x_user_id


def resolve_user_id(
    request_user_id: Optional[UUID],
    header_user_id: Optional[str],
) -> UUID:
    """
    Resolve user ID from request body or header.

    Priority: request body > header

    Raises:
        ValidationError: If neither is given or the header is not a UUID
    """
    if request_user_id is not None:
        return request_user_id
    if not header_user_id:
        raise ValidationError(
            "User ID required (request body or X-User-ID header)",
            details={"field": "user_id"},
        )
    try:
        return UUID(header_user_id)
    except ValueError as e:
        raise ValidationError(
            f"Invalid X-User-ID header: {header_user_id!r}",
            details={"field": "user_id"},
        ) from e

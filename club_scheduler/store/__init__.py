"""
Storage layer for Club Scheduler.

Exports the EventStore protocol, its SQLAlchemy implementation and the
scope locks that serialize booking writes.
"""

from club_scheduler.store.base import BLOCKING_PARTICIPANT_STATUSES, EventFilters, EventStore
from club_scheduler.store.locks import (
    ScopeLockRegistry,
    get_lock_registry,
    reset_lock_registry,
    scope_keys,
)
from club_scheduler.store.sqlalchemy_store import SQLAlchemyEventStore

__all__ = [
    "BLOCKING_PARTICIPANT_STATUSES",
    "EventFilters",
    "EventStore",
    "SQLAlchemyEventStore",
    "ScopeLockRegistry",
    "get_lock_registry",
    "reset_lock_registry",
    "scope_keys",
]

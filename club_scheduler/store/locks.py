"""
Scope locks for booking writes.

Two writers that touch the same resource, team or location must not both
pass the conflict check before either commits. Every write therefore holds
a lock per scope key for the whole check-then-write sequence:

- resource:<id>
- team:<id>
- location:<id>

Keys are acquired in sorted order so two writers never wait on each other
in opposite orders. Locks are process-local threading locks; the SQLAlchemy
store adds PostgreSQL advisory locks for multi-process deployments.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional
from uuid import UUID

from club_scheduler.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


def scope_keys(
    resource_ids: Iterable[UUID] = (),
    team_id: Optional[UUID] = None,
    location_id: Optional[UUID] = None,
) -> list[str]:
    """
    Lock keys for the scopes a booking touches, sorted and unique.

    Example:
        >>> scope_keys([resource_id], team_id=team_id)
        ['resource:...', 'team:...']
    """
    keys = {f"resource:{rid}" for rid in resource_ids}
    if team_id is not None:
        keys.add(f"team:{team_id}")
    if location_id is not None:
        keys.add(f"location:{location_id}")
    return sorted(keys)


class _ScopeLock:
    """A scope's lock and how many callers hold or wait for it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class ScopeLockRegistry:
    """
    Registry of one lock per scope key.

    A key's lock exists only while someone holds or waits for it, so the
    registry stays as small as the set of scopes currently being booked.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, _ScopeLock] = {}

    def active_keys(self) -> list[str]:
        """Keys someone currently holds or waits for."""
        with self._guard:
            return sorted(self._locks)

    def _checkout(self, key: str) -> _ScopeLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _ScopeLock()
                self._locks[key] = entry
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _ScopeLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: Optional[float] = None) -> Iterator[list[str]]:
        """
        Hold every lock in keys for the duration of the block.

        Args:
            keys: Scope keys (duplicates are ignored)
            timeout: Seconds to wait per lock (None waits forever)

        Yields:
            The sorted keys actually held

        Raises:
            LockTimeoutError: If a lock could not be acquired in time
        """
        ordered = sorted(set(keys))
        checked_out: list[tuple[str, _ScopeLock]] = []
        acquired: list[_ScopeLock] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                checked_out.append((key, entry))
                if not entry.lock.acquire(timeout=-1 if timeout is None else timeout):
                    logger.warning(f"Timed out waiting for scope lock {key}")
                    raise LockTimeoutError(
                        f"Timed out waiting for {key}",
                        details={"scope": key, "timeout_seconds": timeout},
                    )
                acquired.append(entry)
            yield ordered
        finally:
            for entry in reversed(acquired):
                entry.lock.release()
            for key, entry in reversed(checked_out):
                self._checkin(key, entry)


# Process-wide registry shared by every coordinator
_registry: Optional[ScopeLockRegistry] = None
_registry_guard = threading.Lock()


def get_lock_registry() -> ScopeLockRegistry:
    """Get the process-wide scope lock registry."""
    global _registry
    with _registry_guard:
        if _registry is None:
            _registry = ScopeLockRegistry()
        return _registry


def reset_lock_registry() -> None:
    """Reset the process-wide registry (for testing)."""
    global _registry
    _registry = None

"""
Notification intents.

The scheduler decides what must be communicated (who, about which event,
what changed) and hands a NotificationIntent to a Notifier. Delivery
channels (email, push, SMS) live behind that interface.

Delivery is best-effort: a failing notifier is logged and never undoes or
fails the booking that triggered it.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Protocol, Sequence
from uuid import UUID

from club_scheduler.models.base import as_utc
from club_scheduler.models.events import Event
from club_scheduler.services.events import recipient_ids

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    CREATED = "event.created"
    UPDATED = "event.updated"
    CANCELLED = "event.cancelled"
    APPROVED = "event.approved"


@dataclass(frozen=True)
class NotificationIntent:
    """What to tell whom about one event."""

    kind: NotificationKind
    event_id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    recipient_ids: tuple[UUID, ...] = ()
    changes: tuple[str, ...] = ()
    occurrence_date: Optional[date] = None
    series_id: Optional[UUID] = None

    @classmethod
    def for_event(
        cls,
        kind: NotificationKind,
        event: Event,
        changes: Sequence[str] = (),
        occurrence_date: Optional[date] = None,
    ) -> "NotificationIntent":
        return cls(
            kind=kind,
            event_id=event.id,
            title=event.title,
            start_time=as_utc(event.start_time),
            end_time=as_utc(event.end_time),
            recipient_ids=recipient_ids(event),
            changes=tuple(changes),
            occurrence_date=occurrence_date,
            series_id=event.series_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "event_id": str(self.event_id),
            "title": self.title,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "recipient_ids": [str(r) for r in self.recipient_ids],
            "changes": list(self.changes),
            "occurrence_date": self.occurrence_date.isoformat() if self.occurrence_date else None,
            "series_id": str(self.series_id) if self.series_id else None,
        }


class Notifier(Protocol):
    """Delivery channel for notification intents."""

    def notify(self, intent: NotificationIntent) -> None:
        ...


class LoggingNotifier:
    """Notifier that only logs intents (default when no channel is configured)."""

    def notify(self, intent: NotificationIntent) -> None:
        logger.info(
            f"{intent.kind.value}: {intent.title} ({intent.event_id}) "
            f"to {len(intent.recipient_ids)} recipients",
            extra={"notification": intent.to_dict()},
        )


class RecordingNotifier:
    """Notifier that keeps intents in memory (tests, previews)."""

    def __init__(self):
        self.intents: list[NotificationIntent] = []

    def notify(self, intent: NotificationIntent) -> None:
        self.intents.append(intent)


def dispatch(notifier: Notifier, intent: NotificationIntent) -> bool:
    """
    Hand an intent to a notifier.

    Returns:
        True if the notifier accepted it, False if it raised
    """
    try:
        notifier.notify(intent)
        return True
    except Exception as e:
        logger.error(f"Failed to send {intent.kind.value} for event {intent.event_id}: {e}", exc_info=True)
        return False

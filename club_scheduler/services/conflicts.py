"""
Conflict detection service.

Answers "which existing commitments collide with this candidate window?"
across four dimensions:
- resource: a live booking of the same resource overlaps
- team: the same team already has an event then
- location: the same location is already in use
- participant: an accepted or tentative participant is already busy

Recurring series are expanded over the window, so an occurrence of a weekly
practice conflicts even though only its anchor is stored. Results are
deduplicated and ordered deterministically; the detector never writes.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Sequence
from uuid import UUID

from club_scheduler.models.base import as_utc
from club_scheduler.models.events import Event
from club_scheduler.services.recurrence import (
    MonthDayPolicy,
    RecurrencePattern,
    iter_occurrences,
)
from club_scheduler.services.windows import TimeWindow
from club_scheduler.store.base import BLOCKING_PARTICIPANT_STATUSES, EventStore

logger = logging.getLogger(__name__)


class ConflictReason(str, Enum):
    RESOURCE = "resource"
    TEAM = "team"
    LOCATION = "location"
    PARTICIPANT = "participant"


# Report order across dimensions
_REASON_ORDER = {
    ConflictReason.RESOURCE: 0,
    ConflictReason.TEAM: 1,
    ConflictReason.LOCATION: 2,
    ConflictReason.PARTICIPANT: 3,
}

# Summary keys used by group_conflicts
_SUMMARY_KEYS = {
    ConflictReason.RESOURCE: "resources",
    ConflictReason.TEAM: "teams",
    ConflictReason.LOCATION: "locations",
    ConflictReason.PARTICIPANT: "participants",
}


@dataclass(frozen=True)
class ConflictCandidate:
    """
    A proposed booking to check.

    Exclusions let an update skip the event being edited (or every
    instance of its series) instead of reporting it against itself.
    """

    window: TimeWindow
    resource_ids: tuple[UUID, ...] = ()
    team_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    participant_ids: tuple[UUID, ...] = ()
    exclude_event_id: Optional[UUID] = None
    exclude_series_ids: tuple[UUID, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "resource_ids", tuple(dict.fromkeys(self.resource_ids or ())))
        object.__setattr__(self, "participant_ids", tuple(dict.fromkeys(self.participant_ids or ())))
        object.__setattr__(self, "exclude_series_ids", tuple(self.exclude_series_ids or ()))

    @property
    def has_dimensions(self) -> bool:
        return bool(
            self.resource_ids
            or self.team_id is not None
            or self.location_id is not None
            or self.participant_ids
        )

    def excludes(self, event: Event) -> bool:
        if self.exclude_event_id is not None and event.id == self.exclude_event_id:
            return True
        return event.series_id is not None and event.series_id in self.exclude_series_ids


@dataclass(frozen=True)
class ConflictEntry:
    """
    One collision between the candidate and an existing commitment.

    window is the conflicting occurrence's window (the booking window for
    resources held by single events); occurrence_date is set when the
    commitment is an occurrence of a recurring series.
    """

    conflicting_event_id: UUID
    reason: ConflictReason
    conflict_identifier: UUID
    window: TimeWindow
    title: str = field(default="", compare=False)
    occurrence_date: Optional[date] = None

    @property
    def sort_key(self) -> tuple:
        return (
            _REASON_ORDER[self.reason],
            self.window.start,
            self.window.end,
            str(self.conflicting_event_id),
            str(self.conflict_identifier),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "conflicting_event_id": str(self.conflicting_event_id),
            "reason": self.reason.value,
            "conflict_identifier": str(self.conflict_identifier),
            "title": self.title,
            "start_time": self.window.start.isoformat(),
            "end_time": self.window.end.isoformat(),
            "occurrence_date": self.occurrence_date.isoformat() if self.occurrence_date else None,
        }


class ConflictDetector:
    """
    Read-only conflict finder over an EventStore.

    Example:
        detector = ConflictDetector(store)
        entries = detector.find_conflicts(
            ConflictCandidate(window, resource_ids=(field_id,))
        )
    """

    def __init__(self, store: EventStore, policy: Optional[MonthDayPolicy] = None):
        self._store = store
        self._policy = policy

    def find_conflicts(self, candidate: ConflictCandidate) -> list[ConflictEntry]:
        """
        Every commitment colliding with the candidate window.

        Returns:
            Deduplicated entries ordered by dimension (resource, team,
            location, participant), then start, end, event id, identifier
        """
        return self.find_conflicts_for_windows(candidate, [candidate.window])

    def find_conflicts_for_windows(
        self,
        candidate: ConflictCandidate,
        windows: Sequence[TimeWindow],
    ) -> list[ConflictEntry]:
        """
        Conflicts for the candidate's dimensions across several windows.

        Used for recurring candidates: each occurrence window is checked
        against one store lookup over the windows' envelope.
        """
        if not candidate.has_dimensions or not windows:
            return []

        envelope = TimeWindow(
            min(w.start for w in windows),
            max(w.end for w in windows),
        )
        lookup = {
            "resource_ids": candidate.resource_ids,
            "team_id": candidate.team_id,
            "location_id": candidate.location_id,
            "participant_ids": candidate.participant_ids,
        }

        entries: set[ConflictEntry] = set()

        for event in self._store.find_single_commitments(envelope, **lookup):
            if candidate.excludes(event):
                continue
            for window in windows:
                entries.update(_single_event_entries(event, candidate, window))

        for anchor in self._store.find_recurring_anchors(envelope, **lookup):
            if candidate.excludes(anchor):
                continue
            entries.update(self._series_entries(anchor, candidate, windows, envelope))

        ordered = sorted(entries, key=lambda e: e.sort_key)
        if ordered:
            logger.debug(f"Found {len(ordered)} conflicts for {envelope}")
        return ordered

    def has_conflicts(self, candidate: ConflictCandidate) -> bool:
        return bool(self.find_conflicts(candidate))

    def _series_entries(
        self,
        anchor: Event,
        candidate: ConflictCandidate,
        windows: Sequence[TimeWindow],
        envelope: TimeWindow,
    ) -> Iterator[ConflictEntry]:
        rule = anchor.recurrence_rule
        if rule is None:
            return
        pattern = RecurrencePattern.from_rule(rule)
        duration = as_utc(anchor.end_time) - as_utc(anchor.start_time)

        # Occurrences starting up to one duration before the envelope can still overlap it
        search = envelope.widen(before=duration)
        for occurrence in iter_occurrences(pattern, anchor, search, self._policy):
            occurrence_window = occurrence.window
            for window in windows:
                if occurrence_window.overlaps(window):
                    yield from _dimension_entries(
                        anchor,
                        candidate,
                        occurrence_window,
                        resource_ids=anchor.resource_ids,
                        occurrence_date=occurrence.date,
                    )


def _single_event_entries(
    event: Event,
    candidate: ConflictCandidate,
    window: TimeWindow,
) -> Iterator[ConflictEntry]:
    # Resources are held for their booking windows
    for booking in event.bookings:
        if booking.status == "cancelled" or booking.is_deleted:
            continue
        if booking.resource_id not in candidate.resource_ids:
            continue
        booking_window = TimeWindow.of(booking)
        if booking_window.overlaps(window):
            yield ConflictEntry(
                conflicting_event_id=event.id,
                reason=ConflictReason.RESOURCE,
                conflict_identifier=booking.resource_id,
                window=booking_window,
                title=event.title,
            )

    event_window = TimeWindow.of(event)
    if event_window.overlaps(window):
        yield from _dimension_entries(event, candidate, event_window, resource_ids=())


def _dimension_entries(
    event: Event,
    candidate: ConflictCandidate,
    window: TimeWindow,
    resource_ids: Iterable[UUID],
    occurrence_date: Optional[date] = None,
) -> Iterator[ConflictEntry]:
    """Entries for every dimension the event shares with the candidate."""

    def entry(reason: ConflictReason, identifier: UUID) -> ConflictEntry:
        return ConflictEntry(
            conflicting_event_id=event.id,
            reason=reason,
            conflict_identifier=identifier,
            window=window,
            title=event.title,
            occurrence_date=occurrence_date,
        )

    for resource_id in resource_ids:
        if resource_id in candidate.resource_ids:
            yield entry(ConflictReason.RESOURCE, resource_id)

    if candidate.team_id is not None and event.team_id == candidate.team_id:
        yield entry(ConflictReason.TEAM, candidate.team_id)

    if candidate.location_id is not None and event.location_id == candidate.location_id:
        yield entry(ConflictReason.LOCATION, candidate.location_id)

    for participant in event.participants:
        if participant.is_deleted or participant.status not in BLOCKING_PARTICIPANT_STATUSES:
            continue
        if participant.participant_id in candidate.participant_ids:
            yield entry(ConflictReason.PARTICIPANT, participant.participant_id)


def group_conflicts(entries: Iterable[ConflictEntry]) -> dict[str, list[str]]:
    """
    Summarize conflicts per dimension.

    Returns:
        Dict of dimension ("resources", "teams", "locations", "participants")
        to the distinct conflicting identifiers, in first-seen order

    Example:
        >>> group_conflicts(entries)
        {'resources': ['...'], 'teams': [], 'locations': [], 'participants': []}
    """
    summary: dict[str, list[str]] = {key: [] for key in _SUMMARY_KEYS.values()}
    for entry in entries:
        bucket = summary[_SUMMARY_KEYS[entry.reason]]
        identifier = str(entry.conflict_identifier)
        if identifier not in bucket:
            bucket.append(identifier)
    return summary

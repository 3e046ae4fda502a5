"""
Service layer for Club Scheduler.

Provides the scheduling logic for:
- Time windows and recurrence expansion
- Conflict detection across resources, teams, locations and participants
- Series edits (single occurrence, this and future, all)
- Locked, conflict-checked booking writes
- Notification intents
"""

from club_scheduler.services.windows import TimeWindow

from club_scheduler.services.recurrence import (
    Frequency,
    MonthDayPolicy,
    Occurrence,
    RecurrencePattern,
    clear_expansion_cache,
    count_occurrences_before,
    describe_recurrence,
    expand_recurrence,
    is_occurrence_date,
    iter_occurrences,
    next_occurrence,
    parse_exception_date,
    validate_recurrence,
)

from club_scheduler.services.events import (
    UNSET,
    EventChanges,
    NewEvent,
    ParticipantInput,
    RecurrenceInput,
    UpdateEvent,
)

from club_scheduler.services.conflicts import (
    ConflictCandidate,
    ConflictDetector,
    ConflictEntry,
    ConflictReason,
    group_conflicts,
)

from club_scheduler.services.series import EditMode, SeriesEditor

from club_scheduler.services.notifications import (
    LoggingNotifier,
    NotificationIntent,
    NotificationKind,
    Notifier,
    RecordingNotifier,
)

from club_scheduler.services.booking import BookingCoordinator, EventPage

__all__ = [
    # Windows
    "TimeWindow",
    # Recurrence
    "Frequency",
    "MonthDayPolicy",
    "Occurrence",
    "RecurrencePattern",
    "clear_expansion_cache",
    "count_occurrences_before",
    "describe_recurrence",
    "expand_recurrence",
    "is_occurrence_date",
    "iter_occurrences",
    "next_occurrence",
    "parse_exception_date",
    "validate_recurrence",
    # Requests
    "UNSET",
    "EventChanges",
    "NewEvent",
    "ParticipantInput",
    "RecurrenceInput",
    "UpdateEvent",
    # Conflicts
    "ConflictCandidate",
    "ConflictDetector",
    "ConflictEntry",
    "ConflictReason",
    "group_conflicts",
    # Series
    "EditMode",
    "SeriesEditor",
    # Notifications
    "LoggingNotifier",
    "NotificationIntent",
    "NotificationKind",
    "Notifier",
    "RecordingNotifier",
    # Booking
    "BookingCoordinator",
    "EventPage",
]

"""
Pydantic request and response models for the Club Scheduler API.

Request models translate into the service layer's request dataclasses;
response models render ORM rows and conflict entries.
"""

from datetime import date, datetime
from typing import Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from club_scheduler.models.events import Event, EventParticipant
from club_scheduler.services.booking import EventPage
from club_scheduler.services.conflicts import ConflictEntry
from club_scheduler.services.events import (
    EventChanges,
    NewEvent,
    ParticipantInput,
    RecurrenceInput,
)
from club_scheduler.services.recurrence import Occurrence

EventType = Literal["practice", "game", "meeting", "training", "tournament", "other"]
Visibility = Literal["private", "team", "public"]
EventStatus = Literal["draft", "pending", "confirmed", "cancelled"]


# =============================================================================
# Request Models
# =============================================================================


class ParticipantRequest(BaseModel):
    participant_id: UUID
    role: Literal["organizer", "required", "optional"] = "required"
    status: Literal["pending", "accepted", "declined", "tentative"] = "pending"


class RecurrenceRequest(BaseModel):
    """
    Repeating pattern for a new series.

    Domain checks (day ranges, end_date after start) happen in the service
    layer and come back as invalid_rule errors.
    """

    frequency: str = Field(..., examples=["weekly"])
    interval: int = Field(default=1, description="Periods between active periods")
    end_date: Optional[date] = Field(None, description="Last occurrence date (inclusive)")
    count: Optional[int] = Field(None, description="Maximum number of occurrences")
    week_days: list[int] = Field(default_factory=list, description="0 = Sunday ... 6 = Saturday")
    month_days: list[int] = Field(default_factory=list, description="1-31")
    months: list[int] = Field(default_factory=list, description="0 = January ... 11 = December")
    exception_dates: list[date] = Field(default_factory=list)

    def to_input(self) -> RecurrenceInput:
        return RecurrenceInput(
            frequency=self.frequency,
            interval=self.interval,
            end_date=self.end_date,
            count=self.count,
            week_days=self.week_days,
            month_days=self.month_days,
            months=self.months,
            exception_dates=self.exception_dates,
        )


class CreateEventRequest(BaseModel):
    """Request to create a single event or a recurring series."""

    organization_id: UUID
    title: str = Field(..., min_length=1, max_length=200, examples=["U12 practice"])
    description: Optional[str] = None
    event_type: EventType = "practice"
    start_time: datetime
    end_time: datetime
    status: Optional[Literal["draft", "pending", "confirmed"]] = None
    visibility: Visibility = "team"
    team_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    resource_ids: list[UUID] = Field(default_factory=list)
    participants: list[ParticipantRequest] = Field(default_factory=list)
    recurrence: Optional[RecurrenceRequest] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[UUID] = Field(
        None,
        description="Creating user (defaults to the X-User-ID header)",
    )

    @field_validator("title")
    @classmethod
    def validate_title_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    def to_new_event(self, created_by: UUID) -> NewEvent:
        return NewEvent(
            organization_id=self.organization_id,
            title=self.title,
            start_time=self.start_time,
            end_time=self.end_time,
            created_by=created_by,
            description=self.description,
            event_type=self.event_type,
            visibility=self.visibility,
            status=self.status,
            team_id=self.team_id,
            location_id=self.location_id,
            resource_ids=self.resource_ids,
            participants=[
                ParticipantInput(p.participant_id, role=p.role, status=p.status)
                for p in self.participants
            ],
            recurrence=self.recurrence.to_input() if self.recurrence else None,
            metadata=self.metadata,
        )


class UpdateEventRequest(BaseModel):
    """
    Partial update. Only fields present in the body are changed; an explicit
    null clears optional fields such as team_id or location_id.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    event_type: Optional[EventType] = None
    status: Optional[Literal["draft", "pending", "confirmed"]] = None
    visibility: Optional[Visibility] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    team_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    resource_ids: Optional[list[UUID]] = None
    metadata: Optional[dict[str, Any]] = None

    def to_changes(self) -> EventChanges:
        return EventChanges.from_dict(self.model_dump(exclude_unset=True))


class SeriesEditRequest(BaseModel):
    """Edit of one occurrence, this and future occurrences, or the whole series."""

    mode: str = Field("single", description="single, future or all", examples=["single"])
    changes: UpdateEventRequest = Field(default_factory=UpdateEventRequest)


class ApproveEventRequest(BaseModel):
    approved_by: Optional[UUID] = Field(
        None,
        description="Approving user (defaults to the X-User-ID header)",
    )


class CancelEventRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RsvpRequest(BaseModel):
    status: str = Field(..., examples=["accepted"])
    message: Optional[str] = Field(None, max_length=500)


class AddParticipantsRequest(BaseModel):
    participants: list[ParticipantRequest] = Field(..., min_length=1)

    def to_inputs(self) -> list[ParticipantInput]:
        return [ParticipantInput(p.participant_id, role=p.role, status=p.status) for p in self.participants]


class ConflictCheckRequest(BaseModel):
    """Candidate window and the commitments it would claim."""

    start_time: datetime
    end_time: datetime
    resource_ids: list[UUID] = Field(default_factory=list)
    team_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    participant_ids: list[UUID] = Field(default_factory=list)
    exclude_event_id: Optional[UUID] = None
    exclude_series_id: Optional[UUID] = None


# =============================================================================
# Response Models
# =============================================================================


class BookingResponse(BaseModel):
    id: UUID
    resource_id: UUID
    start_time: datetime
    end_time: datetime
    status: str


class ParticipantResponse(BaseModel):
    participant_id: UUID
    role: str
    status: str
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None

    @classmethod
    def from_participant(cls, participant: EventParticipant) -> "ParticipantResponse":
        return cls(
            participant_id=participant.participant_id,
            role=participant.role,
            status=participant.status,
            responded_at=participant.responded_at,
            response_message=participant.response_message,
        )


class RecurrenceResponse(BaseModel):
    id: UUID
    frequency: str
    interval: int
    start_date: datetime
    end_date: Optional[date] = None
    count: Optional[int] = None
    week_days: Optional[list[int]] = None
    month_days: Optional[list[int]] = None
    months: Optional[list[int]] = None
    exception_dates: list[str] = Field(default_factory=list)
    description: Optional[str] = None


class EventResponse(BaseModel):
    """Event with its recurrence, bookings and participants."""

    id: UUID
    organization_id: UUID
    title: str
    description: Optional[str] = None
    event_type: str
    start_time: datetime
    end_time: datetime
    status: str
    visibility: str
    team_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    series_id: Optional[UUID] = None
    parent_event_id: Optional[UUID] = None
    recurrence_exception_date: Optional[date] = None
    created_by: UUID
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    recurrence: Optional[RecurrenceResponse] = None
    bookings: list[BookingResponse] = Field(default_factory=list)
    participants: list[ParticipantResponse] = Field(default_factory=list)

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        rule = event.recurrence_rule
        return cls(
            id=event.id,
            organization_id=event.organization_id,
            title=event.title,
            description=event.description,
            event_type=event.event_type,
            start_time=event.start_time,
            end_time=event.end_time,
            status=event.status,
            visibility=event.visibility,
            team_id=event.team_id,
            location_id=event.location_id,
            series_id=event.series_id,
            parent_event_id=event.parent_event_id,
            recurrence_exception_date=event.recurrence_exception_date,
            created_by=event.created_by,
            approved_by=event.approved_by,
            approved_at=event.approved_at,
            cancelled_at=event.cancelled_at,
            cancellation_reason=event.cancellation_reason,
            metadata=event.event_metadata or {},
            recurrence=RecurrenceResponse(
                id=rule.id,
                frequency=rule.frequency,
                interval=rule.interval,
                start_date=rule.start_date,
                end_date=rule.end_date,
                count=rule.count,
                week_days=rule.week_days,
                month_days=rule.month_days,
                months=rule.months,
                exception_dates=list(rule.exception_dates or []),
                description=rule.description,
            ) if rule is not None else None,
            bookings=[
                BookingResponse(
                    id=b.id,
                    resource_id=b.resource_id,
                    start_time=b.start_time,
                    end_time=b.end_time,
                    status=b.status,
                )
                for b in event.bookings
            ],
            participants=[
                ParticipantResponse.from_participant(p)
                for p in event.participants
                if not p.is_deleted
            ],
        )


class SeriesEditResponse(BaseModel):
    """Events written by a series edit (one, or original and new anchor on a split)."""

    events: list[EventResponse]


class SeriesDeleteResponse(BaseModel):
    success: bool = True
    cancelled_event_ids: list[UUID] = Field(default_factory=list)
    message: str


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class EventListResponse(BaseModel):
    events: list[EventResponse]
    pagination: PaginationResponse

    @classmethod
    def from_page(cls, page: EventPage) -> "EventListResponse":
        return cls(
            events=[EventResponse.from_event(e) for e in page.events],
            pagination=PaginationResponse(
                page=page.page,
                limit=page.limit,
                total=page.total,
                total_pages=page.total_pages,
            ),
        )


class ParticipantRemovedResponse(BaseModel):
    success: bool = True
    participant_id: UUID
    message: str


class ConflictEntryResponse(BaseModel):
    conflicting_event_id: UUID
    reason: Literal["resource", "team", "location", "participant"]
    conflict_identifier: UUID
    title: str
    start_time: datetime
    end_time: datetime
    occurrence_date: Optional[date] = None

    @classmethod
    def from_entry(cls, entry: ConflictEntry) -> "ConflictEntryResponse":
        return cls(
            conflicting_event_id=entry.conflicting_event_id,
            reason=entry.reason.value,
            conflict_identifier=entry.conflict_identifier,
            title=entry.title,
            start_time=entry.window.start,
            end_time=entry.window.end,
            occurrence_date=entry.occurrence_date,
        )


class ConflictCheckResponse(BaseModel):
    has_conflicts: bool
    conflicts: list[ConflictEntryResponse] = Field(default_factory=list)
    summary: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Conflicting identifiers per dimension",
    )


class InstanceResponse(BaseModel):
    """One entry of a series on the calendar: generated or an exception event."""

    start_time: datetime
    end_time: datetime
    title: str
    series_id: Optional[UUID] = None
    parent_event_id: Optional[UUID] = None
    event_id: Optional[UUID] = Field(None, description="Set for stored (exception) events")
    recurrence_instance_index: Optional[int] = None
    is_exception: bool = False
    status: Optional[str] = None

    @classmethod
    def from_instance(cls, instance: Union[Occurrence, Event]) -> "InstanceResponse":
        if isinstance(instance, Occurrence):
            return cls(
                start_time=instance.start_time,
                end_time=instance.end_time,
                title=instance.title,
                series_id=instance.series_id,
                parent_event_id=instance.parent_event_id,
                recurrence_instance_index=instance.recurrence_instance_index,
            )
        return cls(
            start_time=instance.start_time,
            end_time=instance.end_time,
            title=instance.title,
            series_id=instance.series_id,
            parent_event_id=instance.parent_event_id,
            event_id=instance.id,
            is_exception=instance.parent_event_id is not None,
            status=instance.status,
        )


class InstanceListResponse(BaseModel):
    event_id: UUID
    instances: list[InstanceResponse]
    total: int


class HealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    version: str
    database_connected: bool


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    retryable: bool = False

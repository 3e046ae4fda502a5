"""
FastAPI application for Club Scheduler.

This is the main entry point for the HTTP API, providing:
- Event booking endpoints (create, update, approve, cancel, RSVP, participants)
- Event listings (filtered pages, date ranges, upcoming events)
- Recurring series endpoints (instances, single/future/all edits and deletes)
- Conflict check endpoint
- Health endpoint

Endpoints are plain `def` functions: the service layer is synchronous and
FastAPI runs them in its thread pool.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from dateutil.parser import parse as parse_date
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from club_scheduler import __version__
from club_scheduler.api.dependencies import (
    get_coordinator,
    get_user_id,
    resolve_user_id,
)
from club_scheduler.api.middleware import RequestLoggingMiddleware, get_request_id
from club_scheduler.api.models import (
    AddParticipantsRequest,
    ApproveEventRequest,
    CancelEventRequest,
    ConflictCheckRequest,
    ConflictCheckResponse,
    ConflictEntryResponse,
    CreateEventRequest,
    EventListResponse,
    EventResponse,
    EventStatus,
    EventType,
    HealthResponse,
    InstanceListResponse,
    InstanceResponse,
    ParticipantRemovedResponse,
    ParticipantResponse,
    RsvpRequest,
    SeriesDeleteResponse,
    SeriesEditRequest,
    SeriesEditResponse,
    UpdateEventRequest,
)
from club_scheduler.config import get_settings
from club_scheduler.database import check_connection
from club_scheduler.exceptions import SchedulingError, ValidationError
from club_scheduler.services.booking import BookingCoordinator
from club_scheduler.services.conflicts import ConflictCandidate, group_conflicts
from club_scheduler.services.windows import TimeWindow
from club_scheduler.store.base import EventFilters

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Club Scheduler API")
    settings.validate_production_config()
    yield
    logger.info("Shutting down Club Scheduler API")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Club Scheduler API",
    description="""
# Club Scheduler API

Scheduling for a club's practices, games and meetings, and the resources
and locations they use.

## Core Workflows

### Booking
1. **POST /events/conflicts** - Check a window before booking (read-only)
2. **POST /events** - Create a single event or a recurring series
3. **POST /events/{event_id}/approve** - Confirm a pending event

### Listings
- **GET /events** - Filtered, paginated event list
- **GET /events/date-range** - An organization's events in a range
- **GET /events/upcoming** - What a user can expect in the next days

### Recurring series
- **GET /events/{event_id}/instances** - Occurrences in a range
- **PATCH /events/{event_id}/instances/{date}** - Edit one occurrence,
  this and future occurrences, or all of them
- **DELETE /events/{event_id}/instances/{date}** - Same, for deletes

## Error Handling

Errors share one shape: `{error_type, message, details, retryable}`.

- **400** - Not a recurring series / invalid edit mode
- **404** - Event, team, location or resource not found
- **409** - Booking conflicts (`details.conflicts` lists them)
- **422** - Validation error
- **503** - Scope lock timeout (retryable)
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError):
    """Render domain errors with their status hint."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(f"[{get_request_id()}] {exc.error_type}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": exc.error_type,
            "message": exc.message,
            "details": exc.details,
            "retryable": getattr(exc, "retryable", False),
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "details": {},
            "retryable": True,
        },
    )


# =============================================================================
# Health Endpoint
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
def health_check() -> HealthResponse:
    """Check API and database health."""
    database_connected = check_connection()
    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=__version__,
        database_connected=database_connected,
    )


# =============================================================================
# Event Endpoints
# =============================================================================


@app.post(
    "/events",
    response_model=EventResponse,
    status_code=201,
    summary="Create event or series",
    responses={
        404: {"description": "Team, location or resource not found"},
        409: {"description": "Booking conflicts"},
        422: {"description": "Validation error"},
    },
    tags=["Events"],
)
def create_event(
    request: CreateEventRequest,
    x_user_id: Optional[str] = Depends(get_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> EventResponse:
    """
    Create a single event, or a recurring series when `recurrence` is set.

    The booking is rejected with 409 if any resource, the team or the
    location is already committed in the window. A series is checked
    occurrence by occurrence; open-ended ones up to the check horizon.
    """
    user_id = resolve_user_id(request.created_by, x_user_id)
    event = coordinator.create_event(request.to_new_event(user_id))
    return EventResponse.from_event(event)


@app.post(
    "/events/conflicts",
    response_model=ConflictCheckResponse,
    summary="Check conflicts",
    tags=["Events"],
)
def check_conflicts(
    request: ConflictCheckRequest,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> ConflictCheckResponse:
    """
    Check a candidate window against existing commitments without booking.

    Conflicts are not errors here: the response lists them with a summary
    per dimension.
    """
    candidate = ConflictCandidate(
        window=TimeWindow(request.start_time, request.end_time),
        resource_ids=tuple(request.resource_ids),
        team_id=request.team_id,
        location_id=request.location_id,
        participant_ids=tuple(request.participant_ids),
        exclude_event_id=request.exclude_event_id,
        exclude_series_ids=(request.exclude_series_id,) if request.exclude_series_id else (),
    )
    entries = coordinator.check_conflicts(candidate)
    return ConflictCheckResponse(
        has_conflicts=bool(entries),
        conflicts=[ConflictEntryResponse.from_entry(e) for e in entries],
        summary=group_conflicts(entries),
    )


# Fixed /events/... paths must stay above /events/{event_id}


@app.get(
    "/events",
    response_model=EventListResponse,
    summary="List events",
    tags=["Events"],
)
def list_events(
    organization_id: Optional[UUID] = Query(None),
    team_id: Optional[UUID] = Query(None),
    location_id: Optional[UUID] = Query(None),
    resource_id: Optional[UUID] = Query(None),
    event_type: Optional[EventType] = Query(None),
    status: Optional[EventStatus] = Query(None),
    created_by: Optional[UUID] = Query(None),
    participant_id: Optional[UUID] = Query(None),
    start: Optional[str] = Query(None, description="Earliest start (ISO 8601)"),
    end: Optional[str] = Query(None, description="Start before this (ISO 8601)"),
    search: Optional[str] = Query(None, max_length=200, description="Text in title or description"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> EventListResponse:
    """
    Page through live events, ordered by start time.

    Series are listed once, by their anchor event. A start or end filter
    keeps events starting in that range (a missing end defaults to 30 days
    after the start).
    """
    filters = EventFilters(
        organization_id=organization_id,
        team_id=team_id,
        location_id=location_id,
        resource_id=resource_id,
        event_type=event_type,
        status=status,
        created_by=created_by,
        participant_id=participant_id,
        starts_in=_parse_range(start, end) if start or end else None,
        search=search or None,
    )
    return EventListResponse.from_page(coordinator.list_events(filters, page=page, limit=limit))


@app.get(
    "/events/date-range",
    response_model=list[EventResponse],
    summary="Events in a date range",
    tags=["Events"],
)
def list_events_in_range(
    organization_id: UUID = Query(...),
    start: str = Query(..., description="Range start (ISO 8601)"),
    end: str = Query(..., description="Range end (ISO 8601)"),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> list[EventResponse]:
    """Every live event of the organization starting in the range."""
    events = coordinator.events_in_range(organization_id, _parse_range(start, end))
    return [EventResponse.from_event(e) for e in events]


@app.get(
    "/events/upcoming",
    response_model=list[EventResponse],
    summary="Upcoming events for a user",
    tags=["Events"],
)
def list_upcoming_events(
    organization_id: UUID = Query(...),
    days: int = Query(7, ge=1, le=365),
    user_id: Optional[UUID] = Query(None, description="Defaults to the X-User-ID header"),
    x_user_id: Optional[str] = Depends(get_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> list[EventResponse]:
    """Public events and the user's own events in the next `days` days."""
    viewer_id = resolve_user_id(user_id, x_user_id)
    events = coordinator.upcoming_events(viewer_id, organization_id, days)
    return [EventResponse.from_event(e) for e in events]


@app.get(
    "/events/{event_id}",
    response_model=EventResponse,
    summary="Get event details",
    tags=["Events"],
)
def get_event(
    event_id: UUID,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> EventResponse:
    """Get an event, including cancelled ones."""
    return EventResponse.from_event(coordinator.get_event(event_id))


@app.patch(
    "/events/{event_id}",
    response_model=EventResponse,
    summary="Update event",
    responses={409: {"description": "Booking conflicts"}},
    tags=["Events"],
)
def update_event(
    event_id: UUID,
    request: UpdateEventRequest,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> EventResponse:
    """
    Partially update an event. Updating a series anchor changes every
    occurrence.
    """
    event = coordinator.update_event(event_id, request.to_changes())
    return EventResponse.from_event(event)


@app.post(
    "/events/{event_id}/approve",
    response_model=EventResponse,
    summary="Approve event",
    tags=["Events"],
)
def approve_event(
    event_id: UUID,
    request: ApproveEventRequest,
    x_user_id: Optional[str] = Depends(get_user_id),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> EventResponse:
    """Confirm a pending event and its resource bookings."""
    approver_id = resolve_user_id(request.approved_by, x_user_id)
    event = coordinator.approve_event(event_id, approver_id)
    return EventResponse.from_event(event)


@app.post(
    "/events/{event_id}/cancel",
    response_model=EventResponse,
    summary="Cancel event",
    tags=["Events"],
)
def cancel_event(
    event_id: UUID,
    request: CancelEventRequest,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> EventResponse:
    """
    Cancel an event and release its bookings. Cancelling a series anchor
    cancels the whole series.
    """
    event = coordinator.cancel_event(event_id, request.reason)
    return EventResponse.from_event(event)


@app.post(
    "/events/{event_id}/participants/{participant_id}/rsvp",
    response_model=ParticipantResponse,
    summary="Respond to event",
    tags=["Events"],
)
def respond_to_event(
    event_id: UUID,
    participant_id: UUID,
    request: RsvpRequest,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> ParticipantResponse:
    participant = coordinator.respond(event_id, participant_id, request.status, request.message)
    return ParticipantResponse.from_participant(participant)


@app.post(
    "/events/{event_id}/participants",
    response_model=list[ParticipantResponse],
    status_code=201,
    summary="Add participants",
    tags=["Events"],
)
def add_participants(
    event_id: UUID,
    request: AddParticipantsRequest,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> list[ParticipantResponse]:
    """Invite people to an event. Existing participants are left unchanged."""
    participants = coordinator.add_participants(event_id, request.to_inputs())
    return [ParticipantResponse.from_participant(p) for p in participants]


@app.delete(
    "/events/{event_id}/participants/{participant_id}",
    response_model=ParticipantRemovedResponse,
    summary="Remove participant",
    tags=["Events"],
)
def remove_participant(
    event_id: UUID,
    participant_id: UUID,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> ParticipantRemovedResponse:
    coordinator.remove_participant(event_id, participant_id)
    return ParticipantRemovedResponse(
        participant_id=participant_id,
        message=f"Removed participant {participant_id} from event {event_id}",
    )


# =============================================================================
# Series Endpoints
# =============================================================================


def _parse_range(start: Optional[str], end: Optional[str]) -> TimeWindow:
    """Query range from ISO strings (default: now to 30 days from now)."""
    now = datetime.now(timezone.utc)
    try:
        range_start = parse_date(start) if start else now
        range_end = parse_date(end) if end else range_start + timedelta(days=30)
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid date format: {e}", details={"start": start, "end": end}) from e
    return TimeWindow(range_start, range_end)


@app.get(
    "/events/{event_id}/instances",
    response_model=InstanceListResponse,
    summary="List series instances",
    tags=["Series"],
)
def list_instances(
    event_id: UUID,
    start: Optional[str] = Query(None, description="Range start (ISO 8601, default now)"),
    end: Optional[str] = Query(None, description="Range end (ISO 8601, default start + 30 days)"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum instances to return"),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> InstanceListResponse:
    """Generated occurrences plus exception events of a series in a range."""
    query_range = _parse_range(start, end)
    instances = coordinator.list_instances(event_id, query_range, limit=limit)
    return InstanceListResponse(
        event_id=event_id,
        instances=[InstanceResponse.from_instance(i) for i in instances],
        total=len(instances),
    )


@app.patch(
    "/events/{event_id}/instances/{occurrence_date}",
    response_model=SeriesEditResponse,
    summary="Edit series occurrences",
    responses={
        400: {"description": "Not a recurring series or invalid mode"},
        409: {"description": "Booking conflicts"},
    },
    tags=["Series"],
)
def edit_series_instance(
    event_id: UUID,
    occurrence_date: date,
    request: SeriesEditRequest,
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> SeriesEditResponse:
    """
    Edit the occurrence on a date (`single`), it and every later one
    (`future`), or the whole series (`all`).
    """
    result = coordinator.edit_series(
        event_id,
        occurrence_date,
        request.changes.to_changes(),
        request.mode,
    )
    events = result if isinstance(result, list) else [result]
    return SeriesEditResponse(events=[EventResponse.from_event(e) for e in events])


@app.delete(
    "/events/{event_id}/instances/{occurrence_date}",
    response_model=SeriesDeleteResponse,
    summary="Delete series occurrences",
    responses={400: {"description": "Not a recurring series or invalid mode"}},
    tags=["Series"],
)
def delete_series_instance(
    event_id: UUID,
    occurrence_date: date,
    mode: str = Query("single", description="single, future or all"),
    reason: Optional[str] = Query(None, max_length=500),
    coordinator: BookingCoordinator = Depends(get_coordinator),
) -> SeriesDeleteResponse:
    cancelled = coordinator.delete_series(event_id, occurrence_date, mode, reason)
    return SeriesDeleteResponse(
        cancelled_event_ids=[e.id for e in cancelled],
        message=f"Deleted {mode} occurrence(s) from {occurrence_date.isoformat()}",
    )


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: Optional[bool] = None):
    """Run the API server with Uvicorn."""
    import uvicorn

    uvicorn.run(
        "club_scheduler.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=settings.api_reload if reload is None else reload,
    )


if __name__ == "__main__":
    run_server()

"""REST endpoints for in-person meetings.

Thin adapters over MeetingLifecycleManager: request bodies become core
types, core outcomes become response schemas, and MeetingError kinds
become status codes (not_found -> 404, conflict and invalid_input -> 400,
unavailable -> 503).

The create endpoint keeps the map client's contract: ``{"id": ...,
"nearMeetings": [...]}`` where a null id is the only sign that the
meeting was refused.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from src.geomeet.api.deps import get_current_user_id, get_meeting_service
from src.geomeet.meetings.errors import ErrorKind, MeetingConflictError, MeetingError
from src.geomeet.meetings.schemas import (
    Created,
    CreateOutcome,
    Meeting,
    MeetingCreate,
    MeetingUpdate,
)
from src.geomeet.meetings.service import MeetingLifecycleManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ── Request/Response Schemas ─────────────────────────────────────────────────


class MeetingResponse(BaseModel):
    """Response for meeting data, serializes datetimes to ISO strings."""

    id: str
    owner_id: str
    followers: list[str] = Field(default_factory=list)
    location: list[float] = Field(description="[longitude, latitude]")
    scheduled_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class CreateMeetingResponse(BaseModel):
    """Create result; ``id`` is null when the meeting was refused."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    near_meetings: list[MeetingResponse] = Field(
        default_factory=list, alias="nearMeetings"
    )


class MeetingPageResponse(BaseModel):
    items: list[MeetingResponse] = Field(default_factory=list)
    page: int
    size: int
    total: int


class BoundsSearchRequest(BaseModel):
    """Viewport search: ``bounds`` is [[upperLeftLon, upperLeftLat], [lowerRightLon, lowerRightLat]]."""

    bounds: list[list[float]]
    at: datetime | None = None
    timezone_offset_minutes: int | None = None


# ── Conversion Helpers ───────────────────────────────────────────────────────


def _meeting_to_response(m: Meeting) -> MeetingResponse:
    """Convert Meeting schema to MeetingResponse."""
    return MeetingResponse(
        id=str(m.id),
        owner_id=m.owner_id,
        followers=list(m.followers),
        location=m.location.as_pair(),
        scheduled_at=m.scheduled_at.isoformat() if m.scheduled_at else None,
        created_at=m.created_at.isoformat() if m.created_at else None,
        updated_at=m.updated_at.isoformat() if m.updated_at else None,
    )


def _outcome_to_response(outcome: CreateOutcome) -> CreateMeetingResponse:
    """Flatten Created | Rejected into the nullable-id wire shape."""
    if isinstance(outcome, Created):
        return CreateMeetingResponse(id=outcome.meeting.id, near_meetings=[])
    return CreateMeetingResponse(
        id=None,
        near_meetings=[_meeting_to_response(m) for m in outcome.conflicts],
    )


def _to_http(exc: MeetingError) -> HTTPException:
    detail: dict = {"kind": exc.kind.value, "message": exc.message}
    if isinstance(exc, MeetingConflictError):
        detail["conflicts"] = [m.id for m in exc.conflicts]
    return HTTPException(status_code=_STATUS_BY_KIND[exc.kind], detail=detail)


# ── REST Endpoints ───────────────────────────────────────────────────────────


@router.post(
    "",
    response_model=CreateMeetingResponse,
    response_model_by_alias=True,
)
async def create_meeting(
    body: MeetingCreate,
    user_id: str = Depends(get_current_user_id),
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> CreateMeetingResponse:
    """Propose a meeting; refused when another one is nearby the same day."""
    candidate = Meeting(
        owner_id=user_id,
        followers=body.followers,
        location=body.location,
        scheduled_at=body.scheduled_at,
    )
    try:
        outcome = await service.create(candidate, body.timezone_offset_minutes)
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return _outcome_to_response(outcome)


@router.get("/my", response_model=MeetingPageResponse)
async def list_my_meetings(
    page: int = Query(default=0),
    size: int | None = Query(default=None),
    user_id: str = Depends(get_current_user_id),
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> MeetingPageResponse:
    """Meetings the caller owns or follows, owned first."""
    try:
        result = await service.list_mine(user_id, page=page, size=size)
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return MeetingPageResponse(
        items=[_meeting_to_response(m) for m in result.items],
        page=result.page,
        size=result.size,
        total=result.total,
    )


@router.get("/near", response_model=list[MeetingResponse])
async def find_near_meetings(
    lon: float = Query(..., description="Longitude of the map point"),
    lat: float = Query(..., description="Latitude of the map point"),
    at: datetime | None = Query(default=None, description="Only this local day"),
    radius: float | None = Query(default=None, description="Radius in meters"),
    tz_offset: int | None = Query(default=None, description="Timezone offset in minutes"),
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> list[MeetingResponse]:
    """Meetings around a point, for map display."""
    try:
        meetings = await service.find_near(
            [lon, lat], at=at, radius_meters=radius, timezone_offset_minutes=tz_offset
        )
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return [_meeting_to_response(m) for m in meetings]


@router.post("/bounds", response_model=list[MeetingResponse])
async def find_meetings_within_bounds(
    body: BoundsSearchRequest,
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> list[MeetingResponse]:
    """Meetings inside the visible map rectangle."""
    try:
        meetings = await service.find_within_bounds(
            body.bounds, at=body.at, timezone_offset_minutes=body.timezone_offset_minutes
        )
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return [_meeting_to_response(m) for m in meetings]


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str,
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> MeetingResponse:
    """Get meeting details by ID."""
    try:
        meeting = await service.get_by_id(meeting_id)
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return _meeting_to_response(meeting)


@router.put("/{meeting_id}", response_model=MeetingResponse)
async def update_meeting(
    meeting_id: str,
    body: MeetingUpdate,
    user_id: str = Depends(get_current_user_id),
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> MeetingResponse:
    """Move a meeting to another place and/or time.

    Ownership never changes here: the service keeps the stored owner and
    followers and reads only id, location and scheduled_at from the
    candidate. ``user_id`` fills the required field and is otherwise unused.
    """
    candidate = Meeting(
        id=meeting_id,
        owner_id=user_id,
        location=body.location,
        scheduled_at=body.scheduled_at,
    )
    try:
        meeting = await service.update(candidate, body.timezone_offset_minutes)
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return _meeting_to_response(meeting)


@router.delete("/{meeting_id}", response_model=bool)
async def delete_meeting(
    meeting_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> bool:
    """Delete a meeting; unknown ids still report success."""
    try:
        return await service.delete(meeting_id)
    except MeetingError as exc:
        raise _to_http(exc) from exc


@router.post("/{meeting_id}/followers", response_model=MeetingResponse)
async def join_meeting(
    meeting_id: str,
    tz_offset: int | None = Query(default=None, description="Timezone offset in minutes"),
    user_id: str = Depends(get_current_user_id),
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> MeetingResponse:
    """Join the meeting as the current user."""
    try:
        meeting = await service.add_follower(meeting_id, user_id, tz_offset)
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return _meeting_to_response(meeting)


@router.delete("/{meeting_id}/followers", response_model=MeetingResponse)
async def leave_meeting(
    meeting_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MeetingLifecycleManager = Depends(get_meeting_service),
) -> MeetingResponse:
    """Leave the meeting as the current user."""
    try:
        meeting = await service.remove_follower(meeting_id, user_id)
    except MeetingError as exc:
        raise _to_http(exc) from exc
    return _meeting_to_response(meeting)

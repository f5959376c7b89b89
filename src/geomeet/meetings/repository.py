"""Meeting repository -- the proximity index over stored meetings.

Defines the ProximityIndex protocol the conflict resolver and lifecycle
manager depend on, and MeetingRepository, its PostgreSQL implementation
built on the session_factory callable pattern.

Radius queries prefilter by bounding box in SQL and then keep only the
rows within the exact great-circle distance. Window queries are half-open
on ``scheduled_at``; viewport queries are inclusive on every edge.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Protocol

import structlog
from sqlalchemy import ColumnElement, and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.geomeet.meetings.errors import MeetingNotFoundError
from src.geomeet.meetings.geo import haversine_m, radius_bounding_box
from src.geomeet.meetings.models import MeetingModel
from src.geomeet.meetings.schemas import GeoPoint, Meeting

logger = structlog.get_logger(__name__)


class ProximityIndex(Protocol):
    """Geospatial + temporal queries over stored meetings.

    Every query returns distinct meetings; order is unspecified.
    """

    async def query_radius(
        self, lon: float, lat: float, radius_meters: float
    ) -> list[Meeting]: ...

    async def query_radius_in_window(
        self,
        lon: float,
        lat: float,
        radius_meters: float,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Meeting]: ...

    async def query_bounds(
        self,
        upper_left_lon: float,
        lower_right_lat: float,
        lower_right_lon: float,
        upper_left_lat: float,
    ) -> list[Meeting]: ...

    async def query_bounds_in_window(
        self,
        upper_left_lon: float,
        lower_right_lat: float,
        lower_right_lon: float,
        upper_left_lat: float,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Meeting]: ...

    async def query_by_participant(self, user_id: str) -> list[Meeting]: ...

    async def save(self, meeting: Meeting) -> Meeting:
        """Insert when ``id`` is None, else overwrite; MeetingNotFoundError if that row is gone."""
        ...

    async def find_by_id(self, meeting_id: str) -> Meeting | None: ...

    async def delete_by_id(self, meeting_id: str) -> None: ...


# ── Serialization Helpers ───────────────────────────────────────────────────


def _parse_id(meeting_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(meeting_id))
    except ValueError:
        return None


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=str(model.id),
        owner_id=model.owner_id,
        followers=list(model.followers_data or []),
        location=GeoPoint(longitude=model.longitude, latitude=model.latitude),
        scheduled_at=model.scheduled_at,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


def _apply(model: MeetingModel, meeting: Meeting) -> None:
    model.owner_id = meeting.owner_id
    model.followers_data = list(meeting.followers)
    model.longitude = meeting.location.longitude
    model.latitude = meeting.location.latitude
    model.scheduled_at = meeting.scheduled_at


def _in_window(window_start: datetime, window_end: datetime) -> ColumnElement[bool]:
    return and_(
        MeetingModel.scheduled_at >= window_start,
        MeetingModel.scheduled_at < window_end,
    )


def _in_bounds(
    upper_left_lon: float,
    lower_right_lat: float,
    lower_right_lon: float,
    upper_left_lat: float,
) -> ColumnElement[bool]:
    return and_(
        MeetingModel.longitude.between(upper_left_lon, lower_right_lon),
        MeetingModel.latitude.between(lower_right_lat, upper_left_lat),
    )


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """PostgreSQL-backed ProximityIndex.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def _select(self, *criteria: ColumnElement[bool]) -> list[MeetingModel]:
        async for session in self._session_factory():
            result = await session.execute(select(MeetingModel).where(*criteria))
            return list(result.scalars().all())
        return []

    async def _within_radius(
        self,
        lon: float,
        lat: float,
        radius_meters: float,
        *criteria: ColumnElement[bool],
    ) -> list[Meeting]:
        center = GeoPoint(longitude=lon, latitude=lat)
        box = radius_bounding_box(center, radius_meters)
        lon_filter = or_(
            *(MeetingModel.longitude.between(lo, hi) for lo, hi in box.lon_ranges)
        )
        models = await self._select(
            MeetingModel.latitude.between(box.min_lat, box.max_lat),
            lon_filter,
            *criteria,
        )
        meetings = [_model_to_meeting(m) for m in models]
        return [m for m in meetings if haversine_m(center, m.location) <= radius_meters]

    # ── Spatial queries ──────────────────────────────────────────────────

    async def query_radius(
        self, lon: float, lat: float, radius_meters: float
    ) -> list[Meeting]:
        """Meetings within ``radius_meters`` of (lon, lat), any time."""
        return await self._within_radius(lon, lat, radius_meters)

    async def query_radius_in_window(
        self,
        lon: float,
        lat: float,
        radius_meters: float,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Meeting]:
        """Meetings within the radius whose scheduled_at is in [start, end)."""
        return await self._within_radius(
            lon, lat, radius_meters, _in_window(window_start, window_end)
        )

    async def query_bounds(
        self,
        upper_left_lon: float,
        lower_right_lat: float,
        lower_right_lon: float,
        upper_left_lat: float,
    ) -> list[Meeting]:
        """Meetings inside the viewport, edges included."""
        models = await self._select(
            _in_bounds(upper_left_lon, lower_right_lat, lower_right_lon, upper_left_lat)
        )
        return [_model_to_meeting(m) for m in models]

    async def query_bounds_in_window(
        self,
        upper_left_lon: float,
        lower_right_lat: float,
        lower_right_lon: float,
        upper_left_lat: float,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Meeting]:
        """Meetings inside the viewport whose scheduled_at is in [start, end)."""
        models = await self._select(
            _in_bounds(upper_left_lon, lower_right_lat, lower_right_lon, upper_left_lat),
            _in_window(window_start, window_end),
        )
        return [_model_to_meeting(m) for m in models]

    async def query_by_participant(self, user_id: str) -> list[Meeting]:
        """Meetings the user owns or follows."""
        models = await self._select(
            or_(
                MeetingModel.owner_id == user_id,
                MeetingModel.followers_data.contains([user_id]),
            )
        )
        return [_model_to_meeting(m) for m in models]

    # ── CRUD ─────────────────────────────────────────────────────────────

    async def save(self, meeting: Meeting) -> Meeting:
        """Insert a new meeting (assigning its id) or overwrite an existing one.

        Args:
            meeting: Meeting to persist; ``id`` None means new.

        Returns:
            Meeting with all persisted fields.

        Raises:
            MeetingNotFoundError: ``meeting.id`` is set but no row has it,
                e.g. the meeting was deleted after it was read.
        """
        async for session in self._session_factory():
            if meeting.id is None:
                model = MeetingModel()
                session.add(model)
            else:
                parsed = _parse_id(meeting.id)
                found = await session.get(MeetingModel, parsed) if parsed is not None else None
                if found is None:
                    raise MeetingNotFoundError(meeting.id)
                model = found
            _apply(model, meeting)
            await session.commit()
            await session.refresh(model)
            logger.debug("meeting_repository.saved", meeting_id=str(model.id))
            return _model_to_meeting(model)
        raise RuntimeError("session factory yielded no session")

    async def find_by_id(self, meeting_id: str) -> Meeting | None:
        """Get a meeting by ID, None if absent or not a valid id."""
        parsed = _parse_id(meeting_id)
        if parsed is None:
            return None
        async for session in self._session_factory():
            model = await session.get(MeetingModel, parsed)
            if model is None:
                return None
            return _model_to_meeting(model)
        return None

    async def delete_by_id(self, meeting_id: str) -> None:
        """Delete a meeting. Unknown ids are ignored."""
        parsed = _parse_id(meeting_id)
        if parsed is None:
            return
        async for session in self._session_factory():
            await session.execute(delete(MeetingModel).where(MeetingModel.id == parsed))
            await session.commit()

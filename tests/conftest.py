"""Shared fixtures for the meeting tests.

Provides:
- InMemoryProximityIndex: dict-backed test double for MeetingRepository
- ``index`` and ``service`` fixtures wired with an in-process bucket lock
- ``make_meeting`` factory for stored meetings
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import pytest

from src.geomeet.meetings.errors import MeetingNotFoundError
from src.geomeet.meetings.geo import haversine_m
from src.geomeet.meetings.locks import LocalBucketLock
from src.geomeet.meetings.schemas import GeoPoint, Meeting
from src.geomeet.meetings.service import MeetingLifecycleManager


# ── In-Memory Test Double ────────────────────────────────────────────────────


class InMemoryProximityIndex:
    """In-memory test double for MeetingRepository.

    Mirrors the ProximityIndex interface using a dict for storage. Every
    query and write yields to the event loop once, so concurrent callers
    interleave the way they would against a real database.
    """

    def __init__(self) -> None:
        self.meetings: dict[str, Meeting] = {}
        self.save_calls = 0

    @staticmethod
    def _within(m: Meeting, lon: float, lat: float, radius_meters: float) -> bool:
        return haversine_m(m.location, GeoPoint(longitude=lon, latitude=lat)) <= radius_meters

    @staticmethod
    def _in_window(m: Meeting, start: datetime, end: datetime) -> bool:
        return m.scheduled_at is not None and start <= m.scheduled_at < end

    @staticmethod
    def _in_bounds(
        m: Meeting,
        upper_left_lon: float,
        lower_right_lat: float,
        lower_right_lon: float,
        upper_left_lat: float,
    ) -> bool:
        return (
            upper_left_lon <= m.location.longitude <= lower_right_lon
            and lower_right_lat <= m.location.latitude <= upper_left_lat
        )

    async def query_radius(self, lon: float, lat: float, radius_meters: float) -> list[Meeting]:
        await asyncio.sleep(0)
        return [m for m in self.meetings.values() if self._within(m, lon, lat, radius_meters)]

    async def query_radius_in_window(
        self,
        lon: float,
        lat: float,
        radius_meters: float,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Meeting]:
        await asyncio.sleep(0)
        return [
            m
            for m in self.meetings.values()
            if self._within(m, lon, lat, radius_meters)
            and self._in_window(m, window_start, window_end)
        ]

    async def query_bounds(
        self,
        upper_left_lon: float,
        lower_right_lat: float,
        lower_right_lon: float,
        upper_left_lat: float,
    ) -> list[Meeting]:
        corners = (upper_left_lon, lower_right_lat, lower_right_lon, upper_left_lat)
        return [m for m in self.meetings.values() if self._in_bounds(m, *corners)]

    async def query_bounds_in_window(
        self,
        upper_left_lon: float,
        lower_right_lat: float,
        lower_right_lon: float,
        upper_left_lat: float,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Meeting]:
        corners = (upper_left_lon, lower_right_lat, lower_right_lon, upper_left_lat)
        return [
            m
            for m in self.meetings.values()
            if self._in_bounds(m, *corners) and self._in_window(m, window_start, window_end)
        ]

    async def query_by_participant(self, user_id: str) -> list[Meeting]:
        return [m for m in self.meetings.values() if m.is_participant(user_id)]

    async def save(self, meeting: Meeting) -> Meeting:
        await asyncio.sleep(0)
        self.save_calls += 1
        now = datetime.now(timezone.utc)
        existing = None
        if meeting.id is not None:
            existing = self.meetings.get(meeting.id)
            if existing is None:
                raise MeetingNotFoundError(meeting.id)
        stored = meeting.model_copy(
            update={
                "id": meeting.id if existing else str(uuid.uuid4()),
                "created_at": existing.created_at if existing else now,
                "updated_at": now if existing else None,
            }
        )
        self.meetings[stored.id] = stored
        return stored

    async def find_by_id(self, meeting_id: str) -> Meeting | None:
        return self.meetings.get(meeting_id)

    async def delete_by_id(self, meeting_id: str) -> None:
        self.meetings.pop(meeting_id, None)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def index() -> InMemoryProximityIndex:
    return InMemoryProximityIndex()


@pytest.fixture
def service(index: InMemoryProximityIndex) -> MeetingLifecycleManager:
    return MeetingLifecycleManager(index=index, lock=LocalBucketLock(timeout_seconds=2.0))


@pytest.fixture
def make_meeting(index: InMemoryProximityIndex) -> Callable[..., Meeting]:
    """Store a meeting directly in the index, bypassing conflict checks."""

    def _make(
        lon: float = 37.62,
        lat: float = 55.75,
        scheduled_at: datetime | None = None,
        owner_id: str = "owner-1",
        followers: list[str] | None = None,
    ) -> Meeting:
        meeting = Meeting(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            followers=followers or [],
            location=GeoPoint(longitude=lon, latitude=lat),
            scheduled_at=scheduled_at,
            created_at=datetime.now(timezone.utc),
        )
        index.meetings[meeting.id] = meeting
        return meeting

    return _make

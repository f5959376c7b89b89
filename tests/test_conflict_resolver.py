"""Unit tests for ConflictResolver over the in-memory index."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.geomeet.meetings.conflicts import ConflictResolver, dedupe_meetings
from src.geomeet.meetings.schemas import ConflictQuery, GeoPoint, Meeting

JUNE_1 = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
JUNE_2 = datetime(2024, 6, 2, 9, 0, tzinfo=timezone.utc)


def _query(at: datetime | None = None, radius: float = 1000.0, tz: int | None = None):
    return ConflictQuery(
        center=GeoPoint(longitude=37.62, latitude=55.75),
        at=at,
        radius_meters=radius,
        timezone_offset_minutes=tz,
    )


@pytest.mark.asyncio
async def test_timed_query_only_matches_same_day(index, make_meeting):
    same_day = make_meeting(scheduled_at=JUNE_1)
    make_meeting(scheduled_at=JUNE_2)
    make_meeting(scheduled_at=None)

    found = await ConflictResolver(index).find_conflicts(_query(at=JUNE_1))

    assert [m.id for m in found] == [same_day.id]


@pytest.mark.asyncio
async def test_untimed_query_ignores_scheduled_at(index, make_meeting):
    stored = [
        make_meeting(scheduled_at=JUNE_1),
        make_meeting(scheduled_at=JUNE_2),
        make_meeting(scheduled_at=None),
    ]

    found = await ConflictResolver(index).find_conflicts(_query(at=None))

    assert {m.id for m in found} == {m.id for m in stored}


@pytest.mark.asyncio
async def test_radius_excludes_distant_meetings(index, make_meeting):
    near = make_meeting(lon=37.6205, lat=55.7502, scheduled_at=JUNE_1)
    make_meeting(lon=37.70, lat=55.75, scheduled_at=JUNE_1)

    found = await ConflictResolver(index).find_conflicts(_query(at=JUNE_1))

    assert [m.id for m in found] == [near.id]


@pytest.mark.asyncio
async def test_offset_moves_the_day_boundary(index, make_meeting):
    # A -120 minute shift ends the window at 22:00 UTC
    late = make_meeting(scheduled_at=datetime(2024, 6, 1, 22, 30, tzinfo=timezone.utc))
    resolver = ConflictResolver(index)

    utc_day = await resolver.find_conflicts(_query(at=JUNE_1))
    shifted = await resolver.find_conflicts(_query(at=JUNE_1, tz=-120))

    assert [m.id for m in utc_day] == [late.id]
    assert shifted == []


@pytest.mark.asyncio
async def test_results_are_deduplicated(make_meeting):
    stored = make_meeting(scheduled_at=JUNE_1)

    class DuplicatingIndex:
        async def query_radius_in_window(self, *args):
            return [stored, stored]

    found = await ConflictResolver(DuplicatingIndex()).find_conflicts(_query(at=JUNE_1))

    assert found == [stored]


def test_dedupe_keeps_first_occurrence():
    a = Meeting(id="a", owner_id="u", location=GeoPoint(longitude=0, latitude=0))
    b = Meeting(id="b", owner_id="u", location=GeoPoint(longitude=1, latitude=1))
    assert [m.id for m in dedupe_meetings([a, b, a])] == ["a", "b"]

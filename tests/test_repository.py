"""Unit tests for MeetingRepository against a mocked AsyncSession.

Checks model conversion, the exact-distance filter applied after the SQL
bounding-box prefilter, and id handling. The WHERE clauses each query
sends are compiled for PostgreSQL and checked operator by operator.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.geomeet.meetings.errors import MeetingNotFoundError
from src.geomeet.meetings.models import MeetingModel
from src.geomeet.meetings.repository import MeetingRepository
from src.geomeet.meetings.schemas import GeoPoint, Meeting

CREATED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _model(lon: float, lat: float, **overrides) -> MeetingModel:
    defaults = {
        "id": uuid.uuid4(),
        "owner_id": "owner-1",
        "followers_data": ["f-1"],
        "longitude": lon,
        "latitude": lat,
        "scheduled_at": None,
        "created_at": CREATED,
        "updated_at": None,
    }
    defaults.update(overrides)
    return MeetingModel(**defaults)


def _repo_with(session: MagicMock) -> MeetingRepository:
    async def session_factory():
        yield session

    return MeetingRepository(session_factory=session_factory)


def _session_returning(models: list[MeetingModel]) -> MagicMock:
    session = MagicMock()
    result = MagicMock()
    result.scalars.return_value.all.return_value = models
    session.execute = AsyncMock(return_value=result)
    return session


@pytest.mark.asyncio
async def test_radius_query_drops_rows_outside_the_circle():
    near = _model(37.6205, 55.7502)
    # Inside a 1 km box corner but about 1.3 km from the center
    corner = _model(37.634, 55.758)
    repo = _repo_with(_session_returning([near, corner]))

    found = await repo.query_radius(37.62, 55.75, 1000.0)

    assert [m.id for m in found] == [str(near.id)]


@pytest.mark.asyncio
async def test_model_conversion():
    model = _model(37.62, 55.75, scheduled_at=datetime(2024, 6, 1, 9, tzinfo=timezone.utc))
    repo = _repo_with(_session_returning([model]))

    [meeting] = await repo.query_bounds(37.0, 55.0, 38.0, 56.0)

    assert meeting.id == str(model.id)
    assert meeting.owner_id == "owner-1"
    assert meeting.followers == ["f-1"]
    assert meeting.location == GeoPoint(longitude=37.62, latitude=55.75)
    assert meeting.updated_at == CREATED


@pytest.mark.asyncio
async def test_find_by_invalid_id_does_not_query():
    session = MagicMock()
    session.get = AsyncMock()
    repo = _repo_with(session)

    assert await repo.find_by_id("not-a-uuid") is None
    session.get.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_unknown_id_is_ignored():
    session = MagicMock()
    session.execute = AsyncMock()
    repo = _repo_with(session)

    await repo.delete_by_id("not-a-uuid")

    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_new_meeting_adds_and_commits():
    new_id = uuid.uuid4()
    session = MagicMock()
    session.get = AsyncMock(return_value=None)
    session.commit = AsyncMock()

    def _refresh(model):
        model.id = new_id
        model.created_at = CREATED

    session.refresh = AsyncMock(side_effect=_refresh)
    repo = _repo_with(session)

    saved = await repo.save(
        Meeting(owner_id="owner-1", location=GeoPoint(longitude=37.62, latitude=55.75))
    )

    assert saved.id == str(new_id)
    session.add.assert_called_once()
    session.get.assert_not_awaited()
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_existing_meeting_overwrites_fields():
    existing = _model(37.62, 55.75, followers_data=[])
    session = MagicMock()
    session.get = AsyncMock(return_value=existing)
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    repo = _repo_with(session)

    saved = await repo.save(
        Meeting(
            id=str(existing.id),
            owner_id="owner-1",
            followers=["f-2"],
            location=GeoPoint(longitude=30.31, latitude=59.94),
        )
    )

    assert saved.id == str(existing.id)
    assert existing.longitude == 30.31
    assert existing.followers_data == ["f-2"]
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_save_vanished_meeting_is_not_found():
    session = MagicMock()
    session.get = AsyncMock(return_value=None)
    session.commit = AsyncMock()
    repo = _repo_with(session)
    gone_id = str(uuid.uuid4())

    with pytest.raises(MeetingNotFoundError):
        await repo.save(
            Meeting(
                id=gone_id,
                owner_id="owner-1",
                location=GeoPoint(longitude=37.62, latitude=55.75),
            )
        )

    session.add.assert_not_called()
    session.commit.assert_not_awaited()


# ── Generated SQL ────────────────────────────────────────────────────────────


def _compiled_where(session: MagicMock) -> tuple[str, dict]:
    statement = session.execute.call_args.args[0]
    compiled = statement.compile(dialect=postgresql.dialect())
    return str(compiled), compiled.params


def _between(sql: str, params: dict, column: str) -> tuple:
    match = re.search(rf"meetings\.{column} BETWEEN %\((\w+)\)s AND %\((\w+)\)s", sql)
    assert match, sql
    return params[match.group(1)], params[match.group(2)]


@pytest.mark.asyncio
async def test_bounds_query_is_inclusive_between_on_both_axes():
    session = _session_returning([])
    repo = _repo_with(session)

    await repo.query_bounds(37.0, 55.0, 38.0, 56.0)

    sql, params = _compiled_where(session)
    assert _between(sql, params, "longitude") == (37.0, 38.0)
    assert _between(sql, params, "latitude") == (55.0, 56.0)


@pytest.mark.asyncio
async def test_window_query_is_half_open_on_scheduled_at():
    start = datetime(2024, 6, 1, tzinfo=timezone.utc)
    end = datetime(2024, 6, 2, tzinfo=timezone.utc)
    session = _session_returning([])
    repo = _repo_with(session)

    await repo.query_bounds_in_window(37.0, 55.0, 38.0, 56.0, start, end)

    sql, params = _compiled_where(session)
    lower = re.search(r"meetings\.scheduled_at >= %\((\w+)\)s", sql)
    upper = re.search(r"meetings\.scheduled_at < %\((\w+)\)s", sql)
    assert lower and upper, sql
    assert params[lower.group(1)] == start
    assert params[upper.group(1)] == end
    assert "scheduled_at <=" not in sql
    assert _between(sql, params, "longitude") == (37.0, 38.0)


@pytest.mark.asyncio
async def test_radius_query_prefilters_by_box():
    session = _session_returning([])
    repo = _repo_with(session)

    await repo.query_radius(37.62, 55.75, 1000.0)

    sql, params = _compiled_where(session)
    min_lat, max_lat = _between(sql, params, "latitude")
    min_lon, max_lon = _between(sql, params, "longitude")
    assert min_lat < 55.75 < max_lat
    assert min_lon < 37.62 < max_lon
    # 1 km is about 0.009 degrees of latitude
    assert max_lat - min_lat < 0.02


@pytest.mark.asyncio
async def test_participant_query_matches_owner_or_follower_containment():
    session = _session_returning([])
    repo = _repo_with(session)

    await repo.query_by_participant("user-1")

    sql, params = _compiled_where(session)
    owner = re.search(r"meetings\.owner_id = %\((\w+)\)s", sql)
    follower = re.search(r"meetings\.followers_data @> %\((\w+)\)s", sql)
    assert owner and follower, sql
    assert " OR " in sql
    assert params[owner.group(1)] == "user-1"
    assert params[follower.group(1)] == ["user-1"]

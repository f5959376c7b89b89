"""Pydantic v2 schemas for the in-person meeting domain.

Defines the data contracts shared by the time window calculator, the
conflict resolver, the proximity index and the lifecycle manager:
GeoPoint, TimeWindow, Bounds, Meeting, ConflictQuery, and the tagged
Created | Rejected outcome of a create call.

Points accept both the object form ``{"longitude": .., "latitude": ..}``
and the compact ``[lon, lat]`` array form used by map clients.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Geometry ─────────────────────────────────────────────────────────────────


class GeoPoint(BaseModel):
    """A WGS84 (longitude, latitude) pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    longitude: float = Field(ge=-180.0, le=180.0)
    latitude: float = Field(ge=-90.0, le=90.0)

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("point must be a [longitude, latitude] pair")
            return {"longitude": data[0], "latitude": data[1]}
        return data

    def as_pair(self) -> list[float]:
        return [self.longitude, self.latitude]


class Bounds(BaseModel):
    """Rectangular map viewport given by its upper-left and lower-right corners.

    The upper-left corner must be north-west of (or equal to) the
    lower-right corner. Viewports crossing the antimeridian are not
    representable and are rejected.
    """

    model_config = ConfigDict(frozen=True)

    upper_left: GeoPoint
    lower_right: GeoPoint

    @model_validator(mode="before")
    @classmethod
    def _from_pairs(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("bounds must be [[lon, lat], [lon, lat]]")
            return {"upper_left": data[0], "lower_right": data[1]}
        return data

    @model_validator(mode="after")
    def _check_orientation(self) -> Bounds:
        if self.upper_left.latitude < self.lower_right.latitude:
            raise ValueError("upper-left corner is south of the lower-right corner")
        if self.upper_left.longitude > self.lower_right.longitude:
            raise ValueError("upper-left corner is east of the lower-right corner")
        return self

    def contains(self, point: GeoPoint) -> bool:
        """Inclusive containment test on all four edges."""
        return (
            self.upper_left.longitude <= point.longitude <= self.lower_right.longitude
            and self.lower_right.latitude <= point.latitude <= self.upper_left.latitude
        )


# ── Time ─────────────────────────────────────────────────────────────────────


class TimeWindow(BaseModel):
    """Half-open instant interval [start, end)."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_order(self) -> TimeWindow:
        if not self.start < self.end:
            raise ValueError("time window start must be before its end")
        return self

    def contains(self, instant: datetime) -> bool:
        return self.start <= ensure_utc(instant) < self.end


# ── Meeting ──────────────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """An in-person meeting at a point, optionally pinned to an instant.

    ``id`` is assigned by the store on first save. ``owner_id`` never
    changes after creation and ``followers`` only change through the
    follower operations of the lifecycle manager.
    """

    id: str | None = None
    owner_id: str
    followers: list[str] = Field(default_factory=list)
    location: GeoPoint
    scheduled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("followers")
    @classmethod
    def _dedupe_followers(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @field_validator("scheduled_at")
    @classmethod
    def _normalize_scheduled_at(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def is_participant(self, user_id: str) -> bool:
        return user_id == self.owner_id or user_id in self.followers


class MeetingCreate(BaseModel):
    """Request schema for proposing a new meeting."""

    location: GeoPoint
    scheduled_at: datetime | None = None
    followers: list[str] = Field(default_factory=list)
    timezone_offset_minutes: int | None = Field(None, ge=-1440, le=1440)


class MeetingUpdate(BaseModel):
    """Request schema for moving a meeting. Only place and time can change."""

    location: GeoPoint
    scheduled_at: datetime | None = None
    timezone_offset_minutes: int | None = Field(None, ge=-1440, le=1440)


class ConflictQuery(BaseModel):
    """Transient query: meetings near ``center`` on the local day of ``at``."""

    model_config = ConfigDict(frozen=True)

    center: GeoPoint
    at: datetime | None = None
    radius_meters: float = Field(gt=0)
    timezone_offset_minutes: int | None = Field(None, ge=-1440, le=1440)


# ── Outcomes ─────────────────────────────────────────────────────────────────


class Created(BaseModel):
    """The candidate was persisted."""

    kind: Literal["created"] = "created"
    meeting: Meeting


class Rejected(BaseModel):
    """The candidate conflicts with existing meetings and was not persisted."""

    kind: Literal["rejected"] = "rejected"
    conflicts: list[Meeting] = Field(default_factory=list)


CreateOutcome = Union[Created, Rejected]


class MeetingPage(BaseModel):
    """One page of a participant's meetings."""

    items: list[Meeting] = Field(default_factory=list)
    page: int
    size: int
    total: int

"""Meeting lifecycle manager -- decides whether a mutation may proceed.

Orchestrates create, update, delete, follower changes and the read-only
lookups on top of the ConflictResolver and the ProximityIndex.

create and update run their conflict check and their write while holding
the bucket locks of the candidate's location (see locks.py), so two
requests for the same neighborhood cannot both pass the check. Follower
changes and updates additionally lock the meeting itself so neither
overwrites the other's write.

Exports:
    MeetingLifecycleManager: The orchestrator.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from src.geomeet.core.monitoring import meeting_conflicts_found, meeting_mutations_total
from src.geomeet.meetings.conflicts import ConflictResolver, dedupe_meetings
from src.geomeet.meetings.errors import (
    InvalidMeetingInputError,
    MeetingConflictError,
    MeetingNotFoundError,
)
from src.geomeet.meetings.locks import KEY_PREFIX, BucketLock, LocalBucketLock, bucket_keys
from src.geomeet.meetings.repository import ProximityIndex
from src.geomeet.meetings.schemas import (
    Bounds,
    ConflictQuery,
    Created,
    CreateOutcome,
    GeoPoint,
    Meeting,
    MeetingPage,
    Rejected,
    TimeWindow,
)
from src.geomeet.meetings.timewindow import day_window

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _invalid(exc: ValidationError) -> InvalidMeetingInputError:
    reasons = "; ".join(err["msg"] for err in exc.errors())
    return InvalidMeetingInputError(reasons or str(exc))


def _window(at: datetime, timezone_offset_minutes: int | None) -> TimeWindow:
    if timezone_offset_minutes is not None and abs(timezone_offset_minutes) > 1440:
        raise InvalidMeetingInputError(
            f"timezone offset out of range: {timezone_offset_minutes} minutes"
        )
    return day_window(at, timezone_offset_minutes)


def _meeting_key(meeting_id: str) -> str:
    return f"{KEY_PREFIX}meeting:{meeting_id}"


def _participant_key(user_id: str) -> str:
    return f"{KEY_PREFIX}participant:{user_id}"


class MeetingLifecycleManager:
    """Create, move, delete and query in-person meetings.

    Args:
        index: ProximityIndex holding the meetings.
        lock: BucketLock used around check-and-write sections. Defaults to
            an in-process LocalBucketLock.
        conflict_radius_meters: Same-day meetings closer than this conflict.
        near_radius_meters: Default radius for find_near.
        lock_grid_degrees: Cell size of the bucket grid.
        default_page_size: Page size for list_mine when none is given.
        max_page_size: Largest page size list_mine accepts.
    """

    def __init__(
        self,
        index: ProximityIndex,
        lock: BucketLock | None = None,
        conflict_radius_meters: float = 1000.0,
        near_radius_meters: float = 5000.0,
        lock_grid_degrees: float = 0.02,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ) -> None:
        self._index = index
        self._resolver = ConflictResolver(index)
        self._lock = lock or LocalBucketLock()
        self._conflict_radius = conflict_radius_meters
        self._near_radius = near_radius_meters
        self._grid = lock_grid_degrees
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    # ── Helpers ──────────────────────────────────────────────────────────

    def _conflict_query(
        self,
        center: Any,
        at: datetime | None,
        radius_meters: float,
        timezone_offset_minutes: int | None,
    ) -> ConflictQuery:
        try:
            return ConflictQuery(
                center=center,
                at=at,
                radius_meters=radius_meters,
                timezone_offset_minutes=timezone_offset_minutes,
            )
        except ValidationError as exc:
            raise _invalid(exc) from exc

    async def _conflicts_for(
        self, candidate: Meeting, timezone_offset_minutes: int | None
    ) -> list[Meeting]:
        query = self._conflict_query(
            candidate.location,
            candidate.scheduled_at,
            self._conflict_radius,
            timezone_offset_minutes,
        )
        return await self._resolver.find_conflicts(query)

    def _location_keys(self, location: GeoPoint) -> list[str]:
        return bucket_keys(location, self._conflict_radius, self._grid)

    # ── Mutations ────────────────────────────────────────────────────────

    async def create(
        self, candidate: Meeting, timezone_offset_minutes: int | None = None
    ) -> CreateOutcome:
        """Persist ``candidate`` unless a meeting nearby shares its local day.

        Args:
            candidate: Proposed meeting; any id it carries is replaced.
            timezone_offset_minutes: Caller's offset for the day window.

        Returns:
            Created with the stored meeting, or Rejected with the conflicts.
        """
        async with self._lock.hold(self._location_keys(candidate.location)):
            conflicts = await self._conflicts_for(candidate, timezone_offset_minutes)
            if conflicts:
                meeting_mutations_total.labels(operation="create", outcome="rejected").inc()
                meeting_conflicts_found.observe(len(conflicts))
                logger.info(
                    "meeting.rejected",
                    owner_id=candidate.owner_id,
                    conflicts=[m.id for m in conflicts],
                )
                return Rejected(conflicts=conflicts)

            fresh = candidate.model_copy(
                update={"id": None, "created_at": None, "updated_at": None}
            )
            saved = await self._index.save(fresh)

        meeting_mutations_total.labels(operation="create", outcome="created").inc()
        logger.info("meeting.created", meeting_id=saved.id, owner_id=saved.owner_id)
        return Created(meeting=saved)

    async def update(
        self, candidate: Meeting, timezone_offset_minutes: int | None = None
    ) -> Meeting:
        """Move an existing meeting to a new place and/or time.

        Owner and followers always come from the stored record; only
        location and scheduled time are taken from ``candidate``.

        Raises:
            InvalidMeetingInputError: ``candidate.id`` is None.
            MeetingNotFoundError: No meeting has ``candidate.id``, or it was
                deleted before the write.
            MeetingConflictError: Another meeting blocks the new place/time.
        """
        if candidate.id is None:
            raise InvalidMeetingInputError("update needs the id of an existing meeting")

        keys = [*self._location_keys(candidate.location), _meeting_key(candidate.id)]
        async with self._lock.hold(keys):
            existing = await self._index.find_by_id(candidate.id)
            if existing is None:
                raise MeetingNotFoundError(candidate.id)

            conflicts = [
                m
                for m in await self._conflicts_for(candidate, timezone_offset_minutes)
                if m.id != candidate.id
            ]
            if conflicts:
                meeting_mutations_total.labels(operation="update", outcome="rejected").inc()
                meeting_conflicts_found.observe(len(conflicts))
                logger.info(
                    "meeting.update_rejected",
                    meeting_id=candidate.id,
                    conflicts=[m.id for m in conflicts],
                )
                raise MeetingConflictError(
                    "Another meeting is already planned near this place on this day",
                    conflicts,
                )

            updated = existing.model_copy(
                update={
                    "location": candidate.location,
                    "scheduled_at": candidate.scheduled_at,
                }
            )
            saved = await self._index.save(updated)

        meeting_mutations_total.labels(operation="update", outcome="updated").inc()
        logger.info("meeting.updated", meeting_id=saved.id)
        return saved

    async def delete(self, meeting_id: str) -> bool:
        """Delete a meeting. Deleting an unknown id is not an error.

        Holds the meeting's own lock so an update or follower change that
        already read the meeting finishes before the row goes away.
        """
        async with self._lock.hold([_meeting_key(meeting_id)]):
            await self._index.delete_by_id(meeting_id)
        meeting_mutations_total.labels(operation="delete", outcome="deleted").inc()
        logger.info("meeting.deleted", meeting_id=meeting_id)
        return True

    async def add_follower(
        self,
        meeting_id: str,
        user_id: str,
        timezone_offset_minutes: int | None = None,
    ) -> Meeting:
        """Join ``user_id`` to a meeting.

        The user may not already take part in another meeting scheduled
        within this meeting's local day. Joining a meeting the user
        already owns or follows changes nothing.

        Raises:
            MeetingNotFoundError: The meeting does not exist.
            MeetingConflictError: The user is busy that day.
        """
        async with self._lock.hold([_meeting_key(meeting_id), _participant_key(user_id)]):
            meeting = await self.get_by_id(meeting_id)
            if meeting.is_participant(user_id):
                return meeting

            if meeting.scheduled_at is not None:
                window = _window(meeting.scheduled_at, timezone_offset_minutes)
                busy = [
                    m
                    for m in dedupe_meetings(await self._index.query_by_participant(user_id))
                    if m.id != meeting.id
                    and m.scheduled_at is not None
                    and window.contains(m.scheduled_at)
                ]
                if busy:
                    logger.info(
                        "meeting.join_rejected",
                        meeting_id=meeting_id,
                        user_id=user_id,
                        conflicts=[m.id for m in busy],
                    )
                    raise MeetingConflictError(
                        "User already takes part in another meeting on this day",
                        busy,
                    )

            joined = meeting.model_copy(
                update={"followers": [*meeting.followers, user_id]}
            )
            saved = await self._index.save(joined)

        logger.info("meeting.follower_added", meeting_id=meeting_id, user_id=user_id)
        return saved

    async def remove_follower(self, meeting_id: str, user_id: str) -> Meeting:
        """Remove ``user_id`` from a meeting's followers.

        Raises:
            MeetingNotFoundError: The meeting does not exist.
            InvalidMeetingInputError: ``user_id`` is the owner.
        """
        async with self._lock.hold([_meeting_key(meeting_id), _participant_key(user_id)]):
            meeting = await self.get_by_id(meeting_id)
            if user_id == meeting.owner_id:
                raise InvalidMeetingInputError("The owner cannot leave their own meeting")
            if user_id not in meeting.followers:
                return meeting

            left = meeting.model_copy(
                update={"followers": [f for f in meeting.followers if f != user_id]}
            )
            saved = await self._index.save(left)

        logger.info("meeting.follower_removed", meeting_id=meeting_id, user_id=user_id)
        return saved

    # ── Queries ──────────────────────────────────────────────────────────

    async def get_by_id(self, meeting_id: str) -> Meeting:
        """Raises MeetingNotFoundError if absent."""
        meeting = await self._index.find_by_id(meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)
        return meeting

    async def list_mine(
        self, user_id: str, page: int = 0, size: int | None = None
    ) -> MeetingPage:
        """Page through the meetings ``user_id`` owns or follows.

        Owned meetings come first, then followed ones; each group is
        ordered by scheduled time with untimed meetings last.
        """
        size = self._default_page_size if size is None else size
        if page < 0:
            raise InvalidMeetingInputError(f"page must not be negative: {page}")
        if not 1 <= size <= self._max_page_size:
            raise InvalidMeetingInputError(
                f"size must be between 1 and {self._max_page_size}: {size}"
            )

        meetings = [
            m
            for m in dedupe_meetings(await self._index.query_by_participant(user_id))
            if m.is_participant(user_id)
        ]
        meetings.sort(
            key=lambda m: (
                m.owner_id != user_id,
                m.scheduled_at is None,
                m.scheduled_at or _EPOCH,
                m.id or "",
            )
        )
        start = page * size
        return MeetingPage(
            items=meetings[start : start + size],
            page=page,
            size=size,
            total=len(meetings),
        )

    async def find_near(
        self,
        point: GeoPoint | Sequence[float],
        at: datetime | None = None,
        radius_meters: float | None = None,
        timezone_offset_minutes: int | None = None,
    ) -> list[Meeting]:
        """Meetings around a point for map display; no conflict semantics."""
        query = self._conflict_query(
            point,
            at,
            self._near_radius if radius_meters is None else radius_meters,
            timezone_offset_minutes,
        )
        return await self._resolver.find_conflicts(query)

    async def find_within_bounds(
        self,
        bounds: Bounds | Sequence[Sequence[float]],
        at: datetime | None = None,
        timezone_offset_minutes: int | None = None,
    ) -> list[Meeting]:
        """Meetings inside a map viewport, optionally on one local day.

        Raises:
            InvalidMeetingInputError: Malformed bounds or offset.
        """
        try:
            box = bounds if isinstance(bounds, Bounds) else Bounds.model_validate(bounds)
        except ValidationError as exc:
            raise _invalid(exc) from exc

        corners = (
            box.upper_left.longitude,
            box.lower_right.latitude,
            box.lower_right.longitude,
            box.upper_left.latitude,
        )
        if at is None:
            found = await self._index.query_bounds(*corners)
        else:
            window = _window(at, timezone_offset_minutes)
            found = await self._index.query_bounds_in_window(
                *corners, window.start, window.end
            )
        return dedupe_meetings(found)

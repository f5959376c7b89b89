"""Conflict resolution: which stored meetings clash with a candidate.

The resolver turns a ConflictQuery into one ProximityIndex call. Timed
queries are narrowed to the local calendar day of ``query.at``; untimed
queries are purely spatial. The index only ever receives absolute
instants.

Self-exclusion is left to the caller: a meeting being moved shows up in
its own conflict set.
"""

from __future__ import annotations

import structlog

from src.geomeet.meetings.repository import ProximityIndex
from src.geomeet.meetings.schemas import ConflictQuery, Meeting
from src.geomeet.meetings.timewindow import day_window

logger = structlog.get_logger(__name__)


def dedupe_meetings(meetings: list[Meeting]) -> list[Meeting]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: set[str | None] = set()
    unique: list[Meeting] = []
    for meeting in meetings:
        if meeting.id in seen:
            continue
        seen.add(meeting.id)
        unique.append(meeting)
    return unique


class ConflictResolver:
    """Finds the meetings that conflict with a candidate place and time.

    Args:
        index: ProximityIndex to query.
    """

    def __init__(self, index: ProximityIndex) -> None:
        self._index = index

    async def find_conflicts(self, query: ConflictQuery) -> list[Meeting]:
        """Return every stored meeting matching the query, without duplicates.

        Args:
            query: Center, optional instant, radius and timezone offset.

        Returns:
            Matching meetings in unspecified order.
        """
        center = query.center
        if query.at is None:
            found = await self._index.query_radius(
                center.longitude, center.latitude, query.radius_meters
            )
        else:
            window = day_window(query.at, query.timezone_offset_minutes)
            found = await self._index.query_radius_in_window(
                center.longitude,
                center.latitude,
                query.radius_meters,
                window.start,
                window.end,
            )

        conflicts = dedupe_meetings(found)
        logger.debug(
            "conflict_resolver.queried",
            longitude=center.longitude,
            latitude=center.latitude,
            at=query.at.isoformat() if query.at else None,
            radius_meters=query.radius_meters,
            conflicts=len(conflicts),
        )
        return conflicts

"""Local calendar day windows.

The store only ever sees absolute instants; everything timezone-related
lives here so it can be tested on its own.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.geomeet.meetings.schemas import TimeWindow, ensure_utc

DAY = timedelta(seconds=86400)


def day_window(
    instant: datetime, timezone_offset_minutes: int | None = None
) -> TimeWindow:
    """Return the one-day window that holds the calendar day of ``instant``.

    The day is taken in UTC and then shifted by ``timezone_offset_minutes``
    (default 0) to line up with the caller's local calendar day. Offsets are
    applied verbatim, so half-hour and 45-minute zones keep their minutes.

    Args:
        instant: Any datetime; naive values are read as UTC.
        timezone_offset_minutes: Shift applied to both window bounds.

    Returns:
        TimeWindow spanning exactly 86,400 seconds.
    """
    utc = ensure_utc(instant)
    day_start = datetime(utc.year, utc.month, utc.day, tzinfo=timezone.utc)
    start = day_start + timedelta(minutes=timezone_offset_minutes or 0)
    return TimeWindow(start=start, end=start + DAY)

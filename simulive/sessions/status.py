"""
Clock-derived session status.

A session's lifecycle is a function of wall-clock time, its scheduled start
and the length of its video. Nothing runs in the background to advance it;
every reader calls ``derive_status`` and the persisted value is only a cache.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from simulive.core.time import ensure_utc


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"


_RANK = {
    SessionStatus.SCHEDULED: 0,
    SessionStatus.LIVE: 1,
    SessionStatus.ENDED: 2,
}


def status_rank(status: SessionStatus) -> int:
    """Position in the scheduled -> live -> ended progression."""
    return _RANK[SessionStatus(status)]


def virtual_end(scheduled_start: datetime, video_duration_seconds: Optional[float]) -> Optional[datetime]:
    """End boundary of the broadcast, or None when the video length is unknown."""
    if not video_duration_seconds or video_duration_seconds <= 0:
        return None
    return ensure_utc(scheduled_start) + timedelta(seconds=video_duration_seconds)


def derive_status(
    now: datetime,
    scheduled_start: datetime,
    video_duration_seconds: Optional[float],
) -> SessionStatus:
    """
    Map (now, scheduled start, video duration) to the authoritative status.

    - now < start                      -> scheduled
    - start <= now < start + duration  -> live
    - now >= start + duration          -> ended (only when duration > 0)

    A zero/unknown duration never ends on its own.
    """
    now = ensure_utc(now)
    start = ensure_utc(scheduled_start)

    if now < start:
        return SessionStatus.SCHEDULED

    end = virtual_end(start, video_duration_seconds)
    if end is None or now < end:
        return SessionStatus.LIVE
    return SessionStatus.ENDED


def elapsed_seconds(now: datetime, scheduled_start: datetime) -> float:
    """Target playback offset for a viewer joining at ``now``."""
    return (ensure_utc(now) - ensure_utc(scheduled_start)).total_seconds()

"""
Viewer-side playback synchronizer.

A small state machine polled once per second:

    countdown -> live -> ended -> replay

Countdown and live follow the clock-derived session status. While live the
player is locked (not seekable) and steered to ``now - scheduled_start``;
it is only re-seeked when it drifts further than the tolerance, so normal
buffering hiccups do not cause constant jumps. Every live tick reports the
playback offset to the trigger endpoint, never moving backwards.

Ended is entered when the clock says so, when the video finishes, or when an
admin ends the session early. Replay is only reachable from ended and is
plain, seekable playback from the beginning with no triggers.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from simulive.client.player import Player
from simulive.core.config import settings
from simulive.core.logging import get_logger
from simulive.core.time import ensure_utc, utcnow
from simulive.sessions.status import SessionStatus, derive_status, elapsed_seconds

logger = get_logger(__name__)

TriggerCallback = Callable[[int], Awaitable[Any]]
PhaseCallback = Callable[["ViewerPhase", "ViewerPhase"], Any]


class ViewerPhase(str, Enum):
    COUNTDOWN = "countdown"
    LIVE = "live"
    ENDED = "ended"
    REPLAY = "replay"


class PlaybackSynchronizer:
    def __init__(
        self,
        scheduled_start: datetime,
        video_duration: Optional[float],
        player: Player,
        trigger: Optional[TriggerCallback] = None,
        drift_tolerance: float = settings.sync_drift_tolerance_seconds,
        on_phase_change: Optional[PhaseCallback] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.scheduled_start = ensure_utc(scheduled_start)
        self.video_duration = video_duration or 0
        self.player = player
        self.trigger = trigger
        self.drift_tolerance = drift_tolerance
        self.on_phase_change = on_phase_change
        self.clock = clock

        self.phase = ViewerPhase.COUNTDOWN
        self.remaining_seconds: int = 0
        self.last_trigger_offset: int = -1

    # ---- transitions ----

    def _set_phase(self, phase: ViewerPhase) -> None:
        if phase is self.phase:
            return
        previous, self.phase = self.phase, phase
        logger.info("viewer.phase", previous=previous.value, phase=phase.value)
        if self.on_phase_change:
            try:
                self.on_phase_change(previous, phase)
            except Exception as e:
                logger.warning(f"Phase callback failed: {e}")

    def _enter_live(self, now: datetime) -> None:
        self.player.set_seekable(False)
        self.player.seek(max(0.0, elapsed_seconds(now, self.scheduled_start)))
        self.player.play()
        self._set_phase(ViewerPhase.LIVE)

    def _enter_ended(self) -> None:
        self.player.pause()
        self._set_phase(ViewerPhase.ENDED)

    def end_early(self) -> None:
        """Admin ended the session before the video ran out"""
        if self.phase in (ViewerPhase.ENDED, ViewerPhase.REPLAY):
            return
        self._enter_ended()

    def watch_replay(self) -> None:
        if self.phase is not ViewerPhase.ENDED:
            raise RuntimeError("Replay is only available after the session has ended")
        self.player.set_seekable(True)
        self.player.seek(0)
        self.player.play()
        self._set_phase(ViewerPhase.REPLAY)

    def reschedule(self, scheduled_start: datetime) -> None:
        """A new start time resets a not-yet-ended viewer to countdown"""
        self.scheduled_start = ensure_utc(scheduled_start)
        if self.phase is ViewerPhase.LIVE:
            self.player.pause()
            self._set_phase(ViewerPhase.COUNTDOWN)
        self.last_trigger_offset = -1

    def apply_session_update(self, payload: Dict[str, Any]) -> None:
        """React to a ``session-updated`` event for this session"""
        status = payload.get("status")
        if status == SessionStatus.ENDED.value:
            self.end_early()
            return
        start = payload.get("scheduled_start")
        if start and self.phase in (ViewerPhase.COUNTDOWN, ViewerPhase.LIVE):
            new_start = ensure_utc(datetime.fromisoformat(start))
            if new_start != self.scheduled_start:
                self.reschedule(new_start)

    # ---- polling ----

    async def tick(self, now: Optional[datetime] = None) -> ViewerPhase:
        if self.phase in (ViewerPhase.ENDED, ViewerPhase.REPLAY):
            return self.phase

        now = ensure_utc(now or self.clock())
        status = derive_status(now, self.scheduled_start, self.video_duration)

        if status is SessionStatus.SCHEDULED:
            self.remaining_seconds = max(0, math.ceil((self.scheduled_start - now).total_seconds()))
            return self.phase

        if status is SessionStatus.ENDED:
            self._enter_ended()
            return self.phase

        if self.phase is not ViewerPhase.LIVE:
            self._enter_live(now)
        else:
            if self.player.finished:
                self._enter_ended()
                return self.phase
            self._correct_drift(now)

        await self._report_offset()
        return self.phase

    def _correct_drift(self, now: datetime) -> None:
        target = elapsed_seconds(now, self.scheduled_start)
        drift = abs(self.player.current_time() - target)
        if drift > self.drift_tolerance:
            logger.debug("viewer.resync", drift=round(drift, 2), target=round(target, 2))
            self.player.seek(target)

    async def _report_offset(self) -> None:
        offset = max(self.last_trigger_offset, int(self.player.current_time()))
        self.last_trigger_offset = offset
        if self.trigger is None:
            return
        try:
            await self.trigger(offset)
        except Exception as e:
            # Next tick retries with the same or a later offset
            logger.warning(f"Trigger call failed: {e}", offset=offset)

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from simulive.client.player import ClockedPlayer
from simulive.client.synchronizer import PlaybackSynchronizer, ViewerPhase

START = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class WallClock:
    """Drives both the synchronizer's wall clock and the player's position"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return WallClock(START - timedelta(seconds=3))


@pytest.fixture
def offsets():
    return []


@pytest.fixture
def sync(clock, offsets):
    async def trigger(offset: int):
        offsets.append(offset)

    player = ClockedPlayer(duration=60, clock=clock.monotonic)
    return PlaybackSynchronizer(START, 60, player, trigger=trigger, clock=clock)


@pytest.mark.asyncio
async def test_countdown_does_not_touch_player(sync, clock, offsets):
    assert await sync.tick() is ViewerPhase.COUNTDOWN
    assert sync.remaining_seconds == 3
    assert not sync.player.playing
    assert sync.player.seeks == 0
    assert offsets == []


@pytest.mark.asyncio
async def test_live_entry_locks_and_seeks_to_wall_clock(sync, clock, offsets):
    clock.advance(13)  # 10s into the broadcast

    assert await sync.tick() is ViewerPhase.LIVE
    assert sync.player.playing
    assert sync.player.seekable is False
    assert sync.player.current_time() == pytest.approx(10)
    assert offsets == [10]


@pytest.mark.asyncio
async def test_small_drift_is_tolerated_and_large_drift_corrected(sync, clock):
    clock.advance(5)
    await sync.tick()
    seeks_after_entry = sync.player.seeks

    # Buffering hiccup: the player falls 1.5s behind
    sync.player._position -= 1.5
    clock.advance(1)
    await sync.tick()
    assert sync.player.seeks == seeks_after_entry

    # Stalled for 4s: re-seek to the wall clock
    sync.player.pause()
    clock.advance(4)
    sync.player.play()
    await sync.tick()
    assert sync.player.seeks == seeks_after_entry + 1
    assert sync.player.current_time() == pytest.approx(7)


@pytest.mark.asyncio
async def test_reported_offsets_never_decrease(sync, clock, offsets):
    clock.advance(13)
    await sync.tick()
    clock.advance(1)
    await sync.tick()

    # Player jumps back within tolerance; the reported offset holds
    sync.player._position -= 1.8
    await sync.tick()
    clock.advance(1)
    await sync.tick()

    assert offsets == sorted(offsets)
    assert offsets[0] == 10


@pytest.mark.asyncio
async def test_clock_end_pauses_and_replay_is_free(sync, clock, offsets):
    clock.advance(3 + 61)

    assert await sync.tick() is ViewerPhase.ENDED
    assert not sync.player.playing

    reported = list(offsets)
    sync.watch_replay()
    assert sync.phase is ViewerPhase.REPLAY
    assert sync.player.seekable is True
    assert sync.player.current_time() == 0

    clock.advance(5)
    assert await sync.tick() is ViewerPhase.REPLAY
    assert offsets == reported


@pytest.mark.asyncio
async def test_video_finishing_ends_the_session(clock, offsets):
    async def trigger(offset: int):
        offsets.append(offset)

    # Video shorter than the session's advertised duration
    player = ClockedPlayer(duration=10, clock=clock.monotonic)
    sync = PlaybackSynchronizer(START, 60, player, trigger=trigger, clock=clock)
    clock.advance(3)
    await sync.tick()
    clock.advance(11)

    assert await sync.tick() is ViewerPhase.ENDED


@pytest.mark.asyncio
async def test_admin_end_early(sync, clock):
    clock.advance(5)
    await sync.tick()

    sync.apply_session_update({"status": "ended"})

    assert sync.phase is ViewerPhase.ENDED
    assert await sync.tick() is ViewerPhase.ENDED


def test_replay_only_after_end(sync):
    with pytest.raises(RuntimeError):
        sync.watch_replay()


@pytest.mark.asyncio
async def test_reschedule_returns_live_viewer_to_countdown(sync, clock):
    clock.advance(5)
    await sync.tick()

    later = clock.now + timedelta(minutes=10)
    sync.apply_session_update({"status": "scheduled", "scheduled_start": later.isoformat()})

    assert sync.phase is ViewerPhase.COUNTDOWN
    assert await sync.tick() is ViewerPhase.COUNTDOWN
    assert sync.remaining_seconds == 600


@pytest.mark.asyncio
async def test_trigger_failures_are_swallowed(clock):
    calls: List[int] = []

    async def trigger(offset: int):
        calls.append(offset)
        raise RuntimeError("network down")

    sync = PlaybackSynchronizer(START, 60, ClockedPlayer(60, clock=clock.monotonic), trigger=trigger, clock=clock)
    clock.advance(5)

    assert await sync.tick() is ViewerPhase.LIVE
    assert calls == [2]


@pytest.mark.asyncio
async def test_phase_callback(sync, clock):
    seen = []
    sync.on_phase_change = lambda old, new: seen.append((old, new))
    clock.advance(5)
    await sync.tick()
    sync.end_early()

    assert seen == [
        (ViewerPhase.COUNTDOWN, ViewerPhase.LIVE),
        (ViewerPhase.LIVE, ViewerPhase.ENDED),
    ]

"""
Viewer session orchestrator: wires the HTTP client, the realtime connection,
the playback synchronizer, the presence roster and the chat feed together
for one joined session.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from simulive.client.api import SimuliveClient
from simulive.client.chat_feed import ChatFeed
from simulive.client.player import ClockedPlayer, Player
from simulive.client.presence import PresenceAggregator
from simulive.client.realtime import RealtimeConnection
from simulive.client.synchronizer import PlaybackSynchronizer, ViewerPhase
from simulive.core.config import settings
from simulive.core.logging import get_logger
from simulive.realtime.channels import (
    EVENT_HAND_UPDATE,
    EVENT_MESSAGE_DELETED,
    EVENT_NEW_MESSAGE,
    EVENT_SESSION_DELETED,
    EVENT_SESSION_UPDATED,
    presence_channel,
    session_channel,
)
from simulive.sessions.status import SessionStatus

logger = get_logger(__name__)


class ViewerSession:
    def __init__(
        self,
        api: SimuliveClient,
        session_key: str,
        player_factory: Callable[[Optional[float]], Player] = ClockedPlayer,
        realtime: Optional[RealtimeConnection] = None,
        tick_seconds: float = settings.sync_tick_seconds,
    ):
        self.api = api
        self.session_key = session_key
        self.player_factory = player_factory
        self.realtime = realtime or RealtimeConnection(api)
        self.tick_seconds = tick_seconds

        self.session: Dict[str, Any] = {}
        self.feed = ChatFeed()
        self.presence = PresenceAggregator()
        self.sync: Optional[PlaybackSynchronizer] = None
        self.deleted = False
        self._stopped = asyncio.Event()

    @property
    def slug(self) -> str:
        return self.session["slug"]

    async def join(self) -> PlaybackSynchronizer:
        # 1. Session metadata and chat backlog
        self.session = await self.api.get_session(self.session_key)
        self.feed.extend(await self.api.chat_history(self.slug))

        # 2. Synchronizer bound to this session's clock
        video = self.session.get("video") or {}
        duration = video.get("duration") or 0
        self.sync = PlaybackSynchronizer(
            scheduled_start=datetime.fromisoformat(self.session["scheduled_start"]),
            video_duration=duration,
            player=self.player_factory(duration),
            trigger=self._trigger,
        )
        # The clock cannot see a manual end
        if self.session.get("status") == SessionStatus.ENDED.value:
            self.sync.end_early()

        # 3. Realtime channels
        await self.realtime.open()
        await self.realtime.subscribe(session_channel(self.slug), self._on_session_event)
        await self.realtime.subscribe(presence_channel(self.slug), self.presence.handle)
        logger.info("viewer.joined", session=self.slug)
        return self.sync

    async def _trigger(self, offset: int) -> None:
        await self.api.trigger(self.slug, offset)

    def _on_session_event(self, event: str, data: Any) -> None:
        data = data or {}
        if event == EVENT_NEW_MESSAGE:
            self.feed.add(data)
        elif event == EVENT_MESSAGE_DELETED:
            self.feed.remove(data.get("id", ""))
        elif event == EVENT_HAND_UPDATE:
            self.presence.handle(event, data)
        elif event == EVENT_SESSION_UPDATED and self.sync is not None:
            self.session.update(data)
            self.sync.apply_session_update(data)
        elif event == EVENT_SESSION_DELETED:
            self.deleted = True
            if self.sync is not None:
                self.sync.end_early()

    async def send_chat(self, message: str) -> Dict[str, Any]:
        sent = await self.api.send_chat(self.slug, message)
        self.feed.add(sent)
        return sent

    async def raise_hand(self, raised: bool = True) -> None:
        try:
            await self.api.hand_raise(self.slug, raised)
        except Exception as e:
            logger.warning(f"Hand raise failed: {e}")

    async def run(self, max_ticks: Optional[int] = None) -> ViewerPhase:
        """Poll the synchronizer until the session ends or ``leave`` is called"""
        if self.sync is None:
            raise RuntimeError("join() must be called before run()")
        ticks = 0
        while not self._stopped.is_set():
            phase = await self.sync.tick()
            ticks += 1
            if phase is ViewerPhase.ENDED or (max_ticks is not None and ticks >= max_ticks):
                break
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                pass
        return self.sync.phase

    async def leave(self) -> None:
        self._stopped.set()
        if self.session:
            for channel in (session_channel(self.slug), presence_channel(self.slug)):
                try:
                    await self.realtime.unsubscribe(channel)
                except Exception as e:
                    logger.debug(f"Unsubscribe failed: {e}", channel=channel)
        await self.realtime.close()
        logger.info("viewer.left", session=self.session_key)

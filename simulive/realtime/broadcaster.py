"""
Broadcast backends

The core only ever calls ``publish(channel, event, data)``. ``LOCAL`` pushes
straight into this process's hub; ``REDIS`` publishes to a Redis pub/sub
channel and every process's relay fans the event out to its own hub.
"""

import json
from typing import Any, Optional

from simulive.core.config import settings
from simulive.core.errors import UpstreamUnavailableError
from simulive.core.logging import get_logger
from simulive.infra.redis import get_redis_client
from simulive.realtime.manager import ChannelHub, hub
from simulive.realtime.relay import start_broadcast_relay, stop_broadcast_relay

logger = get_logger(__name__)


class Broadcaster:
    """Publishing interface shared by all backends"""

    async def publish(
        self,
        channel: str,
        event: str,
        data: Any,
        exclude_socket: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class LocalBroadcaster(Broadcaster):
    def __init__(self, channel_hub: ChannelHub):
        self.hub = channel_hub

    async def publish(self, channel, event, data, exclude_socket=None) -> None:
        await self.hub.publish(channel, event, data, exclude_socket=exclude_socket)


class RedisBroadcaster(Broadcaster):
    def __init__(self, redis_channel: str = settings.broadcast_redis_channel):
        self.redis_channel = redis_channel

    async def publish(self, channel, event, data, exclude_socket=None) -> None:
        redis = get_redis_client()
        if redis is None:
            raise UpstreamUnavailableError("Redis broadcast backend is not connected")
        message = {
            "channel": channel,
            "event": event,
            "data": data,
            "exclude_socket": exclude_socket,
        }
        await redis.publish(self.redis_channel, json.dumps(message, default=str))

    async def start(self) -> None:
        await start_broadcast_relay(self.redis_channel)

    async def stop(self) -> None:
        await stop_broadcast_relay()


_broadcaster: Optional[Broadcaster] = None


def build_broadcaster() -> Broadcaster:
    if settings.use_redis_broadcast:
        return RedisBroadcaster()
    return LocalBroadcaster(hub)


async def init_broadcaster() -> Broadcaster:
    global _broadcaster
    _broadcaster = build_broadcaster()
    await _broadcaster.start()
    logger.info("Broadcaster ready", backend=type(_broadcaster).__name__)
    return _broadcaster


async def close_broadcaster() -> None:
    global _broadcaster
    if _broadcaster is not None:
        await _broadcaster.stop()
        _broadcaster = None


def get_broadcaster() -> Broadcaster:
    """FastAPI dependency; falls back to the in-process hub before startup"""
    if _broadcaster is None:
        return LocalBroadcaster(hub)
    return _broadcaster

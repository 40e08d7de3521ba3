"""
Broadcast Redis Subscriber

Subscribes to the broadcast Redis channel and replays every event into this
process's channel hub.
"""

import asyncio
import json
from typing import Optional

from redis import asyncio as aioredis

from simulive.core.config import settings
from simulive.core.logging import get_logger
from simulive.realtime.manager import ChannelHub, hub

logger = get_logger(__name__)

# Global task reference for the subscriber
_relay_task: Optional[asyncio.Task] = None


async def dispatch_relayed(channel_hub: ChannelHub, raw: Optional[str]) -> bool:
    """Apply one relayed message to the hub; malformed messages are skipped"""
    try:
        message = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return False

    channel = message.get("channel")
    event = message.get("event")
    if not channel or not event:
        return False

    await channel_hub.publish(
        channel,
        event,
        message.get("data"),
        exclude_socket=message.get("exclude_socket"),
    )
    return True


async def _broadcast_listener(redis_channel: str) -> None:
    redis_url = settings.redis_url
    if not redis_url:
        logger.warning("Redis URL not configured, broadcast relay disabled")
        return

    logger.info(f"Starting broadcast relay on channel: {redis_channel}")

    while True:
        redis = None
        pubsub = None
        try:
            redis = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)
            pubsub = redis.pubsub()
            await pubsub.subscribe(redis_channel)
            logger.info(f"Subscribed to {redis_channel}")

            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                await dispatch_relayed(hub, message.get("data"))

        except asyncio.CancelledError:
            logger.info("Broadcast relay cancelled")
            break
        except Exception as exc:
            logger.error(f"Broadcast relay error: {exc!r}")
            await asyncio.sleep(5)  # Retry after delay
        finally:
            try:
                if pubsub is not None:
                    await pubsub.aclose()
                if redis is not None:
                    await redis.aclose()
            except Exception as exc:
                logger.debug(f"Broadcast relay cleanup failed: {exc!r}")


async def start_broadcast_relay(redis_channel: str = settings.broadcast_redis_channel) -> None:
    """
    Start the relay as a background task.
    Should be called during application startup.
    """
    global _relay_task
    if _relay_task is None or _relay_task.done():
        _relay_task = asyncio.create_task(_broadcast_listener(redis_channel))
        logger.info("Broadcast relay task started")


async def stop_broadcast_relay() -> None:
    """
    Stop the relay.
    Should be called during application shutdown.
    """
    global _relay_task
    if _relay_task and not _relay_task.done():
        _relay_task.cancel()
        try:
            await _relay_task
        except asyncio.CancelledError:
            pass
        logger.info("Broadcast relay task stopped")
    _relay_task = None

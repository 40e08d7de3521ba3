"""
Websocket connection to the realtime endpoint.

Handles the subscription handshake (including signed private/presence
channels) and dispatches incoming events to per-channel handlers.
"""

import asyncio
import inspect
import json
from typing import Any, Callable, Dict, List, Optional

import websockets

from simulive.client.api import SimuliveClient
from simulive.core.logging import get_logger
from simulive.realtime.channels import EVENT_CONNECTION_ESTABLISHED, EVENT_ERROR, requires_auth

logger = get_logger(__name__)

EventHandler = Callable[[str, Any], Any]


class RealtimeConnection:
    def __init__(self, api: SimuliveClient, connect: Callable[..., Any] = websockets.connect):
        self.api = api
        self._connect = connect
        self.ws = None
        self.socket_id: Optional[str] = None
        self.handlers: Dict[str, List[EventHandler]] = {}
        self._reader: Optional[asyncio.Task] = None

    async def open(self, timeout_s: float = 10.0) -> str:
        self.ws = await self._connect(self.api.realtime_url())
        first = json.loads(await asyncio.wait_for(self.ws.recv(), timeout_s))
        if first.get("event") != EVENT_CONNECTION_ESTABLISHED:
            await self.ws.close()
            raise RuntimeError(f"Realtime handshake failed: {first}")
        self.socket_id = first["data"]["socket_id"]
        self._reader = asyncio.create_task(self._read_loop())
        logger.info("realtime.connected", socket_id=self.socket_id)
        return self.socket_id

    async def close(self) -> None:
        if self._reader and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        if self.ws is not None:
            await self.ws.close()
            self.ws = None

    def on(self, channel: str, handler: EventHandler) -> None:
        self.handlers.setdefault(channel, []).append(handler)

    async def _send(self, event: str, data: Any, channel: Optional[str] = None) -> None:
        message = {"event": event, "data": data}
        if channel:
            message["channel"] = channel
        await self.ws.send(json.dumps(message))

    async def subscribe(self, channel: str, handler: Optional[EventHandler] = None) -> None:
        if handler is not None:
            self.on(channel, handler)
        data: Dict[str, Any] = {"channel": channel}
        if requires_auth(channel):
            data.update(await self.api.channel_auth(self.socket_id, channel))
        await self._send("subscribe", data)

    async def unsubscribe(self, channel: str) -> None:
        self.handlers.pop(channel, None)
        await self._send("unsubscribe", {"channel": channel})

    async def trigger_client_event(self, channel: str, event: str, data: Any) -> None:
        await self._send(event, data, channel)

    async def dispatch(self, message: Dict[str, Any]) -> None:
        event = message.get("event")
        channel = message.get("channel")
        if event == EVENT_ERROR:
            logger.warning("realtime.error", channel=channel, error=message.get("data"))
        for handler in list(self.handlers.get(channel or "", [])):
            try:
                result = handler(event, message.get("data"))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Realtime handler failed: {e}", channel=channel, event_name=event)

    async def _read_loop(self) -> None:
        try:
            async for raw in self.ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                await self.dispatch(message)
        except websockets.ConnectionClosed:
            logger.info("realtime.closed", socket_id=self.socket_id)

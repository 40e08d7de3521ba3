"""
Realtime websocket endpoint.

Protocol (JSON text frames, ``{"event", "channel"?, "data"}``):

- server -> client ``connection_established`` with the socket id, right after
  the token is accepted
- ``subscribe`` / ``unsubscribe`` with ``{"channel", "auth"?, "channel_data"?}``;
  private and presence channels need the signature from ``POST /channels/auth``
- ``ping`` -> ``pong``
- ``client-*`` events on a subscribed private/presence channel are relayed to
  the other sockets on that channel
"""

import json
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from simulive.core.logging import socket_id_var
from simulive.core.token import identity_from_token
from simulive.domain.identity import Identity
from simulive.realtime.broadcaster import get_broadcaster
from simulive.realtime.channel_auth import verify_subscription
from simulive.realtime.channels import (
    CLIENT_EVENT_PREFIX,
    EVENT_CONNECTION_ESTABLISHED,
    EVENT_ERROR,
    EVENT_PONG,
    ChannelKind,
    channel_kind,
    requires_auth,
)
from simulive.realtime.manager import ChannelHub, hub

logger = logging.getLogger("simulive.ws")

router = APIRouter(tags=["websocket"])

ACTIVITY_TIMEOUT_SECONDS = 120


def new_socket_id() -> str:
    return f"{uuid4().int % 10**8}.{uuid4().int % 10**8}"


async def _error(websocket: WebSocket, code: str, message: str, channel: Optional[str] = None) -> None:
    payload: Dict[str, Any] = {"event": EVENT_ERROR, "data": {"code": code, "message": message}}
    if channel:
        payload["channel"] = channel
    await websocket.send_json(payload)


async def handle_subscribe(
    channel_hub: ChannelHub,
    websocket: WebSocket,
    socket_id: str,
    data: Dict[str, Any],
) -> None:
    channel = data.get("channel")
    if not channel or not isinstance(channel, str):
        await _error(websocket, "INVALID_CHANNEL", "channel is required")
        return

    member = None
    if requires_auth(channel):
        channel_data = data.get("channel_data")
        if not isinstance(channel_data, str):
            channel_data = None
        if not verify_subscription(data.get("auth"), socket_id, channel, channel_data):
            await _error(websocket, "SUBSCRIPTION_DENIED", "Invalid channel signature", channel)
            return
        if channel_kind(channel) is ChannelKind.PRESENCE:
            try:
                member = json.loads(channel_data or "")
            except json.JSONDecodeError:
                member = None
            if not isinstance(member, dict) or not member.get("user_id"):
                await _error(websocket, "SUBSCRIPTION_DENIED", "Invalid presence data", channel)
                return

    await channel_hub.subscribe(socket_id, channel, member)


async def handle_client_event(
    channel_hub: ChannelHub,
    websocket: WebSocket,
    socket_id: str,
    event: str,
    channel: Optional[str],
    data: Any,
) -> None:
    if not channel or not requires_auth(channel) or not channel_hub.is_subscribed(socket_id, channel):
        await _error(websocket, "CLIENT_EVENT_REJECTED", "Client events need a subscribed private channel", channel)
        return
    await get_broadcaster().publish(channel, event, data, exclude_socket=socket_id)


@router.websocket("/realtime")
async def realtime_websocket(websocket: WebSocket):
    """
    Accepts first, then validates the token so the client sees why it was refused.
    """
    # 1. Establish the connection
    await websocket.accept()
    token = websocket.query_params.get("token")

    # 2. Authenticate
    identity: Optional[Identity] = identity_from_token(token) if token else None
    if identity is None:
        code = "AUTH_REQUIRED" if not token else "AUTH_FAILED"
        await _error(websocket, code, "Invalid or missing token")
        await websocket.close(code=1008)
        return

    # 3. Register with the hub
    socket_id = new_socket_id()
    log_token = socket_id_var.set(socket_id)
    hub.register(socket_id, websocket)
    logger.info(f"WS Connected | User: {identity.id} | Role: {identity.role_name}")

    try:
        await websocket.send_json(
            {
                "event": EVENT_CONNECTION_ESTABLISHED,
                "data": {"socket_id": socket_id, "activity_timeout": ACTIVITY_TIMEOUT_SECONDS},
            }
        )

        while True:
            try:
                message = await websocket.receive_json()
            except (ValueError, KeyError):
                await _error(websocket, "INVALID_MESSAGE", "Frames must be JSON objects")
                continue

            if not isinstance(message, dict):
                await _error(websocket, "INVALID_MESSAGE", "Frames must be JSON objects")
                continue

            event = message.get("event")
            data = message.get("data")
            params = data if isinstance(data, dict) else {}

            if event == "subscribe":
                await handle_subscribe(hub, websocket, socket_id, params)
            elif event == "unsubscribe":
                await hub.unsubscribe(socket_id, params.get("channel", ""))
            elif event == "ping":
                await websocket.send_json({"event": EVENT_PONG, "data": {}})
            elif isinstance(event, str) and event.startswith(CLIENT_EVENT_PREFIX):
                await handle_client_event(hub, websocket, socket_id, event, message.get("channel"), data)
            else:
                await _error(websocket, "UNKNOWN_EVENT", f"Unsupported event: {event}")

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error | Error: {e!r}")
        try:
            await websocket.close(code=1011)
        except RuntimeError:
            pass
    finally:
        await hub.unregister(socket_id)
        socket_id_var.reset(log_token)

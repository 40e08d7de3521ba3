"""
Channel subscription signing

Private and presence channels need a signature minted by the server:
``key:HMAC_SHA256(secret, "socket_id:channel[:channel_data]")``. The websocket
endpoint verifies the same signature before subscribing the socket.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from simulive.core.config import settings
from simulive.core.errors import PermissionError, ValidationError
from simulive.core.logging import get_logger
from simulive.domain.identity import Identity
from simulive.realtime.channels import ChannelKind, channel_kind, session_key_from_channel
from simulive.sessions.guests import ensure_session_access
from simulive.sessions.resolver import resolve_session

logger = get_logger(__name__)


def _string_to_sign(socket_id: str, channel: str, channel_data: Optional[str] = None) -> str:
    parts = [socket_id, channel]
    if channel_data:
        parts.append(channel_data)
    return ":".join(parts)


def sign_subscription(socket_id: str, channel: str, channel_data: Optional[str] = None) -> str:
    digest = hmac.new(
        settings.channel_signing_secret.encode("utf-8"),
        _string_to_sign(socket_id, channel, channel_data).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"{settings.channel_auth_key}:{digest}"


def verify_subscription(
    auth: Optional[str],
    socket_id: str,
    channel: str,
    channel_data: Optional[str] = None,
) -> bool:
    if not auth:
        return False
    expected = sign_subscription(socket_id, channel, channel_data)
    return hmac.compare_digest(auth, expected)


def presence_member(identity: Identity) -> Dict[str, Any]:
    return {
        "user_id": identity.id,
        "user_info": {
            "name": identity.display_name,
            "email": identity.email,
            "role": identity.role_name,
        },
    }


async def authorize_channel(
    db: AsyncSession,
    identity: Identity,
    socket_id: str,
    channel: str,
) -> Dict[str, str]:
    """
    Produce the auth payload for a private/presence session channel.

    Only session channels are served; the session must exist and guests must
    belong to it.
    """
    if not socket_id or not channel:
        raise ValidationError("socket_id and channel_name are required")

    kind = channel_kind(channel)
    if kind is ChannelKind.PUBLIC:
        raise ValidationError(
            "Public channels do not need authorization",
            details={"field": "channel_name"},
        )

    key = session_key_from_channel(channel)
    if key is None:
        raise PermissionError("Unknown channel", details={"channel": channel})

    session = await resolve_session(db, key)
    await ensure_session_access(db, identity, session)

    if kind is ChannelKind.PRESENCE:
        channel_data = json.dumps(presence_member(identity), separators=(",", ":"))
        payload = {
            "auth": sign_subscription(socket_id, channel, channel_data),
            "channel_data": channel_data,
        }
    else:
        payload = {"auth": sign_subscription(socket_id, channel)}

    logger.debug("channel.authorized", channel=channel, user_id=identity.id)
    return payload

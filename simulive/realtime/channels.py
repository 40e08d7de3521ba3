"""
Channel naming and event names shared by the server and the viewer client.

Channel kinds follow the Pusher convention: a ``presence-`` prefix carries a
member roster, ``private-`` requires a signed subscription, anything else is
public.
"""

from enum import Enum
from typing import Optional

SESSIONS_CHANNEL = "sessions"

SESSION_PREFIX = "session-"
PRIVATE_PREFIX = "private-"
PRESENCE_PREFIX = "presence-"

# Server events
EVENT_NEW_MESSAGE = "new-message"
EVENT_MESSAGE_DELETED = "message-deleted"
EVENT_SESSION_CREATED = "session-created"
EVENT_SESSION_UPDATED = "session-updated"
EVENT_SESSION_DELETED = "session-deleted"
EVENT_HAND_UPDATE = "client-hand-update"

# Fabric events
EVENT_CONNECTION_ESTABLISHED = "connection_established"
EVENT_SUBSCRIPTION_SUCCEEDED = "subscription_succeeded"
EVENT_MEMBER_ADDED = "member_added"
EVENT_MEMBER_REMOVED = "member_removed"
EVENT_ERROR = "error"
EVENT_PONG = "pong"

CLIENT_EVENT_PREFIX = "client-"


class ChannelKind(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    PRESENCE = "presence"


def channel_kind(channel: str) -> ChannelKind:
    if channel.startswith(PRESENCE_PREFIX):
        return ChannelKind.PRESENCE
    if channel.startswith(PRIVATE_PREFIX):
        return ChannelKind.PRIVATE
    return ChannelKind.PUBLIC


def requires_auth(channel: str) -> bool:
    return channel_kind(channel) is not ChannelKind.PUBLIC


def session_channel(slug: str) -> str:
    return f"{SESSION_PREFIX}{slug}"


def presence_channel(slug: str) -> str:
    return f"{PRESENCE_PREFIX}{SESSION_PREFIX}{slug}"


def session_key_from_channel(channel: str) -> Optional[str]:
    """
    Extract the session slug (or id) a session-scoped channel refers to.

    ``session-x``, ``private-session-x`` and ``presence-session-x`` all map
    to ``x``; any other name returns None.
    """
    name = channel
    for prefix in (PRESENCE_PREFIX, PRIVATE_PREFIX):
        if name.startswith(prefix):
            name = name[len(prefix):]
            break
    if not name.startswith(SESSION_PREFIX):
        return None
    key = name[len(SESSION_PREFIX):]
    return key or None

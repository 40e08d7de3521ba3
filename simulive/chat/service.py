"""
Session chat: send, history and moderation.

Messages are persisted first and broadcast second; a broadcast failure is
logged and does not undo the stored message.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from simulive.chat.ratelimit import SlidingWindowRateLimiter
from simulive.core.config import settings
from simulive.core.errors import NotFoundError, PermissionError, ValidationError
from simulive.core.logging import bind_log_context, get_logger
from simulive.core.time import ensure_utc, utcnow
from simulive.domain.identity import Identity
from simulive.models.class_session import ClassSession
from simulive.models.message import ChatMessage
from simulive.realtime.broadcaster import Broadcaster
from simulive.realtime.channels import EVENT_MESSAGE_DELETED, EVENT_NEW_MESSAGE, session_channel
from simulive.sessions.guests import ensure_session_access
from simulive.sessions.resolver import resolve_session

logger = get_logger(__name__)

MESSAGE_TYPES = ("user", "admin")
HISTORY_MAX_LIMIT = 200


def new_message_id() -> str:
    return f"msg_{uuid4().hex[:16]}"


def epoch_millis(value: datetime) -> int:
    return int(ensure_utc(value).timestamp() * 1000)


def message_event(
    message_id: str,
    body: str,
    sender_name: str,
    message_type: str,
    created_at: datetime,
    sender_id: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Wire shape of a ``new-message`` event and of a history entry"""
    return {
        "id": message_id,
        "message": body,
        "sender": sender_name,
        "avatar": avatar_url or "",
        "type": message_type,
        "timestamp": epoch_millis(created_at),
        "userId": sender_id,
    }


def serialize_message(msg: ChatMessage) -> Dict[str, Any]:
    return message_event(
        msg.id,
        msg.body,
        msg.sender_name,
        msg.type,
        msg.created_at,
        sender_id=msg.sender_id,
        avatar_url=msg.avatar_url,
    )


def normalize_body(message: Optional[str]) -> str:
    body = (message or "").strip()
    if not body:
        raise ValidationError("Message cannot be empty", details={"field": "message"})
    if len(body) > settings.chat_message_max_length:
        raise ValidationError(
            f"Message too long (max {settings.chat_message_max_length} characters)",
            details={"field": "message"},
        )
    return body


async def _publish_best_effort(
    broadcaster: Broadcaster,
    channel: str,
    event: str,
    data: Dict[str, Any],
) -> bool:
    try:
        await broadcaster.publish(channel, event, data)
        return True
    except Exception as e:
        logger.warning(f"Broadcast failed: {e}", channel=channel, event_name=event)
        return False


async def send_message(
    db: AsyncSession,
    broadcaster: Broadcaster,
    limiter: SlidingWindowRateLimiter,
    identity: Identity,
    id_or_slug: str,
    message: str,
    message_type: str = "user",
) -> ChatMessage:
    # 1. Validate input
    body = normalize_body(message)
    if message_type not in MESSAGE_TYPES:
        raise ValidationError("Invalid message type", details={"field": "type"})
    if message_type == "admin" and not identity.is_admin:
        raise PermissionError("Only admins can send admin messages")

    # 2. Resolve session and scope
    session = await resolve_session(db, id_or_slug)
    await ensure_session_access(db, identity, session)

    # 3. Rate limit
    await limiter.check(identity.id)

    # 4. Persist
    chat = ChatMessage(
        id=new_message_id(),
        session_id=session.id,
        sender_id=identity.id,
        sender_name=identity.display_name,
        body=body,
        type=message_type,
        created_at=utcnow(),
    )
    db.add(chat)
    await db.commit()

    # 5. Broadcast
    with bind_log_context(session=session.public_slug):
        await _publish_best_effort(
            broadcaster, session_channel(session.public_slug), EVENT_NEW_MESSAGE, serialize_message(chat)
        )
        logger.info("chat.sent", session_id=session.id, message_id=chat.id, type=message_type)
    return chat


async def chat_history(
    db: AsyncSession,
    identity: Identity,
    id_or_slug: str,
    limit: Optional[int] = None,
) -> List[ChatMessage]:
    """Latest ``limit`` messages, oldest first"""
    limit = limit or settings.chat_history_default_limit
    limit = max(1, min(limit, HISTORY_MAX_LIMIT))

    session = await resolve_session(db, id_or_slug)
    await ensure_session_access(db, identity, session)

    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.session_id == session.id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def delete_message(db: AsyncSession, broadcaster: Broadcaster, message_id: str) -> None:
    chat = await db.get(ChatMessage, message_id)
    if chat is None:
        raise NotFoundError("Message not found", details={"message_id": message_id})

    session = await db.get(ClassSession, chat.session_id)
    await db.delete(chat)
    await db.commit()

    if session is not None:
        await _publish_best_effort(
            broadcaster,
            session_channel(session.public_slug),
            EVENT_MESSAGE_DELETED,
            {"id": message_id},
        )
    logger.info("chat.deleted", message_id=message_id)

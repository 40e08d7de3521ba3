"""
Timestamp-triggered message delivery.

Viewers call this with their playback offset on every tick. Each due ledger
entry is handled as publish -> persist chat -> mark sent, so a crash between
steps can only cause a duplicate broadcast, never a lost message. Two viewers
triggering at the same moment may both broadcast an entry before either
marks it. The event id is derived from the ledger entry, so clients drop the
repeat by id and chat history keeps a single row.

A session that was ended by hand delivers nothing further.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from simulive.chat.service import message_event
from simulive.core.errors import ValidationError
from simulive.core.config import settings
from simulive.core.logging import LatencyLogger, bind_log_context, get_logger
from simulive.core.time import utcnow
from simulive.models.message import ChatMessage
from simulive.models.scheduled_message import ScheduledMessage
from simulive.realtime.broadcaster import Broadcaster
from simulive.realtime.channels import EVENT_NEW_MESSAGE, session_channel
from simulive.sessions import ledger
from simulive.sessions.resolver import resolve_session
from simulive.sessions.status import SessionStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class DueEntry:
    id: str
    session_id: str
    text: str
    sender_name: str
    sender_avatar: Optional[str]

    @classmethod
    def from_row(cls, row: ScheduledMessage) -> "DueEntry":
        return cls(
            id=row.id,
            session_id=row.session_id,
            text=row.text,
            sender_name=row.sender_name or ledger.DEFAULT_SENDER_NAME,
            sender_avatar=row.sender_avatar,
        )


def history_message_id(entry_id: str) -> str:
    return f"msg_{entry_id}"


@dataclass
class TriggerResult:
    session_id: str
    due: int = 0
    delivered: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


async def trigger_due_messages(
    db: AsyncSession,
    broadcaster: Broadcaster,
    id_or_slug: str,
    offset: int,
) -> TriggerResult:
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationError("offsetSeconds must be a non-negative integer", details={"field": "offsetSeconds"})

    # 1. Resolve the session (slug first, then id)
    session = await resolve_session(db, id_or_slug)
    channel = session_channel(session.public_slug)
    result = TriggerResult(session_id=session.id)
    if session.status == SessionStatus.ENDED.value:
        return result

    # 2. Select due entries
    due = await ledger.find_due(db, session.id, offset)
    result.due = len(due)

    if not due:
        return result

    # Plain snapshots: a rollback inside the loop expires ORM instances
    entries = [DueEntry.from_row(row) for row in due]
    with bind_log_context(session=session.public_slug):
        with LatencyLogger("trigger.deliver", logger, slow_ms=settings.trigger_slow_ms, offset=offset, due=len(entries)):
            for entry in entries:
                if await _deliver(db, broadcaster, channel, entry):
                    result.delivered.append(entry.id)
                else:
                    result.failed.append(entry.id)

        logger.info(
            "trigger.completed",
            session_id=result.session_id,
            offset=offset,
            delivered=len(result.delivered),
            failed=len(result.failed),
        )
    return result


async def _deliver(
    db: AsyncSession,
    broadcaster: Broadcaster,
    channel: str,
    entry: DueEntry,
) -> bool:
    entry_id = entry.id
    sender_name = entry.sender_name
    created_at = utcnow()
    message_id = history_message_id(entry_id)
    payload = message_event(
        message_id,
        entry.text,
        sender_name,
        "admin",
        created_at,
        avatar_url=entry.sender_avatar,
    )

    # 1. Publish; on failure the entry stays unsent for the next tick
    try:
        await broadcaster.publish(channel, EVENT_NEW_MESSAGE, payload)
    except Exception as e:
        logger.warning(f"Scheduled message publish failed: {e}", message_id=entry_id)
        return False

    # 2. Persist to chat history (best-effort)
    try:
        db.add(
            ChatMessage(
                id=message_id,
                session_id=entry.session_id,
                sender_id=None,
                sender_name=sender_name,
                avatar_url=entry.sender_avatar,
                body=entry.text,
                type="admin",
                created_at=created_at,
            )
        )
        await db.commit()
    except IntegrityError:
        logger.info("trigger.already_recorded", message_id=entry_id)
        await db.rollback()
    except Exception as e:
        logger.error(f"Scheduled message history write failed: {e}", message_id=entry_id)
        await db.rollback()

    # 3. Flip the ledger flag
    try:
        if not await ledger.mark_sent(db, entry_id):
            logger.info("trigger.already_sent", message_id=entry_id)
    except Exception as e:
        logger.error(f"mark_sent failed: {e}", message_id=entry_id)
        await db.rollback()
    return True

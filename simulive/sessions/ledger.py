"""
Scheduled-message ledger

Per-session list of (offset, text, sent) entries. The ``sent`` flag is the
single source of truth for delivery: it only ever moves from False to True.

Replacement semantics
---------------------
``replace_all`` deletes the session's entries and inserts the new set in one
database transaction, so readers never observe a half-replaced ledger.
What is *not* covered is the interplay with triggers: a trigger that selected
an entry just before a replacement may still broadcast it, and the replacement
re-inserts every entry with ``sent = False`` (already-passed offsets fire again
on the next trigger). Saving a message list during a live broadcast is
therefore an operator decision.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from simulive.core.errors import ValidationError
from simulive.core.logging import get_logger
from simulive.models.class_session import ClassSession
from simulive.models.scheduled_message import ScheduledMessage

logger = get_logger(__name__)

DEFAULT_SENDER_NAME = "Admin"


class LedgerValidationError(ValidationError):
    """Rejected message batch; ``code`` carries the failure kind"""

    INVALID_TIMESTAMP = "INVALID_TIMESTAMP"
    MISSING_CONTENT = "MISSING_CONTENT"
    DUPLICATE_TIMESTAMP = "DUPLICATE_TIMESTAMP"

    def __init__(self, kind: str, message: str, field: str):
        super().__init__(message=message, details={"field": field}, code=kind)
        self.kind = kind
        self.field = field


@dataclass
class ScheduledMessageDraft:
    offset_seconds: int
    text: str
    sender_name: Optional[str] = None
    sender_avatar: Optional[str] = None


def validate_messages(
    messages: Sequence[ScheduledMessageDraft],
    video_duration: Optional[int],
    field_prefix: str = "admin_messages",
) -> None:
    """Validate a whole batch; the first offending entry rejects it."""
    duration = video_duration or 0
    seen = {}
    for index, msg in enumerate(messages):
        field = f"{field_prefix}[{index}]"
        offset = msg.offset_seconds
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0 or offset > duration:
            raise LedgerValidationError(
                LedgerValidationError.INVALID_TIMESTAMP,
                f"Invalid message timestamp: {offset}. Video duration is {duration}s",
                f"{field}.offset_seconds",
            )
        if not msg.text or not msg.text.strip():
            raise LedgerValidationError(
                LedgerValidationError.MISSING_CONTENT,
                "Message content is required for scheduled messages",
                f"{field}.text",
            )
        if offset in seen:
            raise LedgerValidationError(
                LedgerValidationError.DUPLICATE_TIMESTAMP,
                f"Duplicate message timestamp {offset}s (also used by entry {seen[offset]})",
                f"{field}.offset_seconds",
            )
        seen[offset] = index


async def replace_all(
    db: AsyncSession,
    session: ClassSession,
    messages: Sequence[ScheduledMessageDraft],
    validate: bool = True,
) -> List[ScheduledMessage]:
    if validate:
        validate_messages(messages, session.video_duration)

    rows = await stage_replacement(db, session.id, messages)
    await db.commit()
    await db.refresh(session, attribute_names=["scheduled_messages"])

    logger.info("ledger.replaced", session_id=session.id, count=len(rows))
    return rows


async def find_due(db: AsyncSession, session_id: str, current_offset: int) -> List[ScheduledMessage]:
    result = await db.execute(
        select(ScheduledMessage)
        .where(
            ScheduledMessage.session_id == session_id,
            ScheduledMessage.offset_seconds <= current_offset,
            ScheduledMessage.sent.is_(False),
        )
        .order_by(ScheduledMessage.offset_seconds)
    )
    return list(result.scalars().all())


async def mark_sent(db: AsyncSession, message_id: str) -> bool:
    """Flip ``sent`` to True. Returns False if it was already set (no-op)."""
    result = await db.execute(
        update(ScheduledMessage)
        .where(ScheduledMessage.id == message_id, ScheduledMessage.sent.is_(False))
        .values(sent=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return (result.rowcount or 0) > 0


async def delete_for_session(db: AsyncSession, session_id: str) -> None:
    await db.execute(delete(ScheduledMessage).where(ScheduledMessage.session_id == session_id))


def build_entries(session_id: str, messages: Sequence[ScheduledMessageDraft]) -> List[ScheduledMessage]:
    return [
        ScheduledMessage(
            id=f"sm_{uuid4().hex[:16]}",
            session_id=session_id,
            offset_seconds=msg.offset_seconds,
            text=msg.text.strip(),
            sender_name=msg.sender_name or DEFAULT_SENDER_NAME,
            sender_avatar=msg.sender_avatar,
            sent=False,
        )
        for msg in messages
    ]


async def stage_replacement(
    db: AsyncSession,
    session_id: str,
    messages: Sequence[ScheduledMessageDraft],
) -> List[ScheduledMessage]:
    """Delete + insert inside the caller's transaction (no commit)"""
    # 1. Drop the current ledger
    await db.execute(delete(ScheduledMessage).where(ScheduledMessage.session_id == session_id))

    # 2. Insert the replacement set, all unsent
    rows = build_entries(session_id, messages)
    db.add_all(rows)
    return rows

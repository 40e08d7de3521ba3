"""
Session authoring: create, edit, delete and list class sessions.

Every edit validates the whole request before writing anything, then commits
once. Dashboards hear about changes on the ``sessions`` channel; viewers of a
session hear about edits to it on ``session-{slug}``.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from simulive.core.errors import NotFoundError, ValidationError
from simulive.core.logging import get_logger
from simulive.core.time import to_naive_utc, to_utc_iso, utcnow
from simulive.domain.identity import Identity
from simulive.models.class_session import ClassSession
from simulive.models.message import ChatMessage
from simulive.models.video import Video
from simulive.realtime.broadcaster import Broadcaster
from simulive.realtime.channels import (
    EVENT_SESSION_CREATED,
    EVENT_SESSION_DELETED,
    EVENT_SESSION_UPDATED,
    SESSIONS_CHANNEL,
    session_channel,
)
from simulive.sessions import ledger
from simulive.sessions.guests import purge_session_guests
from simulive.sessions.reconciler import reconcile, reconcile_many, reconcile_open_sessions
from simulive.sessions.resolver import resolve_session
from simulive.sessions.status import SessionStatus

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 255
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def make_slug(title: str) -> str:
    """``intro-to-python-3f9a1c``: readable prefix plus a random suffix"""
    base = _SLUG_STRIP_RE.sub("-", title.lower()).strip("-")[:40].rstrip("-")
    suffix = uuid4().hex[:6]
    return f"{base}-{suffix}" if base else f"session-{suffix}"


def _clean_title(title: Optional[str]) -> str:
    value = (title or "").strip()
    if not value:
        raise ValidationError("Title is required", details={"field": "title"})
    if len(value) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title must be at most {TITLE_MAX_LENGTH} characters",
            details={"field": "title"},
        )
    return value


def _future_start(value: datetime, now: Optional[datetime] = None) -> datetime:
    start = to_naive_utc(value)
    if start <= to_naive_utc(now or utcnow()):
        raise ValidationError(
            "Scheduled start time must be in the future",
            details={"field": "scheduled_start"},
            code="INVALID_SCHEDULE",
        )
    return start


# ============ Serialization ============

def serialize_session(session: ClassSession, include_messages: bool = False) -> Dict[str, Any]:
    video = session.video
    data = {
        "id": session.id,
        "slug": session.public_slug,
        "title": session.title,
        "scheduled_start": to_utc_iso(session.scheduled_start),
        "status": session.status,
        "created_by": session.created_by,
        "created_at": to_utc_iso(session.created_at),
        "updated_at": to_utc_iso(session.updated_at),
        "video": {
            "id": video.id,
            "title": video.title,
            "duration": video.duration or 0,
            "video_url": video.video_url,
            "thumbnail_url": video.thumbnail_url,
        }
        if video
        else None,
    }
    if include_messages:
        data["admin_messages"] = [
            {
                "id": m.id,
                "offset_seconds": m.offset_seconds,
                "text": m.text,
                "sender_name": m.sender_name,
                "sender_avatar": m.sender_avatar,
                "sent": m.sent,
            }
            for m in session.scheduled_messages
        ]
    return data


async def _announce(
    broadcaster: Broadcaster,
    event: str,
    session_payload: Dict[str, Any],
    viewer_payload: Optional[Dict[str, Any]] = None,
    slug: Optional[str] = None,
) -> None:
    # Best-effort: the edit is already committed
    targets = [(SESSIONS_CHANNEL, session_payload)]
    if slug and viewer_payload is not None:
        targets.append((session_channel(slug), viewer_payload))
    for channel, payload in targets:
        try:
            await broadcaster.publish(channel, event, payload)
        except Exception as e:
            logger.warning(f"Session event publish failed: {e}", channel=channel, event_name=event)


# ============ Commands ============

async def create_session(
    db: AsyncSession,
    broadcaster: Broadcaster,
    creator: Identity,
    title: str,
    video_id: str,
    scheduled_start: datetime,
    messages: Sequence[ledger.ScheduledMessageDraft] = (),
) -> ClassSession:
    # 1. Validate everything up front
    clean_title = _clean_title(title)
    start = _future_start(scheduled_start)

    video = await db.get(Video, video_id)
    if video is None:
        raise NotFoundError("Video not found", details={"video_id": video_id})
    ledger.validate_messages(messages, video.duration)

    # 2. Persist session and ledger together
    session = ClassSession(
        id=str(uuid4()),
        public_slug=make_slug(clean_title),
        title=clean_title,
        scheduled_start=start,
        video_id=video.id,
        status=SessionStatus.SCHEDULED.value,
        created_by=creator.id,
    )
    session.video = video
    db.add(session)
    await db.flush()
    db.add_all(ledger.build_entries(session.id, messages))
    await db.commit()
    await db.refresh(session, attribute_names=["scheduled_messages"])

    logger.info("session.created", session_id=session.id, slug=session.public_slug, messages=len(messages))

    # 3. Notify dashboards
    await _announce(broadcaster, EVENT_SESSION_CREATED, serialize_session(session, include_messages=True))
    return session


async def update_session(
    db: AsyncSession,
    broadcaster: Broadcaster,
    id_or_slug: str,
    title: Optional[str] = None,
    scheduled_start: Optional[datetime] = None,
    messages: Optional[Sequence[ledger.ScheduledMessageDraft]] = None,
    status: Optional[str] = None,
) -> ClassSession:
    """
    Apply a partial edit.

    A new start must be in the future and resets the status to scheduled.
    ``status="ended"`` ends the session early and purges its guests.
    ``messages`` replaces the whole ledger, re-arming every entry.
    """
    session = await resolve_session(db, id_or_slug)

    # 1. Validate
    clean_title = _clean_title(title) if title is not None else None
    start = _future_start(scheduled_start) if scheduled_start is not None else None
    if status is not None and status != SessionStatus.ENDED.value:
        raise ValidationError(
            "Only an explicit end can be requested",
            details={"field": "status"},
        )
    if status is not None and start is not None:
        raise ValidationError(
            "Cannot reschedule and end a session in the same edit",
            details={"field": "status"},
        )
    if messages is not None:
        ledger.validate_messages(messages, session.video_duration)

    # 2. Write
    if clean_title is not None:
        session.title = clean_title
    if start is not None:
        session.scheduled_start = start
        session.status = SessionStatus.SCHEDULED.value
    if status is not None:
        session.status = SessionStatus.ENDED.value
        await purge_session_guests(db, session.id)
    if messages is not None:
        await ledger.stage_replacement(db, session.id, messages)

    await db.commit()
    if messages is not None:
        await db.refresh(session, attribute_names=["scheduled_messages"])

    # 3. Pull status current (no-op after a reschedule or manual end)
    await reconcile(db, session)
    logger.info(
        "session.updated",
        session_id=session.id,
        rescheduled=start is not None,
        ended=status is not None,
        messages_replaced=messages is not None,
    )

    # 4. Notify
    await _announce(
        broadcaster,
        EVENT_SESSION_UPDATED,
        serialize_session(session, include_messages=True),
        viewer_payload=serialize_session(session),
        slug=session.public_slug,
    )
    return session


async def delete_session(db: AsyncSession, broadcaster: Broadcaster, id_or_slug: str) -> Dict[str, str]:
    session = await resolve_session(db, id_or_slug)
    session_id, slug = session.id, session.public_slug

    # Guests, ledger and chat go first, then the session itself
    await purge_session_guests(db, session_id)
    await ledger.delete_for_session(db, session_id)
    await db.execute(delete(ChatMessage).where(ChatMessage.session_id == session_id))
    await db.execute(delete(ClassSession).where(ClassSession.id == session_id))
    await db.commit()
    db.expunge(session)

    logger.info("session.deleted", session_id=session_id, slug=slug)

    payload = {"id": slug, "uuid": session_id}
    await _announce(broadcaster, EVENT_SESSION_DELETED, payload, viewer_payload=payload, slug=slug)
    return payload


# ============ Queries ============

def _status_filter(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    try:
        return SessionStatus(status).value
    except ValueError:
        raise ValidationError("Unknown status filter", details={"field": "status"})


async def list_admin_sessions(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    status: Optional[str] = None,
) -> Tuple[List[ClassSession], int]:
    status_value = _status_filter(status)
    page = max(1, page)
    page_size = max(1, min(page_size, 100))

    await reconcile_open_sessions(db)

    query = select(ClassSession)
    count_query = select(func.count()).select_from(ClassSession)
    if status_value:
        query = query.where(ClassSession.status == status_value)
        count_query = count_query.where(ClassSession.status == status_value)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(ClassSession.scheduled_start.asc(), ClassSession.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    sessions = await reconcile_many(db, result.scalars().all())
    return sessions, total


async def list_viewer_sessions(
    db: AsyncSession,
    limit: int = 50,
    status: Optional[str] = None,
) -> List[ClassSession]:
    status_value = _status_filter(status)
    limit = max(1, min(limit, 100))

    await reconcile_open_sessions(db)

    query = select(ClassSession)
    if status_value:
        query = query.where(ClassSession.status == status_value)
    result = await db.execute(query.order_by(ClassSession.scheduled_start.asc(), ClassSession.id).limit(limit))
    return await reconcile_many(db, result.scalars().all())


async def get_session_detail(db: AsyncSession, id_or_slug: str) -> ClassSession:
    session = await resolve_session(db, id_or_slug)
    return await reconcile(db, session)

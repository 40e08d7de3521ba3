"""
Read-path status reconciliation.

Sessions are pulled into consistency whenever they are read: the derived
status is compared with the persisted one and, on mismatch, written back.
The write-back is best-effort; callers always get the computed status.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from simulive.core.logging import get_logger
from simulive.core.time import to_naive_utc, utcnow
from simulive.models.class_session import ClassSession
from simulive.sessions.status import SessionStatus, derive_status

logger = get_logger(__name__)


def reconciled_status(session: ClassSession, now: Optional[datetime] = None) -> SessionStatus:
    """
    Status the session should have at ``now``.

    ``ended`` is terminal: it is only reached through the clock or an
    explicit manual end, and only a reschedule edit reopens it.
    """
    if session.status == SessionStatus.ENDED.value:
        return SessionStatus.ENDED
    return derive_status(now or utcnow(), session.scheduled_start, session.video_duration)


async def reconcile(
    db: AsyncSession,
    session: ClassSession,
    now: Optional[datetime] = None,
) -> ClassSession:
    target = reconciled_status(session, now)
    if session.status == target.value:
        return session

    previous = session.status
    session_id = session.id
    try:
        await db.execute(
            update(ClassSession)
            .where(ClassSession.id == session_id)
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.info(
            "session.status.reconciled",
            session_id=session_id,
            previous=previous,
            status=target.value,
        )
    except Exception as e:
        logger.warning(
            f"Status write-back failed: {e}",
            session_id=session_id,
            previous=previous,
            status=target.value,
        )
        await _recover(db, session_id)

    # In-memory correction without marking the row dirty again
    set_committed_value(session, "status", target.value)
    return session


async def _recover(db: AsyncSession, session_id: str) -> None:
    # rollback expires every loaded row; reload sessions so callers can keep reading them
    try:
        await db.rollback()
        loaded = [obj for obj in db.identity_map.values() if isinstance(obj, ClassSession)]
        for obj in loaded:
            await db.refresh(obj)
    except Exception as e:
        logger.warning(f"Session reload after failed write-back failed: {e}", session_id=session_id)


async def reconcile_many(
    db: AsyncSession,
    sessions: Iterable[ClassSession],
    now: Optional[datetime] = None,
) -> List[ClassSession]:
    now = now or utcnow()
    return [await reconcile(db, s, now) for s in sessions]


async def reconcile_open_sessions(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Reconcile every non-ended session whose start has passed.

    Run ahead of status-filtered list queries so filters and counts see
    current statuses. Returns the number of rows whose status changed.
    """
    now = now or utcnow()
    result = await db.execute(
        select(ClassSession).where(
            ClassSession.status != SessionStatus.ENDED.value,
            ClassSession.scheduled_start <= to_naive_utc(now),
        )
    )
    changed = 0
    for session in result.scalars().all():
        before = session.status
        await reconcile(db, session, now)
        if session.status != before:
            changed += 1
    return changed

"""
Session lookup by public slug or internal id.

Every session-touching operation goes through ``resolve_session`` so the
"slug first, then primary key" rule lives in one place.
"""

import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from simulive.core.errors import NotFoundError
from simulive.models.class_session import ClassSession

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def looks_like_session_id(value: str) -> bool:
    return bool(_UUID_RE.match(value))


async def find_session(db: AsyncSession, id_or_slug: str) -> Optional[ClassSession]:
    if not id_or_slug:
        return None

    # 1. Public slug
    result = await db.execute(
        select(ClassSession).where(ClassSession.public_slug == id_or_slug)
    )
    session = result.scalar_one_or_none()
    if session is not None:
        return session

    # 2. Internal id (only worth a query when the value is id-shaped)
    if looks_like_session_id(id_or_slug):
        result = await db.execute(
            select(ClassSession).where(ClassSession.id == id_or_slug)
        )
        return result.scalar_one_or_none()
    return None


async def resolve_session(db: AsyncSession, id_or_slug: str) -> ClassSession:
    session = await find_session(db, id_or_slug)
    if session is None:
        raise NotFoundError("Session not found", details={"session": id_or_slug})
    return session

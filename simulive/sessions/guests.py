"""
Guest identities

A guest is a ``student`` users row plus a guest_registrations row naming the
one session it may touch. Registrations (and the user rows behind them) are
purged when the session is deleted or ended by hand.
"""

from datetime import timedelta
from typing import List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from simulive.core.config import settings
from simulive.core.errors import AuthenticationError, PermissionError, ValidationError
from simulive.core.logging import get_logger
from simulive.core.token import create_identity_token
from simulive.domain.identity import Guest, Identity, role_to_column
from simulive.models.class_session import ClassSession
from simulive.models.user import GuestRegistration, User
from simulive.sessions.reconciler import reconcile
from simulive.sessions.status import SessionStatus

logger = get_logger(__name__)

GUEST_NAME_MAX_LENGTH = 128


async def register_guest(
    db: AsyncSession,
    session: ClassSession,
    name: str,
    email: Optional[str] = None,
) -> Tuple[Identity, str]:
    """
    Mint a guest identity scoped to ``session`` and its access token.
    """
    # 1. Validate input
    display_name = (name or "").strip()
    if not display_name:
        raise ValidationError("Name is required", details={"field": "name"})
    if len(display_name) > GUEST_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be at most {GUEST_NAME_MAX_LENGTH} characters",
            details={"field": "name"},
        )

    # 2. Session must still be joinable
    await reconcile(db, session)
    if session.status == SessionStatus.ENDED.value:
        raise ValidationError(
            "Session has ended",
            details={"session_id": session.id},
            code="SESSION_ENDED",
        )

    # 3. Persist user + registration. users.email is unique, so the caller's
    # address lives on the token only.
    guest_id = f"guest_{uuid4()}"
    role = Guest(session_id=session.id)
    user = User(
        id=guest_id,
        email=f"{guest_id}@guest.temp",
        display_name=display_name,
        role=role_to_column(role),
    )
    db.add(user)
    db.add(
        GuestRegistration(
            id=str(uuid4()),
            session_id=session.id,
            user_id=guest_id,
        )
    )
    await db.commit()

    identity = Identity(id=guest_id, display_name=display_name, role=role, email=email or user.email)
    token = create_identity_token(
        identity, timedelta(minutes=settings.guest_token_expire_minutes)
    )
    logger.info("guest.registered", session_id=session.id, user_id=guest_id)
    return identity, token


async def is_registered_guest(db: AsyncSession, user_id: str, session_id: str) -> bool:
    result = await db.execute(
        select(GuestRegistration.id).where(
            GuestRegistration.user_id == user_id,
            GuestRegistration.session_id == session_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def ensure_session_access(db: AsyncSession, identity: Identity, session: ClassSession) -> None:
    """Guests may only act on the session they were minted for"""
    if not identity.is_guest:
        return
    if identity.guest_session_id != session.id:
        raise PermissionError("Guest access is limited to a single session")
    if not await is_registered_guest(db, identity.id, session.id):
        raise AuthenticationError("Guest registration is no longer valid")


async def purge_session_guests(db: AsyncSession, session_id: str) -> List[str]:
    """Delete every guest minted for the session. The caller commits."""
    result = await db.execute(
        select(GuestRegistration.user_id).where(GuestRegistration.session_id == session_id)
    )
    user_ids = list(result.scalars().all())
    if not user_ids:
        return []

    await db.execute(delete(GuestRegistration).where(GuestRegistration.session_id == session_id))
    await db.execute(delete(User).where(User.id.in_(user_ids)))
    logger.info("guest.purged", session_id=session_id, count=len(user_ids))
    return user_ids

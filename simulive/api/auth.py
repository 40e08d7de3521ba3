"""
Guest Authentication API
- POST /auth/guest-login - Mint a guest identity scoped to one session
"""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from simulive.core.deps import SessionDep
from simulive.sessions.guests import register_guest
from simulive.sessions.resolver import resolve_session

router = APIRouter(prefix="/auth", tags=["auth"])


class GuestLoginRequest(BaseModel):
    name: str
    session_id: str
    email: Optional[str] = None


class GuestUser(BaseModel):
    id: str
    name: str
    email: Optional[str]
    role: str
    session_id: str


class GuestLoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: GuestUser


@router.post("/guest-login", response_model=GuestLoginResponse)
async def guest_login(payload: GuestLoginRequest, db: SessionDep):
    session = await resolve_session(db, payload.session_id)
    identity, token = await register_guest(db, session, payload.name, payload.email)
    return GuestLoginResponse(
        token=token,
        user=GuestUser(
            id=identity.id,
            name=identity.display_name,
            email=identity.email,
            role=identity.role_name,
            session_id=session.id,
        ),
    )

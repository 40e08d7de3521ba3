"""
Viewer interaction API
- POST /student/hand-raise - Raise or lower the caller's hand in a session
"""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from simulive.core.deps import BroadcasterDep, SessionDep
from simulive.core.logging import get_logger
from simulive.core.token import CurrentIdentityDep
from simulive.realtime.channels import EVENT_HAND_UPDATE, session_channel
from simulive.sessions.guests import ensure_session_access
from simulive.sessions.resolver import resolve_session

logger = get_logger(__name__)

router = APIRouter(prefix="/student", tags=["student"])


class HandRaiseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    is_raised: bool = Field(alias="isRaised")


@router.post("/hand-raise")
async def hand_raise(
    payload: HandRaiseRequest,
    db: SessionDep,
    broadcaster: BroadcasterDep,
    identity: CurrentIdentityDep,
):
    session = await resolve_session(db, payload.session_id)
    await ensure_session_access(db, identity, session)

    await broadcaster.publish(
        session_channel(session.public_slug),
        EVENT_HAND_UPDATE,
        {"userId": identity.id, "isRaised": payload.is_raised},
    )
    logger.debug("hand.updated", session_id=session.id, user_id=identity.id, raised=payload.is_raised)
    return {"success": True}

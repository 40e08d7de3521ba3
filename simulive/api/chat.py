"""
Session Chat API
- POST /chat/send                  - Send a chat message (rate limited)
- GET  /chat/history/{session}     - Latest messages, oldest first
- POST /chat/delete                - Remove a message (admin)
- POST /chat/trigger-admin-message - Deliver scheduled messages due at an offset
"""

from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from simulive.chat import service as chat_service
from simulive.core.deps import BroadcasterDep, RateLimiterDep, SessionDep
from simulive.core.token import AdminDep, CurrentIdentityDep
from simulive.sessions.guests import ensure_session_access
from simulive.sessions.resolver import resolve_session
from simulive.sessions.trigger import trigger_due_messages

router = APIRouter(prefix="/chat", tags=["chat"])


# ============ Schemas ============

class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    message: str
    type: str = "user"


class MessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    message: str
    sender: str
    avatar: str
    type: str
    timestamp: int
    user_id: Optional[str] = Field(default=None, alias="userId")


class HistoryResponse(BaseModel):
    messages: List[MessageResponse]


class DeleteMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(alias="messageId")


class TriggerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    offset_seconds: int = Field(alias="offsetSeconds", ge=0)


class OkResponse(BaseModel):
    ok: bool = True


# ============ Endpoints ============

@router.post("/send", response_model=MessageResponse, response_model_by_alias=True)
async def send_message(
    payload: SendMessageRequest,
    db: SessionDep,
    broadcaster: BroadcasterDep,
    limiter: RateLimiterDep,
    identity: CurrentIdentityDep,
):
    chat = await chat_service.send_message(
        db,
        broadcaster,
        limiter,
        identity,
        payload.session_id,
        payload.message,
        payload.type,
    )
    return MessageResponse(**chat_service.serialize_message(chat))


@router.get("/history/{session_key}", response_model=HistoryResponse, response_model_by_alias=True)
async def chat_history(
    session_key: str,
    db: SessionDep,
    identity: CurrentIdentityDep,
    limit: Optional[int] = Query(None, ge=1, le=chat_service.HISTORY_MAX_LIMIT),
):
    messages = await chat_service.chat_history(db, identity, session_key, limit)
    return HistoryResponse(
        messages=[MessageResponse(**chat_service.serialize_message(m)) for m in messages]
    )


@router.post("/delete", response_model=OkResponse)
async def delete_message(
    payload: DeleteMessageRequest,
    db: SessionDep,
    broadcaster: BroadcasterDep,
    _admin: AdminDep,
):
    await chat_service.delete_message(db, broadcaster, payload.message_id)
    return OkResponse()


@router.post("/trigger-admin-message", response_model=OkResponse)
async def trigger_admin_message(
    payload: TriggerRequest,
    db: SessionDep,
    broadcaster: BroadcasterDep,
    identity: CurrentIdentityDep,
):
    """
    Called by every viewer on every tick while the session is live.
    Succeeds even when nothing is due.
    """
    if identity.is_guest:
        session = await resolve_session(db, payload.session_id)
        await ensure_session_access(db, identity, session)
    await trigger_due_messages(db, broadcaster, payload.session_id, payload.offset_seconds)
    return OkResponse()

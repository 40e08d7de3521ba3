"""
Class Session API
- GET    /admin/sessions            - Paginated admin listing
- POST   /admin/sessions            - Create a session
- PUT    /admin/sessions/{session}  - Edit title / start / messages / end early
- DELETE /admin/sessions/{session}  - Delete a session and everything minted for it
- GET    /student/sessions          - Viewer listing (no scheduled message text)
- GET    /sessions/{session}        - Reconciled detail by id or slug
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from simulive.core.deps import BroadcasterDep, SessionDep
from simulive.core.token import AdminDep, CurrentIdentityDep
from simulive.sessions import authoring
from simulive.sessions.guests import ensure_session_access
from simulive.sessions.ledger import ScheduledMessageDraft

router = APIRouter(tags=["sessions"])


# ============ Schemas ============

class ScheduledMessageIn(BaseModel):
    offset_seconds: int
    text: str
    sender_name: Optional[str] = None
    sender_avatar: Optional[str] = None


class ScheduledMessageOut(BaseModel):
    id: str
    offset_seconds: int
    text: str
    sender_name: str
    sender_avatar: Optional[str]
    sent: bool


class VideoOut(BaseModel):
    id: str
    title: str
    duration: int
    video_url: str
    thumbnail_url: Optional[str]


class SessionResponse(BaseModel):
    id: str
    slug: str
    title: str
    scheduled_start: str
    status: str
    created_by: str
    created_at: Optional[str]
    updated_at: Optional[str]
    video: Optional[VideoOut]
    admin_messages: Optional[List[ScheduledMessageOut]] = None


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int
    page: int
    page_size: int


class ViewerSessionListResponse(BaseModel):
    sessions: List[SessionResponse]


class SessionCreateRequest(BaseModel):
    title: str
    video_id: str
    scheduled_start: datetime
    admin_messages: List[ScheduledMessageIn] = Field(default_factory=list)


class SessionUpdateRequest(BaseModel):
    title: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    admin_messages: Optional[List[ScheduledMessageIn]] = None
    status: Optional[str] = None


class SessionDeletedResponse(BaseModel):
    id: str
    uuid: str


# ============ Helper Functions ============

def _drafts(messages: Optional[List[ScheduledMessageIn]]) -> Optional[List[ScheduledMessageDraft]]:
    if messages is None:
        return None
    return [
        ScheduledMessageDraft(
            offset_seconds=m.offset_seconds,
            text=m.text,
            sender_name=m.sender_name,
            sender_avatar=m.sender_avatar,
        )
        for m in messages
    ]


# ============ Admin ============

@router.get("/admin/sessions", response_model=SessionListResponse)
async def list_admin_sessions(
    db: SessionDep,
    _admin: AdminDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    sessions, total = await authoring.list_admin_sessions(db, page, page_size, status_filter)
    return SessionListResponse(
        sessions=[SessionResponse(**authoring.serialize_session(s, include_messages=True)) for s in sessions],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/admin/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreateRequest,
    db: SessionDep,
    broadcaster: BroadcasterDep,
    admin: AdminDep,
):
    session = await authoring.create_session(
        db,
        broadcaster,
        creator=admin,
        title=payload.title,
        video_id=payload.video_id,
        scheduled_start=payload.scheduled_start,
        messages=_drafts(payload.admin_messages),
    )
    return SessionResponse(**authoring.serialize_session(session, include_messages=True))


@router.put("/admin/sessions/{session_key}", response_model=SessionResponse)
async def update_session(
    session_key: str,
    payload: SessionUpdateRequest,
    db: SessionDep,
    broadcaster: BroadcasterDep,
    _admin: AdminDep,
):
    session = await authoring.update_session(
        db,
        broadcaster,
        session_key,
        title=payload.title,
        scheduled_start=payload.scheduled_start,
        messages=_drafts(payload.admin_messages),
        status=payload.status,
    )
    return SessionResponse(**authoring.serialize_session(session, include_messages=True))


@router.delete("/admin/sessions/{session_key}", response_model=SessionDeletedResponse)
async def delete_session(
    session_key: str,
    db: SessionDep,
    broadcaster: BroadcasterDep,
    _admin: AdminDep,
):
    return await authoring.delete_session(db, broadcaster, session_key)


# ============ Viewer ============

@router.get("/student/sessions", response_model=ViewerSessionListResponse)
async def list_viewer_sessions(
    db: SessionDep,
    identity: CurrentIdentityDep,
    limit: int = Query(50, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    sessions = await authoring.list_viewer_sessions(db, limit, status_filter)
    if identity.is_guest:
        # Guests only ever see the session they joined
        sessions = [s for s in sessions if s.id == identity.guest_session_id]
    return ViewerSessionListResponse(
        sessions=[SessionResponse(**authoring.serialize_session(s)) for s in sessions]
    )


@router.get("/sessions/{session_key}", response_model=SessionResponse)
async def get_session(session_key: str, db: SessionDep, identity: CurrentIdentityDep):
    session = await authoring.get_session_detail(db, session_key)
    await ensure_session_access(db, identity, session)
    return SessionResponse(**authoring.serialize_session(session, include_messages=identity.is_admin))

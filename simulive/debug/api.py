"""
Development helpers. Mounted only when ``settings.debug`` is on.

Registered-account login lives in an external service; these endpoints stand
in for it locally so the viewer client and the simulation script have
something to authenticate with.
"""

from fastapi import APIRouter, status
from pydantic import BaseModel

from simulive.core.deps import SessionDep
from simulive.core.errors import NotFoundError
from simulive.core.token import create_identity_token
from simulive.domain.identity import AccountRole, Identity, Registered
from simulive.models import User, Video

router = APIRouter(tags=["debug"])

FIXED_USERS = [
    {"id": "admin-1", "display_name": "Admin", "email": "admin@example.com", "role": "admin"},
    {"id": "student-1", "display_name": "Aiko", "email": "aiko@example.com", "role": "student"},
    {"id": "student-2", "display_name": "Ben", "email": "ben@example.com", "role": "student"},
]

FIXED_VIDEOS = [
    {
        "id": "video-intro",
        "title": "Introduction lecture",
        "duration": 600,
        "video_url": "https://cdn.example.com/videos/intro.mp4",
    },
]


class DebugTokenRequest(BaseModel):
    user_id: str


class DebugTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str


@router.post("/token", response_model=DebugTokenResponse)
async def issue_token(payload: DebugTokenRequest, db: SessionDep):
    """Issue an access token for an existing registered user"""
    user = await db.get(User, payload.user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": payload.user_id})

    identity = Identity(
        id=user.id,
        display_name=user.display_name,
        role=Registered(kind=AccountRole(user.role)),
        email=user.email,
    )
    return DebugTokenResponse(
        access_token=create_identity_token(identity),
        user_id=user.id,
        role=identity.role_name,
    )


@router.post("/seed", status_code=status.HTTP_201_CREATED)
async def seed_demo_data(db: SessionDep):
    """
    Seed deterministic demo users and videos. Safe to run repeatedly.
    """
    created = {"users": 0, "videos": 0}

    # 1. Users
    for u_data in FIXED_USERS:
        if await db.get(User, u_data["id"]) is None:
            db.add(User(**u_data))
            created["users"] += 1
    await db.flush()

    # 2. Videos
    for v_data in FIXED_VIDEOS:
        if await db.get(Video, v_data["id"]) is None:
            db.add(Video(uploader_id=FIXED_USERS[0]["id"], **v_data))
            created["videos"] += 1

    await db.commit()
    return {
        "created": created,
        "users": [u["id"] for u in FIXED_USERS],
        "videos": [v["id"] for v in FIXED_VIDEOS],
    }

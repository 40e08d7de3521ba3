"""
Channel authorization API
- POST /channels/auth - Sign a private/presence channel subscription
"""

from fastapi import APIRouter
from pydantic import BaseModel

from simulive.core.deps import SessionDep
from simulive.core.token import CurrentIdentityDep
from simulive.realtime.channel_auth import authorize_channel

router = APIRouter(prefix="/channels", tags=["realtime"])


class ChannelAuthRequest(BaseModel):
    socket_id: str
    channel_name: str


@router.post("/auth")
async def channel_auth(payload: ChannelAuthRequest, db: SessionDep, identity: CurrentIdentityDep):
    return await authorize_channel(db, identity, payload.socket_id, payload.channel_name)

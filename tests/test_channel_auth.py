import json

import pytest

from conftest import STUDENT, guest_identity, make_session
from simulive.core.config import settings
from simulive.core.errors import NotFoundError, PermissionError, ValidationError
from simulive.realtime.channel_auth import authorize_channel, sign_subscription, verify_subscription
from simulive.realtime.channels import (
    ChannelKind,
    channel_kind,
    presence_channel,
    session_channel,
    session_key_from_channel,
)


class TestChannelNames:
    def test_kinds_follow_prefix(self):
        assert channel_kind("presence-session-x") is ChannelKind.PRESENCE
        assert channel_kind("private-session-x") is ChannelKind.PRIVATE
        assert channel_kind("session-x") is ChannelKind.PUBLIC

    def test_session_key_extraction(self):
        assert session_key_from_channel(presence_channel("intro-1")) == "intro-1"
        assert session_key_from_channel("private-session-intro-1") == "intro-1"
        assert session_key_from_channel(session_channel("intro-1")) == "intro-1"
        assert session_key_from_channel("sessions") is None
        assert session_key_from_channel("presence-lobby") is None


class TestSignatures:
    def test_signature_uses_key_prefix_and_verifies(self):
        auth = sign_subscription("123.456", "private-session-x")

        assert auth.startswith(f"{settings.channel_auth_key}:")
        assert verify_subscription(auth, "123.456", "private-session-x")

    def test_signature_is_bound_to_socket_and_channel_data(self):
        auth = sign_subscription("123.456", "presence-session-x", '{"user_id":"u1"}')

        assert not verify_subscription(auth, "999.999", "presence-session-x", '{"user_id":"u1"}')
        assert not verify_subscription(auth, "123.456", "presence-session-x", '{"user_id":"u2"}')
        assert not verify_subscription(None, "123.456", "presence-session-x")


class TestAuthorizeChannel:
    @pytest.mark.asyncio
    async def test_presence_auth_carries_member_data(self, seeded):
        session = await make_session(seeded)
        channel = presence_channel(session.public_slug)

        payload = await authorize_channel(seeded, STUDENT, "1.2", channel)

        member = json.loads(payload["channel_data"])
        assert member["user_id"] == STUDENT.id
        assert member["user_info"]["name"] == STUDENT.display_name
        assert member["user_info"]["role"] == "student"
        assert verify_subscription(payload["auth"], "1.2", channel, payload["channel_data"])

    @pytest.mark.asyncio
    async def test_private_auth_has_no_channel_data(self, seeded):
        session = await make_session(seeded)
        payload = await authorize_channel(seeded, STUDENT, "1.2", f"private-session-{session.public_slug}")
        assert set(payload) == {"auth"}

    @pytest.mark.asyncio
    async def test_public_and_foreign_channels_are_refused(self, seeded):
        with pytest.raises(ValidationError):
            await authorize_channel(seeded, STUDENT, "1.2", "session-anything")
        with pytest.raises(PermissionError):
            await authorize_channel(seeded, STUDENT, "1.2", "private-lobby")
        with pytest.raises(NotFoundError):
            await authorize_channel(seeded, STUDENT, "1.2", "presence-session-missing")

    @pytest.mark.asyncio
    async def test_guest_cannot_join_another_session(self, seeded):
        mine = await make_session(seeded)
        other = await make_session(seeded)
        guest = guest_identity(mine.id)

        with pytest.raises(PermissionError):
            await authorize_channel(seeded, guest, "1.2", presence_channel(other.public_slug))

import json
from typing import Any, List

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import ADMIN, STUDENT, auth_headers, make_session
from simulive.core.token import create_identity_token
from simulive.main import create_app
from simulive.realtime.channel_auth import presence_member, sign_subscription
from simulive.realtime.manager import hub
from simulive.realtime.relay import dispatch_relayed
from simulive.realtime.ws import handle_client_event, handle_subscribe

PRESENCE = "presence-session-intro"


class FakeWebSocket:
    def __init__(self):
        self.sent: List[Any] = []

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    def events(self, name: str) -> List[Any]:
        return [m for m in self.sent if m["event"] == name]


@pytest.fixture
def sockets():
    registered = []

    def connect(socket_id: str) -> FakeWebSocket:
        ws = FakeWebSocket()
        hub.register(socket_id, ws)
        registered.append(socket_id)
        return ws

    yield connect
    for socket_id in registered:
        hub.sockets.pop(socket_id, None)
        for members in hub.channels.values():
            members.discard(socket_id)
    hub.channels.clear()
    hub.presence.clear()
    hub._socket_members.clear()


def presence_subscription(socket_id: str, identity) -> dict:
    channel_data = json.dumps(presence_member(identity), separators=(",", ":"))
    return {
        "channel": PRESENCE,
        "auth": sign_subscription(socket_id, PRESENCE, channel_data),
        "channel_data": channel_data,
    }


class TestSubscribeHandshake:
    @pytest.mark.asyncio
    async def test_signed_presence_subscription(self, sockets):
        admin_ws = sockets("10.1")
        student_ws = sockets("10.2")

        await handle_subscribe(hub, admin_ws, "10.1", presence_subscription("10.1", ADMIN))
        await handle_subscribe(hub, student_ws, "10.2", presence_subscription("10.2", STUDENT))

        roster = student_ws.events("subscription_succeeded")[0]["data"]["presence"]
        assert set(roster["ids"]) == {ADMIN.id, STUDENT.id}
        assert admin_ws.events("member_added")[0]["data"]["user_info"]["name"] == STUDENT.display_name

    @pytest.mark.asyncio
    async def test_signature_for_another_socket_is_refused(self, sockets):
        ws = sockets("11.1")

        await handle_subscribe(hub, ws, "11.1", presence_subscription("99.9", STUDENT))

        assert ws.events("error")[0]["data"]["code"] == "SUBSCRIPTION_DENIED"
        assert not hub.is_subscribed("11.1", PRESENCE)

    @pytest.mark.asyncio
    async def test_client_events_relay_to_other_members(self, sockets):
        first = sockets("12.1")
        second = sockets("12.2")
        await handle_subscribe(hub, first, "12.1", presence_subscription("12.1", ADMIN))
        await handle_subscribe(hub, second, "12.2", presence_subscription("12.2", STUDENT))

        await handle_client_event(
            hub, second, "12.2", "client-hand-update", PRESENCE, {"userId": STUDENT.id, "isRaised": True}
        )

        assert first.events("client-hand-update")[0]["data"] == {"userId": STUDENT.id, "isRaised": True}
        assert second.events("client-hand-update") == []

    @pytest.mark.asyncio
    async def test_client_events_need_a_subscribed_private_channel(self, sockets):
        ws = sockets("13.1")
        await handle_subscribe(hub, ws, "13.1", {"channel": "session-intro"})

        await handle_client_event(hub, ws, "13.1", "client-hand-update", "session-intro", {})
        await handle_client_event(hub, ws, "13.1", "client-hand-update", PRESENCE, {})

        assert [e["data"]["code"] for e in ws.events("error")] == ["CLIENT_EVENT_REJECTED"] * 2


@pytest.mark.asyncio
async def test_relayed_messages_reach_local_sockets(sockets):
    ws = sockets("14.1")
    await handle_subscribe(hub, ws, "14.1", {"channel": "session-relay"})

    raw = json.dumps({"channel": "session-relay", "event": "new-message", "data": {"id": "m1"}})

    assert await dispatch_relayed(hub, raw) is True
    assert await dispatch_relayed(hub, "not json") is False
    assert await dispatch_relayed(hub, json.dumps({"event": "x"})) is False
    assert ws.events("new-message")[0]["data"] == {"id": "m1"}


class TestWebsocketEndpoint:
    def test_connection_lifecycle(self):
        client = TestClient(create_app())
        token = create_identity_token(STUDENT)

        with client.websocket_connect(f"/realtime?token={token}") as ws:
            established = ws.receive_json()
            assert established["event"] == "connection_established"
            socket_id = established["data"]["socket_id"]
            assert socket_id in hub.sockets

            ws.send_json({"event": "subscribe", "data": {"channel": "session-ws-test"}})
            assert ws.receive_json() == {"event": "subscription_succeeded", "data": {}, "channel": "session-ws-test"}

            ws.send_json({"event": "subscribe", "data": {"channel": "private-session-ws-test"}})
            assert ws.receive_json()["data"]["code"] == "SUBSCRIPTION_DENIED"

            ws.send_json({"event": "ping", "data": {}})
            assert ws.receive_json()["event"] == "pong"

        assert socket_id not in hub.sockets

    def test_missing_token_is_refused(self):
        client = TestClient(create_app())

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/realtime") as ws:
                assert ws.receive_json()["data"]["code"] == "AUTH_REQUIRED"
                ws.receive_json()


class TestChannelAuthEndpoint:
    @pytest.mark.asyncio
    async def test_auth_endpoint_signs_presence(self, client, seeded):
        session = await make_session(seeded, slug="intro-sig001")
        channel = "presence-session-intro-sig001"

        response = await client.post(
            "/channels/auth",
            headers=auth_headers(STUDENT),
            json={"socket_id": "1.2", "channel_name": channel},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["auth"] == sign_subscription("1.2", channel, body["channel_data"])
        assert json.loads(body["channel_data"])["user_id"] == STUDENT.id
        assert session.public_slug == "intro-sig001"

    @pytest.mark.asyncio
    async def test_auth_endpoint_requires_token(self, client):
        response = await client.post(
            "/channels/auth", json={"socket_id": "1.2", "channel_name": "presence-session-x"}
        )
        assert response.status_code == 401

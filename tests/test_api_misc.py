from datetime import timedelta

import pytest

from conftest import make_session
from simulive.core.time import utcnow
from simulive.core.token import create_access_token, identity_from_token


@pytest.mark.asyncio
async def test_health_reports_db_and_disabled_redis(client):
    response = await client.get("/health")

    body = response.json()
    assert body["api"] == "ok"
    assert body["db"] == "ok"
    assert body["redis"] == "disabled"
    assert "x-request-id" in response.headers


@pytest.mark.asyncio
async def test_caller_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "viewer-req-1"})
    assert response.headers["x-request-id"] == "viewer-req-1"

    oversized = await client.get("/health", headers={"X-Request-ID": "x" * 100})
    assert oversized.headers["x-request-id"] != "x" * 100


@pytest.mark.asyncio
async def test_guest_login_by_slug(client, seeded):
    session = await make_session(seeded, slug="intro-guest1")

    response = await client.post(
        "/auth/guest-login", json={"name": "Visitor", "session_id": "intro-guest1", "email": "v@example.com"}
    )

    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "guest"
    assert body["user"]["session_id"] == session.id
    assert body["user"]["email"] == "v@example.com"


@pytest.mark.asyncio
async def test_guest_login_repeats_with_same_email(client, seeded):
    first = await make_session(seeded, slug="intro-guest2")
    second = await make_session(seeded, slug="intro-guest3")
    payload = {"name": "Visitor", "email": "v@example.com"}

    responses = [
        await client.post("/auth/guest-login", json={**payload, "session_id": slug})
        for slug in ("intro-guest2", "intro-guest2", "intro-guest3")
    ]

    assert [r.status_code for r in responses] == [200, 200, 200]
    users = [r.json()["user"] for r in responses]
    assert len({u["id"] for u in users}) == 3
    assert {u["email"] for u in users} == {"v@example.com"}
    assert [u["session_id"] for u in users] == [first.id, first.id, second.id]
    assert identity_from_token(responses[0].json()["token"]).email == "v@example.com"


@pytest.mark.asyncio
async def test_guest_login_rejects_ended_and_unknown_sessions(client, seeded):
    ended = await make_session(seeded, scheduled_start=utcnow() - timedelta(hours=1))

    late = await client.post("/auth/guest-login", json={"name": "Late", "session_id": ended.public_slug})
    missing = await client.post("/auth/guest-login", json={"name": "Lost", "session_id": "nowhere"})

    assert late.status_code == 422
    assert late.json()["error"]["code"] == "SESSION_ENDED"
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_debug_token_for_seeded_user(client):
    response = await client.post("/debug/token", json={"user_id": "admin-1"})

    body = response.json()
    assert body["role"] == "admin"
    assert identity_from_token(body["access_token"]).is_admin

    assert (await client.post("/debug/token", json={"user_id": "ghost"})).status_code == 404


@pytest.mark.asyncio
async def test_invalid_tokens_are_rejected(client):
    expired = create_access_token({"sub": "student-1", "role": "student"}, expires_delta=timedelta(seconds=-1))
    bad_role = create_access_token({"sub": "x", "role": "guest"})

    for token in (expired, bad_role, "not-a-jwt"):
        response = await client.get("/student/sessions", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

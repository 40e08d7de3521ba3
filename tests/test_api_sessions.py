from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_session


def future(minutes: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(minutes=minutes)).isoformat()


async def guest_login(client, session_key: str, name: str = "Visitor") -> dict:
    response = await client.post("/auth/guest-login", json={"name": name, "session_id": session_key})
    assert response.status_code == 200
    body = response.json()
    return {"Authorization": f"Bearer {body['token']}"}


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_session_with_messages(self, client, admin_headers, broadcaster):
        response = await client.post(
            "/admin/sessions",
            headers=admin_headers,
            json={
                "title": "Intro to Python",
                "video_id": "video-1",
                "scheduled_start": future(),
                "admin_messages": [
                    {"offset_seconds": 30, "text": "Questions welcome"},
                    {"offset_seconds": 0, "text": "Welcome!"},
                ],
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "scheduled"
        assert body["slug"].startswith("intro-to-python-")
        assert body["video"]["duration"] == 600
        assert [m["offset_seconds"] for m in body["admin_messages"]] == [0, 30]
        assert not any(m["sent"] for m in body["admin_messages"])
        assert broadcaster.on("sessions", "session-created")[0]["id"] == body["id"]

    @pytest.mark.asyncio
    async def test_offset_past_video_end_is_rejected(self, client, admin_headers, broadcaster):
        response = await client.post(
            "/admin/sessions",
            headers=admin_headers,
            json={
                "title": "Intro",
                "video_id": "video-1",
                "scheduled_start": future(),
                "admin_messages": [{"offset_seconds": 601, "text": "too late"}],
            },
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "INVALID_TIMESTAMP"
        assert error["details"]["field"] == "admin_messages[0].offset_seconds"
        assert broadcaster.events == []

    @pytest.mark.asyncio
    async def test_start_must_be_in_future(self, client, admin_headers):
        response = await client.post(
            "/admin/sessions",
            headers=admin_headers,
            json={"title": "Intro", "video_id": "video-1", "scheduled_start": future(-5)},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_SCHEDULE"

    @pytest.mark.asyncio
    async def test_requires_admin(self, client, student_headers):
        payload = {"title": "Intro", "video_id": "video-1", "scheduled_start": future()}

        assert (await client.post("/admin/sessions", json=payload)).status_code == 401
        assert (await client.post("/admin/sessions", headers=student_headers, json=payload)).status_code == 403


class TestUpdate:
    @pytest.mark.asyncio
    async def test_reschedule_resets_live_session(self, client, seeded, admin_headers, broadcaster):
        session = await make_session(
            seeded,
            scheduled_start=datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=30),
            status="live",
        )

        response = await client.put(
            f"/admin/sessions/{session.public_slug}",
            headers=admin_headers,
            json={"scheduled_start": future(60)},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "scheduled"
        detail = await client.get(f"/sessions/{session.id}", headers=admin_headers)
        assert detail.json()["status"] == "scheduled"

        viewer_update = broadcaster.on(f"session-{session.public_slug}", "session-updated")[0]
        assert viewer_update["status"] == "scheduled"
        assert "admin_messages" not in viewer_update

    @pytest.mark.asyncio
    async def test_reschedule_reopens_manually_ended_session(self, client, seeded, admin_headers):
        session = await make_session(
            seeded,
            scheduled_start=datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(minutes=2),
            status="ended",
            messages=[(5, "again")],
        )

        response = await client.put(
            f"/admin/sessions/{session.id}",
            headers=admin_headers,
            json={"scheduled_start": future(60)},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "scheduled"
        await seeded.refresh(session)
        assert session.status == "scheduled"
        detail = await client.get(f"/sessions/{session.public_slug}", headers=admin_headers)
        assert detail.json()["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_replacing_messages_rearms_them(self, client, seeded, admin_headers):
        session = await make_session(seeded, messages=[(5, "old")])

        response = await client.put(
            f"/admin/sessions/{session.id}",
            headers=admin_headers,
            json={"admin_messages": [{"offset_seconds": 10, "text": "new", "sender_name": "Coach"}]},
        )

        messages = response.json()["admin_messages"]
        assert [(m["offset_seconds"], m["text"], m["sender_name"], m["sent"]) for m in messages] == [
            (10, "new", "Coach", False)
        ]

    @pytest.mark.asyncio
    async def test_invalid_edit_writes_nothing(self, client, seeded, admin_headers):
        session = await make_session(seeded, messages=[(5, "keep")])

        response = await client.put(
            f"/admin/sessions/{session.id}",
            headers=admin_headers,
            json={
                "title": "Renamed",
                "admin_messages": [{"offset_seconds": 5, "text": "a"}, {"offset_seconds": 5, "text": "b"}],
            },
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "DUPLICATE_TIMESTAMP"
        detail = (await client.get(f"/sessions/{session.id}", headers=admin_headers)).json()
        assert detail["title"] == "Lecture"
        assert [m["text"] for m in detail["admin_messages"]] == ["keep"]

    @pytest.mark.asyncio
    async def test_manual_end_purges_guests(self, client, seeded, admin_headers, broadcaster):
        session = await make_session(seeded)
        guest = await guest_login(client, session.public_slug)
        assert (await client.get(f"/sessions/{session.public_slug}", headers=guest)).status_code == 200

        response = await client.put(
            f"/admin/sessions/{session.public_slug}",
            headers=admin_headers,
            json={"status": "ended"},
        )

        assert response.json()["status"] == "ended"
        assert broadcaster.on(f"session-{session.public_slug}", "session-updated")[-1]["status"] == "ended"
        assert (await client.get(f"/sessions/{session.public_slug}", headers=guest)).status_code == 401

    @pytest.mark.asyncio
    async def test_only_end_status_is_accepted(self, client, seeded, admin_headers):
        session = await make_session(seeded)
        response = await client.put(
            f"/admin/sessions/{session.id}", headers=admin_headers, json={"status": "live"}
        )
        assert response.status_code == 422


class TestDeleteAndList:
    @pytest.mark.asyncio
    async def test_delete_cascades(self, client, seeded, admin_headers, broadcaster):
        session = await make_session(seeded, messages=[(5, "hi")])
        guest = await guest_login(client, session.public_slug)
        await client.post(
            "/chat/send", headers=guest, json={"sessionId": session.public_slug, "message": "hello"}
        )

        response = await client.delete(f"/admin/sessions/{session.public_slug}", headers=admin_headers)

        assert response.json() == {"id": session.public_slug, "uuid": session.id}
        assert (await client.get(f"/sessions/{session.id}", headers=admin_headers)).status_code == 404
        assert broadcaster.on("sessions", "session-deleted") == [{"id": session.public_slug, "uuid": session.id}]
        assert broadcaster.on(f"session-{session.public_slug}", "session-deleted")

    @pytest.mark.asyncio
    async def test_admin_list_filters_on_reconciled_status(self, client, seeded, admin_headers):
        past = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=30)
        live = await make_session(seeded, scheduled_start=past)
        await make_session(seeded)

        response = await client.get("/admin/sessions", headers=admin_headers, params={"status": "live"})

        body = response.json()
        assert body["total"] == 1
        assert [s["id"] for s in body["sessions"]] == [live.id]

        everything = (await client.get("/admin/sessions", headers=admin_headers)).json()
        assert everything["total"] == 2
        assert everything["page"] == 1

    @pytest.mark.asyncio
    async def test_viewer_list_hides_messages_and_scopes_guests(self, client, seeded, student_headers):
        mine = await make_session(seeded, messages=[(5, "secret")])
        await make_session(seeded)
        guest = await guest_login(client, mine.public_slug)

        student_view = (await client.get("/student/sessions", headers=student_headers)).json()
        guest_view = (await client.get("/student/sessions", headers=guest)).json()

        assert len(student_view["sessions"]) == 2
        assert all(s["admin_messages"] is None for s in student_view["sessions"])
        assert [s["id"] for s in guest_view["sessions"]] == [mine.id]

    @pytest.mark.asyncio
    async def test_guest_cannot_read_other_sessions(self, client, seeded):
        mine = await make_session(seeded)
        other = await make_session(seeded)
        guest = await guest_login(client, mine.public_slug)

        assert (await client.get(f"/sessions/{other.public_slug}", headers=guest)).status_code == 403

    @pytest.mark.asyncio
    async def test_bad_status_filter(self, client, admin_headers):
        response = await client.get("/admin/sessions", headers=admin_headers, params={"status": "paused"})
        assert response.status_code == 422

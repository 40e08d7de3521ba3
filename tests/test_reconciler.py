from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import make_session
from simulive.core.errors import NotFoundError
from simulive.core.time import utcnow
from simulive.models import ClassSession
from simulive.sessions import reconciler
from simulive.sessions.reconciler import reconcile, reconcile_open_sessions
from simulive.sessions.resolver import find_session, looks_like_session_id, resolve_session


async def _persisted_status(session_factory, session_id: str) -> str:
    async with session_factory() as fresh:
        return (
            await fresh.execute(select(ClassSession.status).where(ClassSession.id == session_id))
        ).scalar_one()


class TestResolver:
    @pytest.mark.asyncio
    async def test_slug_and_id_resolve_to_same_row(self, seeded):
        session = await make_session(seeded, slug="intro-abc123")

        by_slug = await resolve_session(seeded, "intro-abc123")
        by_id = await resolve_session(seeded, session.id)

        assert by_slug.id == by_id.id == session.id

    @pytest.mark.asyncio
    async def test_unknown_key_raises_not_found(self, seeded):
        with pytest.raises(NotFoundError):
            await resolve_session(seeded, "no-such-session")

    @pytest.mark.asyncio
    async def test_non_uuid_keys_skip_the_id_lookup(self, seeded):
        assert await find_session(seeded, "") is None
        assert not looks_like_session_id("intro-abc123")
        assert looks_like_session_id("0b7c6f3e-2d7a-4d8e-9a57-2b8c0c1f4e21")


class TestReconcile:
    @pytest.mark.asyncio
    async def test_live_session_is_written_back(self, seeded, session_factory):
        start = utcnow() - timedelta(seconds=30)
        session = await make_session(seeded, scheduled_start=start)

        await reconcile(seeded, session)

        assert session.status == "live"
        assert await _persisted_status(session_factory, session.id) == "live"

    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(self, seeded, session_factory):
        start = utcnow() - timedelta(seconds=30)
        session = await make_session(seeded, scheduled_start=start)
        now = utcnow()

        first = (await reconcile(seeded, session, now)).status
        second = (await reconcile(seeded, session, now)).status

        assert first == second == "live"
        assert await _persisted_status(session_factory, session.id) == "live"

    @pytest.mark.asyncio
    async def test_finished_video_ends_session(self, seeded):
        start = utcnow() - timedelta(seconds=601)
        session = await make_session(seeded, scheduled_start=start, status="live")

        await reconcile(seeded, session)

        assert session.status == "ended"

    @pytest.mark.asyncio
    async def test_manual_end_is_not_reopened(self, seeded):
        start = utcnow() - timedelta(seconds=30)
        session = await make_session(seeded, scheduled_start=start, status="ended")

        await reconcile(seeded, session)

        assert session.status == "ended"

    @pytest.mark.asyncio
    async def test_write_back_failure_still_returns_computed_status(self, seeded, session_factory, monkeypatch):
        start = utcnow() - timedelta(seconds=30)
        session = await make_session(seeded, scheduled_start=start)

        async def broken_commit():
            raise RuntimeError("datastore unavailable")

        monkeypatch.setattr(seeded, "commit", broken_commit)
        result = await reconcile(seeded, session)

        assert result.status == "live"
        assert await _persisted_status(session_factory, session.id) == "scheduled"

    @pytest.mark.asyncio
    async def test_reconcile_open_sessions_counts_changes(self, seeded):
        past = utcnow() - timedelta(seconds=30)
        await make_session(seeded, scheduled_start=past)
        await make_session(seeded, scheduled_start=past, status="ended")
        await make_session(seeded)

        assert await reconcile_open_sessions(seeded) == 1
        assert await reconcile_open_sessions(seeded) == 0

    def test_reconciled_status_without_write(self):
        session = ClassSession(status="scheduled", scheduled_start=utcnow() + timedelta(hours=1))
        session.video = None
        assert reconciler.reconciled_status(session).value == "scheduled"

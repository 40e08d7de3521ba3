"""
Pytest configuration.

Settings are read from the environment when ``simulive.core.config`` is first
imported, so the test environment is pinned before any application import.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["BROADCAST_BACKEND"] = "LOCAL"
os.environ["RATE_LIMIT_BACKEND"] = "MEMORY"
os.environ["DEBUG"] = "true"

from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence, Tuple
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from simulive.chat.ratelimit import MemoryRateLimiter, get_rate_limiter
from simulive.core.time import utcnow
from simulive.core.token import create_identity_token
from simulive.domain.identity import AccountRole, Guest, Identity, Registered
from simulive.infra.db import get_db
from simulive.main import create_app
from simulive.models import Base, ClassSession, ScheduledMessage, User, Video
from simulive.realtime.broadcaster import Broadcaster, get_broadcaster

# ============================================================================
# Broadcast doubles
# ============================================================================


class RecordingBroadcaster(Broadcaster):
    """Keeps every publish call in order"""

    def __init__(self):
        self.events: List[Tuple[str, str, Any, Optional[str]]] = []

    async def publish(self, channel, event, data, exclude_socket=None) -> None:
        self.events.append((channel, event, data, exclude_socket))

    def on(self, channel: str, event: Optional[str] = None) -> List[Any]:
        return [d for c, e, d, _ in self.events if c == channel and (event is None or e == event)]


class FailingBroadcaster(Broadcaster):
    def __init__(self):
        self.attempts = 0

    async def publish(self, channel, event, data, exclude_socket=None) -> None:
        self.attempts += 1
        raise RuntimeError("fabric down")


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# Seed data
# ============================================================================

ADMIN = Identity(
    id="admin-1",
    display_name="Admin",
    role=Registered(kind=AccountRole.ADMIN),
    email="admin@example.com",
)
STUDENT = Identity(
    id="student-1",
    display_name="Aiko",
    role=Registered(kind=AccountRole.STUDENT),
    email="aiko@example.com",
)

VIDEO_DURATION = 600


@pytest_asyncio.fixture
async def seeded(db):
    db.add_all(
        [
            User(id=ADMIN.id, display_name=ADMIN.display_name, email=ADMIN.email, role="admin"),
            User(id=STUDENT.id, display_name=STUDENT.display_name, email=STUDENT.email, role="student"),
        ]
    )
    await db.flush()
    db.add_all(
        [
            Video(
                id="video-1",
                title="Lecture",
                duration=VIDEO_DURATION,
                video_url="https://cdn.example.com/lecture.mp4",
                uploader_id=ADMIN.id,
            ),
            Video(
                id="video-open",
                title="Open-ended stream",
                duration=None,
                video_url="https://cdn.example.com/open.mp4",
                uploader_id=ADMIN.id,
            ),
        ]
    )
    await db.commit()
    return db


async def make_session(
    db: AsyncSession,
    scheduled_start: Optional[datetime] = None,
    video_id: str = "video-1",
    slug: Optional[str] = None,
    status: str = "scheduled",
    messages: Sequence[Tuple[int, str]] = (),
) -> ClassSession:
    """Insert a session directly, bypassing the future-start rule"""
    session_id = str(uuid4())
    session = ClassSession(
        id=session_id,
        public_slug=slug or f"lecture-{uuid4().hex[:6]}",
        title="Lecture",
        scheduled_start=scheduled_start or utcnow() + timedelta(hours=1),
        video_id=video_id,
        status=status,
        created_by=ADMIN.id,
    )
    db.add(session)
    await db.flush()
    db.add_all(
        [
            ScheduledMessage(
                id=f"sm_{uuid4().hex[:16]}",
                session_id=session_id,
                offset_seconds=offset,
                text=text,
                sender_name="Admin",
            )
            for offset, text in messages
        ]
    )
    await db.commit()
    await db.refresh(session)
    return session


# ============================================================================
# Tokens
# ============================================================================


def auth_headers(identity: Identity) -> dict:
    return {"Authorization": f"Bearer {create_identity_token(identity)}"}


def guest_identity(session_id: str, user_id: str = "guest_1", name: str = "Visitor") -> Identity:
    return Identity(id=user_id, display_name=name, role=Guest(session_id=session_id))


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN)


@pytest.fixture
def student_headers():
    return auth_headers(STUDENT)


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def limiter():
    return MemoryRateLimiter(limit=10, window_seconds=60, enabled=True)


@pytest.fixture
def app(session_factory, broadcaster, limiter):
    application = create_app()

    async def _get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = _get_db
    application.dependency_overrides[get_broadcaster] = lambda: broadcaster
    application.dependency_overrides[get_rate_limiter] = lambda: limiter
    return application


@pytest_asyncio.fixture
async def client(app, seeded):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

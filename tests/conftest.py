"""
Shared test fixtures.

The auth service is exercised against in-memory stand-ins for its
collaborators (magic link store, user store, mailer, Redis pipeline), so
these tests run without Postgres or Redis. Repository tests that need a
real database live in test_repository.py and skip when it is absent.
"""

import asyncio
import os
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Must be set before app modules read settings.
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-at-least-32-characters-long")

from app.core.errors import EmailDeliveryError
from app.db.models import MagicLink, MagicLinkIntent, User
from app.db.postgres import get_db_session
from app.db.redis import get_redis
from app.main import app
from app.modules.auth.mailer import get_mailer
from app.modules.auth.router import get_magic_link_service, get_magic_link_store, get_user_store
from app.modules.auth.service import MagicLinkService


class InMemoryMagicLinkStore:
    def __init__(self):
        self.records: list[MagicLink] = []
        self._lock = asyncio.Lock()

    async def find_active_by_email(self, email: str, now: datetime) -> MagicLink | None:
        active = [
            r for r in self.records if r.email == email and not r.consumed and r.expires_at > now
        ]
        return max(active, key=lambda r: r.created_at) if active else None

    async def invalidate_all_for_email(self, email: str, now: datetime) -> int:
        count = 0
        for record in self.records:
            if record.email == email and not record.consumed:
                record.consumed = True
                record.consumed_at = now
                count += 1
        return count

    async def insert(self, magic_link: MagicLink) -> MagicLink:
        if any(r.token_hash == magic_link.token_hash for r in self.records):
            raise ValueError("duplicate token")
        magic_link.id = uuid.uuid4()
        self.records.append(magic_link)
        return magic_link

    async def find_and_consume_by_token(self, token_hash: str, now: datetime) -> MagicLink | None:
        async with self._lock:
            for record in self.records:
                if record.token_hash == token_hash and not record.consumed and record.expires_at > now:
                    # yield inside the critical section so racing callers interleave here
                    await asyncio.sleep(0)
                    record.consumed = True
                    record.consumed_at = now
                    return record
        return None

    def for_email(self, email: str) -> list[MagicLink]:
        return [r for r in self.records if r.email == email]


class InMemoryUserStore:
    def __init__(self):
        self.users: dict[str, User] = {}

    async def get_by_email(self, email: str) -> User | None:
        return self.users.get(email)

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return next((u for u in self.users.values() if u.id == user_id), None)

    async def create(self, email: str, name: str | None, verified_at: datetime | None) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email,
            name=name,
            email_verified_at=verified_at,
            created_at=datetime.now(timezone.utc),
        )
        self.users[email] = user
        return user


class RecordingMailer:
    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send_verification_email(
        self,
        to_address: str,
        token: str,
        intent: MagicLinkIntent,
        display_name: str | None = None,
    ) -> None:
        if self.fail:
            raise EmailDeliveryError("Could not send verification email", code="email_delivery_failed")
        self.sent.append(
            {"to": to_address, "token": token, "intent": intent, "name": display_name}
        )


class FakeRedisPipeline:
    def __init__(self, store: dict[str, int]):
        self.store = store
        self.ops: list = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, seconds):
        self.ops.append(("expire", key))

    async def execute(self):
        results = []
        for op, key in self.ops:
            if op == "incr":
                self.store[key] = self.store.get(key, 0) + 1
                results.append(self.store[key])
            else:
                results.append(True)
        return results


class FakeRedis:
    def __init__(self):
        self.counters: dict[str, int] = {}

    def pipeline(self):
        return FakeRedisPipeline(self.counters)


class FrozenClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def magic_link_store() -> InMemoryMagicLinkStore:
    return InMemoryMagicLinkStore()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def service(magic_link_store, clock) -> MagicLinkService:
    return MagicLinkService(magic_link_store, ttl=timedelta(minutes=15), clock=clock)


@pytest.fixture
def db_session() -> AsyncMock:
    return AsyncMock()


@pytest_asyncio.fixture
async def client(magic_link_store, user_store, mailer, fake_redis, db_session) -> AsyncIterator[AsyncClient]:
    """HTTP client wired to in-memory collaborators."""

    async def _session():
        yield db_session

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_magic_link_store] = lambda: magic_link_store
    app.dependency_overrides[get_user_store] = lambda: user_store
    app.dependency_overrides[get_magic_link_service] = lambda: MagicLinkService(magic_link_store)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

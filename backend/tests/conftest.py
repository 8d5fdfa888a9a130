"""
Pytest configuration for Davinci backend tests.

The app runs in-process over httpx's ASGI transport against an in-memory
SQLite database and a fake Redis.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-at-least-32-chars")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import uuid
from dataclasses import dataclass, field
from typing import Any

import fakeredis.aioredis
import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from davinci.core.database import get_db
from davinci.core.dependencies import get_avatar_storage, get_redis
from davinci.core.storage import AvatarStorage
from davinci.main import app
from davinci.models import Base
from davinci.workers import email_tasks


@dataclass
class SentInvitations:
    """Stand-in for the Celery task; records every .delay() call."""

    calls: list[dict[str, Any]] = field(default_factory=list)

    def delay(self, **kwargs: Any) -> None:
        self.calls.append(kwargs)

    def token_for(self, email: str) -> str:
        for call in reversed(self.calls):
            if call["to_email"] == email:
                return call["invitation_token"]
        raise AssertionError(f"No invitation sent to {email}")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def redis():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def storage(tmp_path) -> AvatarStorage:
    return AvatarStorage(root=str(tmp_path / "userfiles"), url_prefix="/image")


@pytest.fixture
def sent_invitations(monkeypatch) -> SentInvitations:
    recorder = SentInvitations()
    monkeypatch.setattr(email_tasks, "send_invitation_email", recorder)
    return recorder


@pytest.fixture
async def client(session_factory, redis, storage, sent_invitations):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_avatar_storage] = lambda: storage

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@dataclass
class Account:
    id: str
    username: str
    email: str
    headers: dict[str, str]


def unique_name(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


async def register(client: httpx.AsyncClient, prefix: str, password: str = "password123") -> Account:
    username = unique_name(prefix)
    email = f"{username}@example.com"
    resp = await client.post("/api/v1/auth/register", json={
        "username": username,
        "email": email,
        "password": password,
        "name": prefix.title(),
    })
    assert resp.status_code == 201, f"Register failed: {resp.text}"
    headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

    me = await client.get("/api/v1/auth/me", headers=headers)
    assert me.status_code == 200, f"Me failed: {me.text}"
    return Account(id=me.json()["id"], username=username, email=email, headers=headers)


async def create_org(client: httpx.AsyncClient, owner: Account, name: str | None = None) -> dict:
    resp = await client.post(
        "/api/v1/organizations",
        json={"name": name or unique_name("org"), "description": "test organization"},
        headers=owner.headers,
    )
    assert resp.status_code == 201, f"Create org failed: {resp.text}"
    return resp.json()


async def add_members(client: httpx.AsyncClient, owner: Account, org_id: str, *members: Account) -> dict:
    """Add members directly (no email confirmation)."""
    resp = await client.post(
        f"/api/v1/organizations/{org_id}/members/invite",
        json={"members": [m.id for m in members], "need_confirm": False},
        headers=owner.headers,
    )
    assert resp.status_code == 200, f"Add members failed: {resp.text}"
    return resp.json()


async def get_org(client: httpx.AsyncClient, account: Account, org_id: str) -> dict:
    resp = await client.get(f"/api/v1/organizations/{org_id}", headers=account.headers)
    assert resp.status_code == 200, f"Get org failed: {resp.text}"
    return resp.json()


async def members_of(client: httpx.AsyncClient, account: Account, org_id: str) -> list[dict]:
    resp = await client.get(f"/api/v1/organizations/{org_id}/members", headers=account.headers)
    assert resp.status_code == 200, f"List members failed: {resp.text}"
    return resp.json()

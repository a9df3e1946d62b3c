"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database with the schema created
and the badge catalog seeded. Redis is disabled (``None``) unless a test
injects its own double.
"""

from __future__ import annotations

import os

os.environ.setdefault("COLINK_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("COLINK_JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("COLINK_LOG_FORMAT", "console")
os.environ.setdefault("COLINK_AUTO_CREATE_SCHEMA", "true")

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from colink.config import get_settings  # noqa: E402
from colink.database import close_db, create_schema, get_session, init_db  # noqa: E402
from colink.dependencies import get_redis_dep  # noqa: E402
from colink.gamification.seed import seed_badges  # noqa: E402
from colink.main import create_app  # noqa: E402

PASSWORD = "Passw0rdSecure"

RegisterFn = Callable[..., Awaitable[dict[str, Any]]]


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema and badge catalog for one test."""
    get_settings.cache_clear()
    await init_db(get_settings().database_url)
    await create_schema()
    async for session in get_session():
        await seed_badges(session)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for service-level tests."""
    async for session in get_session():
        yield session


@pytest.fixture
def app(database: None) -> FastAPI:
    """Application with realtime publishing disabled."""
    application = create_app()

    async def _no_redis() -> AsyncGenerator[None, None]:
        yield None

    application.dependency_overrides[get_redis_dep] = _no_redis
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client bound to the ASGI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client: AsyncClient) -> RegisterFn:
    """Factory registering an account through the API.

    Returns a dict with ``id``, ``email``, ``token`` and ready-made ``headers``.
    """

    async def _register(
        email: str,
        *,
        role: str = "student",
        display_name: str | None = None,
        password: str = PASSWORD,
    ) -> dict[str, Any]:
        response = await client.post("/api/v1/auth/register", json={
            "email": email,
            "password": password,
            "display_name": display_name or email.split("@")[0].title(),
            "role": role,
        })
        assert response.status_code == 201, response.text
        data = response.json()
        return {
            "id": data["user"]["id"],
            "email": email,
            "password": password,
            "token": data["access_token"],
            "headers": auth_headers(data["access_token"]),
        }

    return _register


@pytest_asyncio.fixture
async def student(register: RegisterFn) -> dict[str, Any]:
    return await register("alice@coventry.ac.uk", display_name="Alice")


@pytest_asyncio.fixture
async def other_student(register: RegisterFn) -> dict[str, Any]:
    return await register("bob@coventry.ac.uk", display_name="Bob")


@pytest_asyncio.fixture
async def professor(register: RegisterFn) -> dict[str, Any]:
    return await register("prof.grey@coventry.ac.uk", role="professor", display_name="Prof Grey")


@pytest.fixture
def create_quest(client: AsyncClient, professor: dict[str, Any]) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Factory creating a quest as the ``professor`` fixture. Published by default."""

    async def _create(title: str = "Intro Quiz", xp_reward: int = 100, **fields: Any) -> dict[str, Any]:
        body = {"title": title, "xp_reward": xp_reward, "is_published": True, **fields}
        response = await client.post("/api/v1/quests", json=body, headers=professor["headers"])
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[Any]]:
    """Factory creating a committed user directly through the auth service."""
    from colink.auth.service import register_user
    from colink.auth.session import Role

    async def _make(email: str, *, role: Role = Role.STUDENT, display_name: str | None = None) -> Any:
        user = await register_user(
            db_session, email, PASSWORD, display_name or email.split("@")[0].title(), role,
        )
        await db_session.commit()
        return user

    return _make

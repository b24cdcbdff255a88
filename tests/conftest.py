"""Pytest configuration and shared fixtures.

Each test runs against its own SQLite database file, created from the
ORM metadata, so tests never share rows.
"""

import os
import uuid
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Set testing mode BEFORE importing the app (NullPool, no rate limits)
os.environ["TESTING"] = "true"

from wakecheck.config import settings

settings.testing = True

from wakecheck.core.security import create_access_token
from wakecheck.database import get_engine, get_session_maker, reset_database
from wakecheck.main import app
from wakecheck.models import Base, Friend, User
from wakecheck.services.users import create_user


@pytest_asyncio.fixture(autouse=True)
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """Fresh schema in a per-test SQLite file."""
    settings.database_url = f"sqlite+aiosqlite:///{tmp_path / 'wakecheck.db'}"
    await reset_database()
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await reset_database()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    async with get_session_maker()() as session:
        yield session


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


def random_phone() -> str:
    """A random 10-digit domestic number."""
    return "415" + str(uuid.uuid4().int)[:7]


async def make_user(
    db: AsyncSession,
    name: str = "Alex",
    *,
    phone: str | None = None,
    push_token: str | None = "device-token",
) -> User:
    return await create_user(
        db,
        phone_number=phone or random_phone(),
        display_name=name,
        push_token=push_token,
    )


async def make_friends(db: AsyncSession, user: User, other: User) -> uuid.UUID:
    """Create both friend rows directly; returns the shared edge id."""
    edge_id = uuid.uuid4()
    db.add_all(
        [
            Friend(
                edge_id=edge_id,
                user_id=user.id,
                friend_user_id=other.id,
                display_name=other.display_name,
            ),
            Friend(
                edge_id=edge_id,
                user_id=other.id,
                friend_user_id=user.id,
                display_name=user.display_name,
            ),
        ]
    )
    await db.commit()
    return edge_id


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}

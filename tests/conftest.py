"""Shared test fixtures for the recipe feed tests."""

from __future__ import annotations

import os
from typing import AsyncGenerator

# Keep the OTLP exporter out of unit tests; must happen before settings load
os.environ.setdefault("OTEL_ENABLED", "false")

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from recipe_feed.clients.redis_client import FeedPartitions
from recipe_feed.database import Base
from recipe_feed.engine.activities import ActivityStore
from recipe_feed.engine.dispatcher import FanOutDispatcher
from recipe_feed.engine.graph import FollowGraph
from recipe_feed.models import User
from recipe_feed.schemas import ActivityKind, ActivityPayload

# Use in-memory SQLite for tests (faster, no external dependencies)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh async engine with the schema for one test.

    StaticPool makes every connection share the same in-memory database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide an isolated database session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def redis_server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def redis(redis_server):
    client = FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def feeds(redis) -> FeedPartitions:
    return FeedPartitions(redis)


@pytest.fixture
def graph(db_session) -> FollowGraph:
    return FollowGraph(db_session)


@pytest.fixture
def activity_store(db_session) -> ActivityStore:
    return ActivityStore(db_session)


@pytest.fixture
def dispatcher(graph, activity_store, feeds) -> FanOutDispatcher:
    return FanOutDispatcher(graph, activity_store, feeds, max_batch=500, parallelism=2)


@pytest.fixture
def make_user(db_session):
    """Factory that inserts users directly through the ORM."""

    async def _make(username: str, display_name: str | None = None) -> User:
        user = User(
            username=username,
            display_name=display_name or username.title(),
            following_count=0,
            followers_count=0,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def payload():
    """Factory for recipe activity payloads."""

    def _make(entity_id: str = "r1", title: str = "Tomato Soup", **overrides) -> ActivityPayload:
        fields = {
            "kind": ActivityKind.RECIPE_CREATED,
            "author_display_name": "Alice",
            "entity_id": entity_id,
            "entity_title": title,
        }
        fields.update(overrides)
        return ActivityPayload(**fields)

    return _make


@pytest_asyncio.fixture
async def client(session_factory, redis) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with both stores overridden."""
    from recipe_feed.clients.redis_client import get_redis
    from recipe_feed.database import get_db
    from recipe_feed.main import app

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = lambda: redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

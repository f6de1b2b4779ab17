"""Shared test fixtures for the Engagement Tracker backend.

Provides:
- Async PostgreSQL test database (session-scoped engine, per-test rollback)
- In-memory persistence and session registry for tests that need no database
- FastAPI test client wired to the in-memory registry
- Factory helpers for milestones and engagements
"""

from __future__ import annotations

import os
import uuid

# Set test environment BEFORE any app imports so Settings() picks them up.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

import asyncio
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from app.models.base import Base
from app.schemas.engagement import Engagement, Milestone, MilestoneStage, StageHistoryEntry
from app.services.editing_session import SessionRegistry
from app.services.persistence import MemoryPersistence

# Short timers keep autosave/celebration tests fast
TEST_DEBOUNCE_SECONDS = 0.02
TEST_CELEBRATION_DELAY_SECONDS = 0.02

# ---------------------------------------------------------------------------
# Database engine
# ---------------------------------------------------------------------------


def _test_db_url() -> str:
    user = os.getenv("POSTGRES_USER", "engagements")
    password = os.getenv("POSTGRES_PASSWORD", "engagements")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("TEST_POSTGRES_DB", "engagements_test")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine and all tables. Drops tables at teardown.

    Sync fixture so the engine is not bound to one event loop; NullPool opens
    a fresh asyncpg connection on whichever loop the test runs.
    """
    url = _test_db_url()
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async def _setup():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def _teardown():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    try:
        asyncio.run(_setup())
    except Exception as exc:
        asyncio.run(engine.dispose())
        pytest.skip(f"Test database not available ({exc})")

    yield engine

    asyncio.run(_teardown())


# ---------------------------------------------------------------------------
# Per-test transactional session (savepoint rollback pattern)
# ---------------------------------------------------------------------------


@pytest.fixture
async def db(test_engine):
    """Provide a transactional session that rolls back after each test.

    Code under test may call ``session.commit()``; that only releases the
    current savepoint and a listener opens the next one. The outer transaction
    is rolled back at teardown.
    """
    conn = await test_engine.connect()
    trans = await conn.begin()
    session = AsyncSession(bind=conn, expire_on_commit=False)

    await conn.begin_nested()

    @sa_event.listens_for(session.sync_session, "after_transaction_end")
    def _restart_savepoint(sess, transaction):
        if conn.closed or conn.invalidated:
            return
        if not conn.in_nested_transaction():
            conn.sync_connection.begin_nested()

    yield session

    await session.close()
    await trans.rollback()
    await conn.close()


@pytest.fixture
def db_session_factory(db):
    """Session factory for ``DatabasePersistence`` that always hands out ``db``."""

    @asynccontextmanager
    async def _factory():
        yield db

    return _factory


# ---------------------------------------------------------------------------
# In-memory persistence + editing sessions
# ---------------------------------------------------------------------------


@pytest.fixture
def persistence():
    return MemoryPersistence()


@pytest.fixture
async def sessions(persistence):
    registry = SessionRegistry(
        persistence,
        debounce_seconds=TEST_DEBOUNCE_SECONDS,
        celebration_delay_seconds=TEST_CELEBRATION_DELAY_SECONDS,
    )
    yield registry
    await registry.close_all()


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def app(sessions):
    """Minimal FastAPI test app backed by the in-memory session registry."""
    from fastapi import FastAPI
    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    from app.api.v1.router import api_router
    from app.config import settings
    from app.core.rate_limit import limiter

    test_app = FastAPI()
    test_app.state.limiter = limiter
    test_app.state.sessions = sessions
    test_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    test_app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    yield test_app


@pytest.fixture
async def client(app):
    """HTTP test client for the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting during tests to avoid 429 responses."""
    from app.core.rate_limit import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def make_milestone(
    *,
    name="Kick-Off",
    stage=MilestoneStage.NOT_STARTED,
    history=None,
    untracked=False,
    **kwargs,
) -> Milestone:
    """Build a milestone.

    ``history`` is a list of ``(stage, date)`` pairs. By default the milestone
    is tracked with a single entry for its current stage; ``untracked=True``
    leaves ``stage_history`` unset like pre-tracking data.
    """
    if untracked:
        stage_history = None
    elif history is None:
        stage_history = [StageHistoryEntry(stage=stage, date=kwargs.get("due_date", "2025-01-10"))]
    else:
        stage_history = [StageHistoryEntry(stage=s, date=d) for s, d in history]
    return Milestone(
        id=kwargs.pop("id", None) or uuid.uuid4().hex,
        name=name,
        stage=stage,
        stage_history=stage_history,
        **kwargs,
    )


def make_engagement(*, milestones=None, **kwargs) -> Engagement:
    return Engagement(
        id=kwargs.pop("id", None) or f"eng-{uuid.uuid4().hex[:8]}",
        name=kwargs.pop("name", "Acme Rollout"),
        account_name=kwargs.pop("account_name", "Acme Corp"),
        start_date=kwargs.pop("start_date", "2025-01-10"),
        milestones=milestones if milestones is not None else [make_milestone()],
        **kwargs,
    )

"""Pytest configuration and fixtures for Replyscope Core tests.

This module provides fixtures for:
- Database: SQLite in-memory with SAVEPOINT support
- HTTP client: AsyncClient for FastAPI testing
- Mocks: event bus, Redis and the scrape client
"""

from collections.abc import AsyncGenerator, Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from replyscope_core.config import Settings
from replyscope_core.domain.models import Base


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        mysql_url="sqlite+pysqlite:///:memory:",
        redis_url="redis://localhost:6379/15",  # Use DB 15 for tests
        celery_broker_url="memory://",
        celery_result_backend="cache+memory://",
        session_expire_hours=1,
        apify_token="test-apify-token",
        gemini_api_key=None,
        report_rate_limit=3,
        report_rate_window_seconds=60,
        workflow_step_max_retries=2,
        scrape_page_cap=100,
        scrape_cap_multiplier=3,
        log_json=False,
    )


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support and let SQLAlchemy own transaction
    # boundaries so that SAVEPOINTs (begin_nested) work under pysqlite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    # SQLite only supports autoincrement on INTEGER PRIMARY KEY
    from sqlalchemy.dialects import sqlite

    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    Base.metadata.create_all(bind=engine)

    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Mock Fixtures for External Services
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_event_bus() -> MagicMock:
    """Event bus that records emitted events instead of sending tasks."""
    bus = MagicMock()
    bus.emit.return_value = "test-task-id"
    bus.emit_many.side_effect = lambda name, payloads: len(list(payloads))
    return bus


@pytest.fixture
def mock_redis() -> MagicMock:
    """In-memory stand-in for the Redis sorted set operations."""
    zsets: dict[str, dict[str, float]] = {}
    redis_client = MagicMock()

    def zadd(key, mapping):
        members = zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in members)
        members.update(mapping)
        return added

    def zrem(key, *members):
        existing = zsets.get(key, {})
        return sum(1 for member in members if existing.pop(member, None) is not None)

    def zcard(key):
        return len(zsets.get(key, {}))

    def zscore(key, member):
        return zsets.get(key, {}).get(member)

    def zremrangebyscore(key, min, max):
        low = float(min)
        high = float(max)
        existing = zsets.get(key, {})
        expired = [m for m, score in existing.items() if low <= score <= high]
        for member in expired:
            del existing[member]
        return len(expired)

    redis_client.zadd.side_effect = zadd
    redis_client.zrem.side_effect = zrem
    redis_client.zcard.side_effect = zcard
    redis_client.zscore.side_effect = zscore
    redis_client.zremrangebyscore.side_effect = zremrangebyscore
    redis_client.zsets = zsets
    return redis_client


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_session_factory, mock_event_bus) -> Generator[FastAPI, None, None]:
    """Create a FastAPI test application with DB and event bus overrides."""
    from replyscope_core.api.deps import get_db, get_events
    from replyscope_core.config import get_settings
    from replyscope_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_events] = lambda: mock_event_bus
    app.dependency_overrides[get_settings] = lambda: test_settings

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints.

    Note: The db_session fixture is included to ensure the test database
    is set up before the client is created.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def authenticated_client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client carrying a valid session cookie for a fresh user.

    The user's ID is exposed as ``authenticated_client.user_id``. IDs are
    read before the commit so the shared SQLite connection is left without
    an open transaction when requests start.
    """
    from tests.factories import create_local_user, create_session

    user = create_local_user(db_session, username="owner")
    user_id = user.id
    session_id = create_session(db_session, user).id
    db_session.commit()

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        cookies={"session": session_id},
    ) as ac:
        ac.user_id = user_id
        yield ac


# -----------------------------------------------------------------------------
# Test Data Helpers
# -----------------------------------------------------------------------------


@pytest.fixture
def sample_report_data() -> dict[str, Any]:
    """Sample report creation payload."""
    return {
        "url": "https://x.com/someone/status/1790000000000000000",
        "goal": "Find actionable feedback on the launch",
        "persona": "Product manager",
        "preset": "balanced",
        "reply_threshold": 50,
        "min_length": 10,
        "blue_only": False,
        "min_followers": None,
    }


@pytest.fixture
def sample_user_data() -> dict[str, Any]:
    """Sample local user data for testing."""
    return {
        "username": "admin",
        "password": "test-password-123",
    }

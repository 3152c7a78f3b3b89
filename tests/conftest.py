"""Pytest configuration and fixtures for Ruddit Core tests.

This module provides fixtures for:
- Database: SQLite in-memory engine shared by every session of a test
- Components: token cache, OAuth service, normalizer, store, orchestrator
- HTTP client: AsyncClient for FastAPI testing
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ruddit_core.config import Settings
from ruddit_core.domain.models import Base
from ruddit_core.observability import get_collector


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        reddit_client_id="test_client_id",
        reddit_client_secret="test_client_secret",
        reddit_username="test_user",
        reddit_password="test_password",
        reddit_user_agent="Ruddit/0.1 test",
        encryption_key="",
        retry_max_attempts=1,
        log_json=False,
    )


@pytest.fixture(autouse=True)
def reset_metrics() -> Generator[None, None, None]:
    """Start every test with empty metrics."""
    get_collector().reset()
    yield
    get_collector().reset()


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

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
        expire_on_commit=False,
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
# Component Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def store(sync_session_factory):
    """Create a PostStore over the test database."""
    from ruddit_core.domain.services.store import PostStore

    return PostStore(sync_session_factory)


@pytest.fixture
def token_cache(sync_session_factory):
    """Create a persistent, unencrypted token cache."""
    from ruddit_core.domain.services.credentials import TokenCache

    return TokenCache(sync_session_factory)


@pytest.fixture
def normalizer(test_settings):
    """Create a RecordNormalizer with the default intent patterns."""
    from ruddit_core.domain.services.normalizer import RecordNormalizer

    return RecordNormalizer(test_settings.intent_patterns(), clock=lambda: 1_700_000_000)


@pytest.fixture
def oauth_service(test_settings, token_cache):
    """Create an OAuth service whose cached service token is always fresh."""
    from ruddit_core.providers.reddit.oauth import RedditOAuthService

    service = RedditOAuthService.from_settings(test_settings, token_cache)
    service.get_cached_or_refreshed_token = AsyncMock(return_value="service-token")
    service.get_cached_or_refreshed_user_token = AsyncMock(return_value="user-token")
    return service


@pytest.fixture
def mock_adapter() -> MagicMock:
    """Create a RedditAdapter double with async methods."""
    from ruddit_core.providers.reddit.adapter import RedditAdapter

    adapter = MagicMock(spec=RedditAdapter)
    adapter.fetch_listing = AsyncMock()
    adapter.search = AsyncMock()
    adapter.fetch_comment_tree = AsyncMock()
    adapter.submit_comment = AsyncMock()
    return adapter


@pytest.fixture
def orchestrator(oauth_service, mock_adapter, normalizer, store):
    """Create a QueryOrchestrator with a mocked adapter."""
    from ruddit_core.domain.services.comment_tree import CommentTreeFlattener
    from ruddit_core.domain.services.query import QueryOrchestrator

    return QueryOrchestrator(
        oauth=oauth_service,
        adapter=mock_adapter,
        normalizer=normalizer,
        flattener=CommentTreeFlattener(normalizer, max_depth=16),
        store=store,
    )


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_session_factory, orchestrator, oauth_service) -> FastAPI:
    """Create a FastAPI test application with test settings and overrides."""
    from ruddit_core.api.deps import (
        get_db_session_factory,
        get_oauth_service,
        get_orchestrator,
    )
    from ruddit_core.main import app

    app.state.settings = test_settings

    app.dependency_overrides[get_db_session_factory] = lambda: sync_session_factory
    app.dependency_overrides[get_oauth_service] = lambda: oauth_service
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    yield app

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def mock_httpx_client() -> Generator[AsyncMock, None, None]:
    """Mock httpx.AsyncClient for testing external HTTP calls."""
    with patch("httpx.AsyncClient") as mock:
        mock_instance = AsyncMock()
        mock.return_value.__aenter__.return_value = mock_instance
        mock.return_value.__aexit__.return_value = None
        yield mock_instance

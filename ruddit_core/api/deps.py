"""API dependencies for dependency injection."""

from typing import Annotated, Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ruddit_core.config import Settings, get_settings
from ruddit_core.domain.services.credentials import TokenCache
from ruddit_core.domain.services.query import QueryOrchestrator
from ruddit_core.domain.services.store import PostStore
from ruddit_core.infra.db import get_session_factory
from ruddit_core.infrastructure.crypto import CryptoService
from ruddit_core.providers.reddit.oauth import RedditOAuthService


def get_app_settings(request: Request) -> Settings:
    """Get settings from app state or default."""
    if hasattr(request.app.state, "settings"):
        return request.app.state.settings
    return get_settings()


def get_db_session_factory() -> Callable[[], Session]:
    """Get the session factory of the local store."""
    return get_session_factory()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
SessionFactoryDep = Annotated[Callable[[], Session], Depends(get_db_session_factory)]


def get_store(session_factory: SessionFactoryDep) -> PostStore:
    """Get the post store."""
    return PostStore(session_factory)


def get_oauth_service(
    request: Request,
    settings: SettingsDep,
    session_factory: SessionFactoryDep,
) -> RedditOAuthService:
    """Get the process-wide OAuth service.

    One instance per app so pending authorization states and the
    refresh lock are shared by all requests.
    """
    service = getattr(request.app.state, "oauth_service", None)
    if service is None:
        token_cache = TokenCache(session_factory, CryptoService.from_key(settings.encryption_key))
        service = RedditOAuthService.from_settings(settings, token_cache)
        request.app.state.oauth_service = service
    return service


OAuthServiceDep = Annotated[RedditOAuthService, Depends(get_oauth_service)]


def get_orchestrator(
    settings: SettingsDep,
    session_factory: SessionFactoryDep,
    oauth: OAuthServiceDep,
) -> QueryOrchestrator:
    """Get a query orchestrator wired from the current settings."""
    return QueryOrchestrator.from_settings(settings, session_factory, oauth=oauth)


# Type aliases for cleaner route signatures
StoreDep = Annotated[PostStore, Depends(get_store)]
OrchestratorDep = Annotated[QueryOrchestrator, Depends(get_orchestrator)]

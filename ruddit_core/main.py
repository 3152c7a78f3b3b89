"""Ruddit Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ruddit_core import __version__
from ruddit_core.api.routes import auth as auth_routes
from ruddit_core.api.routes import comments as comments_routes
from ruddit_core.api.routes import metrics as metrics_routes
from ruddit_core.api.routes import posts as posts_routes
from ruddit_core.api.routes import search as search_routes
from ruddit_core.config import get_settings
from ruddit_core.errors import (
    AuthRejected,
    CredentialError,
    ParseError,
    PersistenceError,
    RudditError,
    TransportError,
)
from ruddit_core.infra.db import reset_engine
from ruddit_core.infrastructure.crypto import DecryptionError
from ruddit_core.observability import configure_logging, get_logger

logger = get_logger(__name__)


# Error class -> HTTP status; first match wins
ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (CredentialError, status.HTTP_412_PRECONDITION_FAILED),
    (DecryptionError, status.HTTP_412_PRECONDITION_FAILED),
    (AuthRejected, status.HTTP_401_UNAUTHORIZED),
    (TransportError, status.HTTP_502_BAD_GATEWAY),
    (ParseError, status.HTTP_502_BAD_GATEWAY),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def error_status(exc: Exception) -> int:
    for error_cls, code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def handle_pipeline_error(request: Request, exc: Exception) -> JSONResponse:
    """Translate pipeline errors to JSON responses."""
    code = error_status(exc)
    if code >= 500:
        logger.error(
            "Request failed",
            exc_info=exc,
            path=request.url.path,
            error_type=type(exc).__name__,
        )
    else:
        logger.warning("Request refused", path=request.url.path, error=str(exc))

    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, AuthRejected) and exc.unauthorized_client:
        body["unauthorized_client"] = True
    return JSONResponse(status_code=code, content=body)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.log_json)
    app.state.settings = settings
    yield
    # Shutdown
    reset_engine()


app = FastAPI(
    title="Ruddit Core API",
    description="Reddit ingestion, deduplication and local storage",
    version=__version__,
    lifespan=lifespan,
)

# CORS configuration for the local desktop UI
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "tauri://localhost"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RudditError, handle_pipeline_error)
app.add_exception_handler(DecryptionError, handle_pipeline_error)

# Include API routers
app.include_router(auth_routes.router)
app.include_router(comments_routes.router)
app.include_router(metrics_routes.router)
app.include_router(posts_routes.router)
app.include_router(search_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "ruddit-core", "version": __version__}

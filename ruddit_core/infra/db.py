"""Database infrastructure for Ruddit Core.

The local store is an embedded SQLite database. Tables are created on
first connection; every multi-row write goes through ``session_scope``.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ruddit_core.config import get_settings
from ruddit_core.domain.models import Base
from ruddit_core.errors import PersistenceError


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_store_engine(database_url: str) -> Engine:
    """Create an engine and make sure the schema exists.

    Args:
        database_url: SQLAlchemy URL; ``sqlite://`` (no path) is an
            in-memory database shared by every session of the engine.

    Returns:
        Engine with all tables created.

    Raises:
        PersistenceError: If the database cannot be opened or initialized.
    """
    url = make_url(database_url)
    kwargs: dict = {"echo": False}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    try:
        engine = create_engine(url, **kwargs)
        if url.get_backend_name() == "sqlite":
            event.listen(engine, "connect", _enable_foreign_keys)
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Cannot initialize store at {database_url}: {e}") from e

    return engine


# Session factories
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def get_engine() -> Engine:
    """Get the process-wide engine (singleton)."""
    global _engine
    if _engine is None:
        _engine = create_store_engine(get_settings().database_url)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Get the process-wide session factory (singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def reset_engine() -> None:
    """Dispose the singleton engine so the next call reads settings again."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def session_scope(session_factory: Callable[[], Session]) -> Iterator[Session]:
    """Run a block in one transaction.

    Commits on success. Any SQLAlchemy failure rolls back and is raised
    as PersistenceError; other exceptions roll back and propagate as-is.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(str(e)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

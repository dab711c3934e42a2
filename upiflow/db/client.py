"""Engine and session helpers behind ``SqlKeyValueStore``.

One engine is shared per process and bound to the first URL it sees; the
schema is created on first use. Tests call :func:`reset_engine` to rebind.

    with session_scope() as s:
        s.merge(KvSetting(key="k", value="v"))
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///upiflow.db"

_ENGINE: Engine | None = None
_SESSION_MAKER: sessionmaker[Session] | None = None
_DB_URL: str | None = None


def resolve_database_url(override: str | None = None) -> str:
    """Resolve the URL: override, then ``UPIFLOW_DATABASE_URL``, then local SQLite."""

    url = override or os.getenv("UPIFLOW_DATABASE_URL") or DEFAULT_DATABASE_URL
    if not url.strip():
        raise RuntimeError("database URL is empty; set UPIFLOW_DATABASE_URL")
    return url.strip()


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the shared engine, creating it (and the schema) on first use."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    url = resolve_database_url(database_url)
    if _ENGINE is None:
        engine = create_engine(url, pool_pre_ping=True)
        init_schema(engine)
        _SESSION_MAKER = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
        _ENGINE = engine
        _DB_URL = url
        return engine
    # Engine already initialized; guard against cross-environment misuse.
    if _DB_URL is not None and url != _DB_URL:
        raise RuntimeError(
            "get_engine() already initialized with a different database URL; "
            "call reset_engine() first"
        )
    return _ENGINE


def init_schema(engine: Engine) -> None:
    """Create missing tables (idempotent)."""

    Base.metadata.create_all(engine)


def reset_engine() -> None:
    """Dispose the shared engine so the next call binds a fresh URL."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None
    _DB_URL = None


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session bound to the shared engine."""

    get_engine(database_url=database_url)
    assert _SESSION_MAKER is not None  # bound by get_engine
    return _SESSION_MAKER()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "DEFAULT_DATABASE_URL",
    "resolve_database_url",
    "get_engine",
    "get_session",
    "init_schema",
    "reset_engine",
    "session_scope",
]

"""db: SQLAlchemy engine/session helpers and models for the ledger store.

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ``KvSetting`` ORM model
- Engine/session helpers from ``upiflow.db.client``
"""

from __future__ import annotations

from .client import (
    DEFAULT_DATABASE_URL,
    get_engine,
    get_session,
    init_schema,
    reset_engine,
    resolve_database_url,
    session_scope,
)
from .models import Base, KvSetting

metadata = Base.metadata

__all__ = [
    "DEFAULT_DATABASE_URL",
    "Base",
    "KvSetting",
    "get_engine",
    "get_session",
    "init_schema",
    "metadata",
    "reset_engine",
    "resolve_database_url",
    "session_scope",
]

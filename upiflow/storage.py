"""Collaborator contracts for persistence and access control, plus two stores.

The parser never touches these. They exist so the ledger layer can persist
accepted parse results and refuse access while the app is locked:

- ``KeyValueStore``: ``get(key) -> str | None`` / ``set(key, value)``.
  Encryption at rest belongs to the store provider.
- ``AuthGate``: ``is_unlocked() -> bool``.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select

from .db.client import session_scope
from .db.models import KvSetting


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class AuthGate(Protocol):
    def is_unlocked(self) -> bool: ...


class StaticAuthGate:
    """Gate with a fixed state; hosts with a real PIN/biometric flow supply their own."""

    def __init__(self, unlocked: bool = True) -> None:
        self.unlocked = unlocked

    def is_unlocked(self) -> bool:
        return self.unlocked


class MemoryKeyValueStore:
    """Process-local store, handy for tests and dry runs."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


class SqlKeyValueStore:
    """Store backed by the ``upiflow_settings`` table.

    ``database_url`` falls back to ``UPIFLOW_DATABASE_URL`` and then to a local
    SQLite file (see :mod:`upiflow.db.client`).
    """

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    def get(self, key: str) -> str | None:
        with session_scope(database_url=self.database_url) as session:
            return session.execute(
                select(KvSetting.value).where(KvSetting.key == key)
            ).scalar_one_or_none()

    def set(self, key: str, value: str) -> None:
        with session_scope(database_url=self.database_url) as session:
            session.merge(KvSetting(key=key, value=value))


__all__ = [
    "AuthGate",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlKeyValueStore",
    "StaticAuthGate",
]

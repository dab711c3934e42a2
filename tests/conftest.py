"""Pytest configuration for test isolation.

The ledger's SQL store binds one process-wide engine to
``UPIFLOW_DATABASE_URL`` (default: ``./upiflow.db``). To keep tests hermetic,
each test gets its own SQLite file under ``tmp_path`` and the shared engine is
disposed before and after the test.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from upiflow.db.client import reset_engine


@pytest.fixture(autouse=True)
def _isolate_database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the ledger store at a per-test SQLite database."""

    db_path = tmp_path / "ledger.db"
    monkeypatch.setenv("UPIFLOW_DATABASE_URL", f"sqlite:///{os.fspath(db_path)}")
    monkeypatch.delenv("UPIFLOW_MIN_CONFIDENCE", raising=False)
    reset_engine()
    yield db_path
    reset_engine()

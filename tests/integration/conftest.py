"""Pytest configuration and fixtures for integration tests against a real SQLite file."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from tickler.core import db_client


@pytest.fixture
async def sqlite_db(monkeypatch, tmp_path: Path) -> AsyncIterator[Path]:
    """Point settings at a fresh database file, create the schema, and close the connection afterwards."""
    db_path = tmp_path / "tickler.db"
    monkeypatch.setattr("tickler.core.config.settings.sqlite_db_path", str(db_path))

    await db_client.init_db()
    yield db_path
    await db_client.close_connection()

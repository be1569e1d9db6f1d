"""Pytest configuration and fixtures for unit tests."""

import pytest

from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches tickler.core.db_client functions to use InMemoryDBClient.

    list_all_records, delete_records and every service module resolve these
    through the db_client module, so the patch reaches all of them.
    """
    monkeypatch.setattr("tickler.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("tickler.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("tickler.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("tickler.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("tickler.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("tickler.core.db_client.get_first_record", in_memory_db.get_first_record)

    return in_memory_db

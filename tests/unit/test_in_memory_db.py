"""Tests for InMemoryDBClient implementation."""

from datetime import date

import pytest

from tickler.core.db_client import DatabaseError, RecordNotFoundError


@pytest.mark.unit
class TestInMemoryDBClient:
    """Test suite for InMemoryDBClient."""

    async def test_create_record(self, in_memory_db):
        """Test creating a record."""
        record = await in_memory_db.create_record(collection="tasks", data={"title": "Plants", "due_at": None})

        assert record["id"] == "1000"
        assert record["title"] == "Plants"
        assert "created" in record
        assert "updated" in record

    async def test_create_record_stores_dates_and_json(self, in_memory_db):
        """Test dates are stored as ISO strings and dicts as JSON text, like SQLite."""
        record = await in_memory_db.create_record(
            collection="task_events", data={"ts": date(2024, 3, 13), "details": {"comment": "ok"}}
        )

        assert record["ts"] == "2024-03-13"
        assert record["details"] == '{"comment": "ok"}'

    async def test_create_record_invalid_data(self, in_memory_db):
        """Test creating a record with invalid data raises error."""
        with pytest.raises(DatabaseError, match="Data must be a dictionary"):
            await in_memory_db.create_record(collection="tasks", data="invalid")

    async def test_get_record_not_found(self, in_memory_db):
        """Test getting a non-existent record raises error."""
        with pytest.raises(RecordNotFoundError, match="Record not found"):
            await in_memory_db.get_record(collection="tasks", record_id="nonexistent")

    async def test_returned_records_are_copies(self, in_memory_db):
        """Test mutating a returned record does not change the stored one."""
        created = await in_memory_db.create_record(collection="tasks", data={"title": "Plants"})
        created["title"] = "Changed"

        stored = await in_memory_db.get_record(collection="tasks", record_id=created["id"])
        assert stored["title"] == "Plants"

    async def test_update_record(self, in_memory_db):
        """Test updating a record."""
        created = await in_memory_db.create_record(collection="tasks", data={"title": "Original"})

        updated = await in_memory_db.update_record(
            collection="tasks", record_id=created["id"], data={"title": "Updated"}
        )

        assert updated["title"] == "Updated"
        assert updated["id"] == created["id"]

    async def test_update_record_empty_payload(self, in_memory_db):
        """Test an empty update is rejected like the SQLite client."""
        created = await in_memory_db.create_record(collection="tasks", data={"title": "Plants"})

        with pytest.raises(ValueError, match="Empty update payload"):
            await in_memory_db.update_record(collection="tasks", record_id=created["id"], data={})

    async def test_delete_record(self, in_memory_db):
        """Test deleting a record."""
        created = await in_memory_db.create_record(collection="tasks", data={"title": "Plants"})

        await in_memory_db.delete_record(collection="tasks", record_id=created["id"])

        with pytest.raises(RecordNotFoundError):
            await in_memory_db.get_record(collection="tasks", record_id=created["id"])

    async def test_filters(self, in_memory_db):
        """Test the filter mini-language: numeric ids, ranges, contains and OR groups."""
        rows = [("2", "2024-03-01", "done"), ("10", "2024-03-05", "pending"), ("2", "2024-03-09", "pending")]
        for task_id, day, status in rows:
            await in_memory_db.create_record(
                collection="task_occurrences", data={"task_id": task_id, "scheduled_date": day, "status": status}
            )

        by_task = await in_memory_db.list_records(collection="task_occurrences", filter_query='task_id = "2"')
        assert [r["scheduled_date"] for r in by_task] == ["2024-03-01", "2024-03-09"]

        in_range = await in_memory_db.list_records(
            collection="task_occurrences",
            filter_query='scheduled_date >= "2024-03-02" && scheduled_date <= "2024-03-09"',
        )
        assert len(in_range) == 2

        grouped = await in_memory_db.list_records(
            collection="task_occurrences", filter_query='(status = "done" || task_id = "10")'
        )
        assert [r["task_id"] for r in grouped] == ["2", "10"]

        contains = await in_memory_db.list_records(collection="task_occurrences", filter_query='status ~ "PEND"')
        assert len(contains) == 2

    async def test_invalid_filter(self, in_memory_db):
        """Test malformed filters raise DatabaseError."""
        await in_memory_db.create_record(collection="tasks", data={"title": "Plants"})

        with pytest.raises(DatabaseError, match="Invalid filter syntax"):
            await in_memory_db.list_records(collection="tasks", filter_query="title = Plants")

    async def test_sort_numeric_and_descending(self, in_memory_db):
        """Test ids sort numerically and multi-key sorts honour direction prefixes."""
        for ts in ["2024-03-02", "2024-03-01", "2024-03-02"]:
            await in_memory_db.create_record(collection="task_events", data={"ts": ts})

        records = await in_memory_db.list_records(collection="task_events", sort="-ts,-id")

        assert [r["id"] for r in records] == ["1002", "1000", "1001"]

    async def test_pagination_and_first_record(self, in_memory_db):
        """Test paging and get_first_record."""
        for n in range(5):
            await in_memory_db.create_record(collection="task_tags", data={"tag": f"t{n}"})

        page_two = await in_memory_db.list_records(collection="task_tags", page=2, per_page=2)
        assert [r["tag"] for r in page_two] == ["t2", "t3"]

        first = await in_memory_db.get_first_record(collection="task_tags", filter_query='tag = "t4"')
        assert first["tag"] == "t4"
        assert await in_memory_db.get_first_record(collection="task_tags", filter_query='tag = "x"') is None

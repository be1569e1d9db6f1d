"""Integration tests running the occurrence engine against a real SQLite database."""

from datetime import date

import pytest

from tickler.core import db_client
from tickler.core.db_client import DatabaseError, RecordNotFoundError
from tickler.domain.event import EventKind
from tickler.domain.occurrence import OccurrenceStatus
from tickler.domain.recurrence import DailyPattern, WeeklyPattern
from tickler.domain.task import TaskSpec
from tickler.modules.audit import service as audit_service
from tickler.modules.occurrences import service as occurrence_service
from tickler.modules.occurrences import store, window_ensurer
from tickler.modules.tasks import service as task_service


TODAY = date(2024, 3, 13)


@pytest.mark.integration
class TestRecordStore:
    async def test_crud_round_trip(self, sqlite_db):
        created = await db_client.create_record(collection="tasks", data={"title": "Plants", "is_recurring": True})

        assert isinstance(created["id"], str)
        assert created["is_recurring"] == 1

        updated = await db_client.update_record(collection="tasks", record_id=created["id"], data={"title": "Ferns"})
        assert updated["title"] == "Ferns"

        await db_client.delete_record(collection="tasks", record_id=created["id"])
        with pytest.raises(RecordNotFoundError):
            await db_client.get_record(collection="tasks", record_id=created["id"])

    async def test_missing_records(self, sqlite_db):
        with pytest.raises(RecordNotFoundError):
            await db_client.update_record(collection="tasks", record_id="99", data={"title": "x"})
        with pytest.raises(RecordNotFoundError):
            await db_client.delete_record(collection="tasks", record_id="99")

    async def test_unknown_collection_is_rejected(self, sqlite_db):
        with pytest.raises(ValueError, match="Invalid collection"):
            await db_client.get_record(collection="tasks; DROP TABLE tasks", record_id="1")

    async def test_one_occurrence_per_task_and_date(self, sqlite_db):
        task = await db_client.create_record(collection="tasks", data={"title": "Bins"})
        row = {"task_id": task["id"], "scheduled_date": "2024-03-13", "status": "pending"}
        await db_client.create_record(collection="task_occurrences", data=row)

        with pytest.raises(DatabaseError, match="UNIQUE"):
            await db_client.create_record(collection="task_occurrences", data=row)

    async def test_occurrences_need_an_existing_task(self, sqlite_db):
        with pytest.raises(DatabaseError, match="FOREIGN KEY"):
            await db_client.create_record(
                collection="task_occurrences",
                data={"task_id": "404", "scheduled_date": "2024-03-13", "status": "pending"},
            )

    async def test_delete_records_reports_count(self, sqlite_db):
        task = await db_client.create_record(collection="tasks", data={"title": "Bins"})
        for tag in ["a", "b"]:
            await db_client.create_record(collection="task_tags", data={"task_id": task["id"], "tag": tag})

        removed = await db_client.delete_records(collection="task_tags", filter_query=f'task_id = "{task["id"]}"')

        assert removed == 2
        assert await db_client.list_records(collection="task_tags") == []


@pytest.mark.integration
class TestEngineOnSqlite:
    async def test_daily_window_is_materialized(self, sqlite_db):
        detail = await task_service.create_task(
            spec=TaskSpec(
                title="Plants", start_date=TODAY, start_time="07:00", recurrence=DailyPattern(horizon_days=3)
            ),
            today=TODAY,
        )

        occurrences = await store.list_occurrences(task_id=detail.task.id)

        assert [occ.scheduled_date for occ in occurrences] == ["2024-03-13", "2024-03-14", "2024-03-15"]
        assert {occ.scheduled_time for occ in occurrences} == {"07:00"}
        assert detail.rule.horizon_days == 3

    async def test_ensure_pass_is_idempotent(self, sqlite_db):
        detail = await task_service.create_task(
            spec=TaskSpec(title="Bins", start_date=TODAY, recurrence=WeeklyPattern.on(1, 4)),
            today=TODAY,
        )
        before = await store.list_occurrences(task_id=detail.task.id)

        await window_ensurer.ensure_all(today=TODAY)
        await window_ensurer.ensure_all(today=TODAY)

        after = await store.list_occurrences(task_id=detail.task.id)
        assert [occ.id for occ in after] == [occ.id for occ in before]

    async def test_complete_defer_and_list(self, sqlite_db):
        detail = await task_service.create_task(
            spec=TaskSpec(title="Dentist", due_at=date(2024, 3, 20), tags=["health"]), today=TODAY
        )
        (occurrence,) = await store.list_occurrences(task_id=detail.task.id)

        await occurrence_service.defer_occurrence(occurrence_id=occurrence.id, new_date="2024-03-22")
        result = await occurrence_service.complete_occurrence(
            occurrence_id=occurrence.id, comment="All good", completed_at="2024-03-22T09:30:00"
        )

        assert result.occurrence.status == OccurrenceStatus.DONE
        assert result.occurrence.completed_at == "2024-03-22T09:30:00"

        (view,) = await occurrence_service.list_due_occurrences(
            start="2024-03-22", end="2024-03-22", status=OccurrenceStatus.DONE, today=TODAY
        )
        assert view.effective == "2024-03-22"
        assert view.tags == ["health"]

        events = await audit_service.list_events(task_id=detail.task.id)
        complete_event = next(event for event in events if event.kind == EventKind.OCC_COMPLETE)
        assert complete_event.details["comment"] == "All good"

    async def test_delete_task_keeps_history(self, sqlite_db):
        detail = await task_service.create_task(
            spec=TaskSpec(title="Plants", start_date=TODAY, recurrence=DailyPattern(horizon_days=2), tags=["home"]),
            today=TODAY,
        )

        await task_service.delete_task(task_id=detail.task.id)

        assert await store.list_occurrences(task_id=detail.task.id) == []
        assert await store.get_rule(task_id=detail.task.id) is None
        kinds = [event.kind for event in await audit_service.list_events(task_id=detail.task.id)]
        assert EventKind.TASK_DELETE in kinds
        assert EventKind.TASK_CREATE in kinds

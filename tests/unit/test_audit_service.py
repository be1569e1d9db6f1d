"""Unit tests for the audit event log."""

import pytest

from tickler.domain.event import EventKind, EventSource
from tickler.modules.audit import service as audit_service


@pytest.mark.unit
class TestAppendEvent:
    async def test_writes_event_row(self, patched_db):
        await audit_service.append_event(
            kind=EventKind.OCC_DEFER,
            source=EventSource.USER,
            task_id="1",
            occurrence_id="2",
            details={"deferred_date": "2024-03-20"},
        )

        (row,) = patched_db.all("task_events")
        assert row["kind"] == "occ.defer"
        assert row["source"] == "user"
        assert row["task_id"] == "1"
        assert row["details"] == '{"deferred_date": "2024-03-20"}'

    async def test_storage_failure_is_swallowed(self, patched_db, monkeypatch):
        async def broken_create_record(**_kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr("tickler.core.db_client.create_record", broken_create_record)

        await audit_service.append_event(kind=EventKind.TASK_CREATE, task_id="1")

        assert patched_db.all("task_events") == []


def audited_with(describe):
    return audit_service.audited(EventKind.TASK_UPDATE, source=EventSource.USER, describe=describe)


@pytest.mark.unit
class TestAuditedDecorator:
    async def test_records_event_from_result(self, patched_db):
        @audited_with(lambda kwargs, result: {"task_id": kwargs["task_id"], "details": {"value": result}})
        async def mutate(*, task_id: str) -> int:
            return 42

        assert await mutate(task_id="7") == 42

        (row,) = patched_db.all("task_events")
        assert row["task_id"] == "7"
        assert row["details"] == '{"value": 42}'

    async def test_none_result_writes_nothing(self, patched_db):
        @audited_with(lambda _kwargs, _result: {})
        async def mutate(*, task_id: str) -> None:
            return None

        assert await mutate(task_id="7") is None
        assert patched_db.all("task_events") == []

    async def test_failing_describe_still_records_kind(self, patched_db):
        @audited_with(lambda kwargs, _result: {"task_id": kwargs["missing"]})
        async def mutate(*, task_id: str) -> str:
            return "ok"

        assert await mutate(task_id="7") == "ok"

        (row,) = patched_db.all("task_events")
        assert row["kind"] == "task.update"
        assert row["task_id"] is None

    async def test_errors_propagate_without_event(self, patched_db):
        @audited_with(lambda _kwargs, _result: {})
        async def mutate(*, task_id: str) -> str:
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            await mutate(task_id="7")
        assert patched_db.all("task_events") == []


@pytest.mark.unit
class TestListEvents:
    async def test_newest_first_and_filtered(self, patched_db):
        for kind, task_id in [(EventKind.TASK_CREATE, "1"), (EventKind.TASK_CREATE, "2"), (EventKind.TASK_UPDATE, "1")]:
            await audit_service.append_event(kind=kind, source=EventSource.USER, task_id=task_id, details={"n": 1})

        events = await audit_service.list_events(task_id="1")

        assert [event.kind for event in events] == ["task.update", "task.create"]
        assert events[0].details == {"n": 1}
        assert events[0].source == EventSource.USER

    async def test_limit(self, patched_db):
        for _ in range(5):
            await audit_service.append_event(kind=EventKind.OCC_AUTOCREATE, task_id="1")

        assert len(await audit_service.list_events(limit=3)) == 3

    async def test_malformed_details_are_kept_raw(self, patched_db):
        await patched_db.create_record(
            collection="task_events",
            data={"ts": "2024-03-13T10:00:00", "kind": "occ.defer", "source": "system", "details": "not json"},
        )

        (event,) = await audit_service.list_events()

        assert event.details == {"raw": "not json"}

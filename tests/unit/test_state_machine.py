"""Unit tests for occurrence completion, reopening and the manual next-due flow."""

from datetime import date, datetime

import pytest

from tickler.core.errors import InvalidDateError, MissingManualNextDueError, NextDueBeforeCurrentError
from tickler.domain.occurrence import OccurrenceStatus
from tickler.domain.recurrence import DailyPattern, ManualNextPattern, MonthlyByDayPattern
from tickler.domain.task import TaskSpec
from tickler.modules.occurrences import state_machine, store
from tickler.modules.tasks import service as task_service


def d(text: str) -> date:
    return date.fromisoformat(text)


async def _create(spec: TaskSpec, today: date):
    detail = await task_service.create_task(spec=spec, today=today)
    return detail.task, await store.list_occurrences(task_id=detail.task.id)


def _events(db, kind: str) -> list[dict]:
    return [event for event in db.all("task_events") if event["kind"] == kind]


@pytest.mark.unit
class TestTransitions:
    def test_allowed_transitions(self):
        assert state_machine.can_transition(current=OccurrenceStatus.PENDING, target=OccurrenceStatus.DONE)
        assert state_machine.can_transition(current=OccurrenceStatus.DONE, target=OccurrenceStatus.PENDING)
        assert not state_machine.can_transition(current=OccurrenceStatus.DONE, target=OccurrenceStatus.DONE)


@pytest.mark.unit
class TestCompleteOccurrence:
    async def test_completes_single_task(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)

        result = await state_machine.complete_occurrence(
            occurrence_id=occurrence.id, comment="all clear", completed_at="2024-03-20T15:45:00"
        )

        assert result.occurrence.status == OccurrenceStatus.DONE
        assert result.occurrence.completed_at == "2024-03-20T15:45:00"
        assert result.previous_status == OccurrenceStatus.PENDING
        assert result.next_occurrence is None

        (event,) = _events(patched_db, "occ.complete")
        assert event["source"] == "user"
        assert event["occurrence_id"] == occurrence.id
        assert '"comment": "all clear"' in event["details"]

    async def test_defaults_completion_time_to_now(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)

        result = await state_machine.complete_occurrence(occurrence_id=occurrence.id)

        assert datetime.fromisoformat(result.occurrence.completed_at).date() == date.today()

    async def test_datetime_completion_is_stored_as_iso(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)

        result = await state_machine.complete_occurrence(
            occurrence_id=occurrence.id, completed_at=datetime(2024, 3, 20, 9, 30)
        )

        assert result.occurrence.completed_at == "2024-03-20T09:30:00"

    async def test_already_done_is_noop(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)
        await state_machine.complete_occurrence(occurrence_id=occurrence.id, completed_at="2024-03-20T09:00:00")

        again = await state_machine.complete_occurrence(occurrence_id=occurrence.id)

        assert again is None
        assert len(_events(patched_db, "occ.complete")) == 1
        stored = await store.get_occurrence(occurrence_id=occurrence.id)
        assert stored.completed_at == "2024-03-20T09:00:00"

    async def test_missing_occurrence_is_noop(self, patched_db):
        assert await state_machine.complete_occurrence(occurrence_id="999") is None

    async def test_invalid_timestamp_leaves_row_pending(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)

        with pytest.raises(InvalidDateError):
            await state_machine.complete_occurrence(occurrence_id=occurrence.id, completed_at="whenever")

        stored = await store.get_occurrence(occurrence_id=occurrence.id)
        assert stored.status == OccurrenceStatus.PENDING


@pytest.mark.unit
class TestSpawnNext:
    async def test_infinite_daily_spawns_next_day(self, patched_db, today):
        task, occurrences = await _create(
            TaskSpec(title="Plants", start_date=today, start_time="07:00", recurrence=DailyPattern(horizon_days=2)),
            today,
        )

        result = await state_machine.complete_occurrence(occurrence_id=occurrences[-1].id)

        assert result.next_occurrence.scheduled_date == "2024-03-15"
        assert result.next_occurrence.scheduled_time == "07:00"
        assert len(await store.list_occurrences(task_id=task.id)) == 3

    async def test_daily_interval_spawns_aligned_day(self, patched_db):
        task, occurrences = await _create(
            TaskSpec(
                title="Filter", start_date=d("2024-03-01"), recurrence=DailyPattern(interval=3, horizon_days=6)
            ),
            d("2024-03-05"),
        )
        assert [occ.scheduled_date for occ in occurrences] == ["2024-03-07", "2024-03-10"]

        result = await state_machine.complete_occurrence(
            occurrence_id=occurrences[-1].id, completed_at="2024-03-10T18:00:00"
        )

        assert result.next_occurrence.scheduled_date == "2024-03-13"
        rows = [(occ.scheduled_date, str(occ.status)) for occ in await store.list_occurrences(task_id=task.id)]
        assert rows == [("2024-03-07", "pending"), ("2024-03-10", "done"), ("2024-03-13", "pending")]

    async def test_spawn_reuses_existing_row(self, patched_db, today):
        task, occurrences = await _create(
            TaskSpec(title="Rent", start_date=d("2024-01-31"), recurrence=MonthlyByDayPattern(day=31)), today
        )
        assert [occ.scheduled_date for occ in occurrences] == ["2024-03-31", "2024-04-30"]

        result = await state_machine.complete_occurrence(occurrence_id=occurrences[0].id)

        assert result.next_occurrence.id == occurrences[1].id
        assert len(await store.list_occurrences(task_id=task.id)) == 2

    async def test_finite_rule_does_not_spawn(self, patched_db, today):
        task, occurrences = await _create(
            TaskSpec(title="Course", start_date=d("2024-03-01"), recurrence=DailyPattern(count=2)), today
        )

        result = await state_machine.complete_occurrence(occurrence_id=occurrences[-1].id)

        assert result.next_occurrence is None
        assert len(await store.list_occurrences(task_id=task.id)) == 2


@pytest.mark.unit
class TestManualNextDue:
    async def test_requires_next_due(self, patched_db, today):
        _task, (occurrence,) = await _create(
            TaskSpec(title="Car", due_at=d("2024-03-20"), recurrence=ManualNextPattern()), today
        )

        with pytest.raises(MissingManualNextDueError):
            await state_machine.complete_occurrence(occurrence_id=occurrence.id)

        stored = await store.get_occurrence(occurrence_id=occurrence.id)
        assert stored.status == OccurrenceStatus.PENDING

    async def test_rejects_next_due_before_current(self, patched_db, today):
        _task, (occurrence,) = await _create(
            TaskSpec(title="Car", due_at=d("2024-03-20"), recurrence=ManualNextPattern()), today
        )

        with pytest.raises(NextDueBeforeCurrentError):
            await state_machine.complete_occurrence(occurrence_id=occurrence.id, manual_next_due="2024-03-19")

        stored = await store.get_occurrence(occurrence_id=occurrence.id)
        assert stored.status == OccurrenceStatus.PENDING

    async def test_offset_applies_before_comparing(self, patched_db, today):
        _task, (occurrence,) = await _create(
            TaskSpec(title="Car", due_at=d("2024-03-20"), recurrence=ManualNextPattern(offset_days=-2)), today
        )
        assert occurrence.scheduled_date == "2024-03-18"

        with pytest.raises(NextDueBeforeCurrentError):
            await state_machine.complete_occurrence(occurrence_id=occurrence.id, manual_next_due="2024-03-19")

        result = await state_machine.complete_occurrence(occurrence_id=occurrence.id, manual_next_due="2024-03-25")
        assert result.next_occurrence.scheduled_date == "2024-03-23"

    async def test_rejects_unparseable_next_due(self, patched_db, today):
        _task, (occurrence,) = await _create(
            TaskSpec(title="Car", due_at=d("2024-03-20"), recurrence=ManualNextPattern()), today
        )

        with pytest.raises(InvalidDateError):
            await state_machine.complete_occurrence(occurrence_id=occurrence.id, manual_next_due="next week")

    async def test_advances_task_and_occurrence(self, patched_db, today):
        task, (occurrence,) = await _create(
            TaskSpec(title="Car", due_at=d("2024-03-20"), recurrence=ManualNextPattern()), today
        )

        result = await state_machine.complete_occurrence(occurrence_id=occurrence.id, manual_next_due=d("2024-04-01"))

        assert result.next_occurrence.scheduled_date == "2024-04-01"
        updated = await store.get_task(task_id=task.id)
        assert updated.due_at == "2024-04-01"
        assert updated.start_date == "2024-04-01"
        rows = [(occ.scheduled_date, str(occ.status)) for occ in await store.list_occurrences(task_id=task.id)]
        assert rows == [("2024-03-20", "done"), ("2024-04-01", "pending")]


@pytest.mark.unit
class TestReopen:
    async def test_reopen_clears_completion(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)
        await state_machine.complete_occurrence(occurrence_id=occurrence.id)

        reopened = await state_machine.reopen_occurrence(occurrence_id=occurrence.id)

        assert reopened.status == OccurrenceStatus.PENDING
        assert reopened.completed_at is None
        (event,) = _events(patched_db, "occ.reopen")
        assert event["source"] == "user"

    async def test_reopen_pending_is_noop(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)

        assert await state_machine.reopen_occurrence(occurrence_id=occurrence.id) is None
        assert _events(patched_db, "occ.reopen") == []

    async def test_set_status_routes_both_ways(self, patched_db, today):
        _task, (occurrence,) = await _create(TaskSpec(title="Dentist", due_at=d("2024-03-20")), today)

        done = await state_machine.set_occurrence_status(occurrence_id=occurrence.id, status=OccurrenceStatus.DONE)
        assert done.status == OccurrenceStatus.DONE

        pending = await state_machine.set_occurrence_status(
            occurrence_id=occurrence.id, status=OccurrenceStatus.PENDING
        )
        assert pending.status == OccurrenceStatus.PENDING

"""Storage contract the occurrence engine runs against.

Thin typed wrappers over db_client for the tasks, recurrence_rules and
task_occurrences collections. Occurrence inserts, deletes and renames are
audited as system events.
"""

import logging
from datetime import date
from typing import Any

from tickler.core import db_client
from tickler.core.db_client import sanitize_param
from tickler.core.dates import to_date_str
from tickler.domain.event import EventKind, EventSource
from tickler.domain.occurrence import OccurrenceStatus, TaskOccurrence
from tickler.domain.recurrence import RecurrenceRule
from tickler.domain.task import Task
from tickler.modules.audit.service import EventInfo, audited


logger = logging.getLogger(__name__)

TASKS = "tasks"
RULES = "recurrence_rules"
OCCURRENCES = "task_occurrences"


def _occurrence_event(_kwargs: dict[str, Any], occurrence: TaskOccurrence) -> EventInfo:
    return {
        "task_id": occurrence.task_id,
        "occurrence_id": occurrence.id,
        "details": {"date": occurrence.scheduled_date, "status": str(occurrence.status)},
    }


def _rename_event(kwargs: dict[str, Any], occurrence: TaskOccurrence) -> EventInfo:
    return {
        "task_id": occurrence.task_id,
        "occurrence_id": occurrence.id,
        "details": {"from": kwargs.get("previous_date"), "to": occurrence.scheduled_date},
    }


async def get_task(*, task_id: str) -> Task | None:
    """Fetch a task, or None if it does not exist."""
    try:
        record = await db_client.get_record(collection=TASKS, record_id=task_id)
    except KeyError:
        return None
    return Task(**record)


async def list_task_records() -> list[dict[str, Any]]:
    """Raw task rows, oldest first."""
    return await db_client.list_all_records(collection=TASKS, sort="id")


async def list_tasks() -> list[Task]:
    """All tasks, oldest first."""
    return [Task(**record) for record in await list_task_records()]


async def get_rule(*, task_id: str) -> RecurrenceRule | None:
    """Fetch the task's recurrence rule, or None if the row is missing."""
    record = await db_client.get_first_record(
        collection=RULES,
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
    )
    return RecurrenceRule(**record) if record else None


async def list_rule_records() -> dict[str, dict[str, Any]]:
    """Raw rule rows keyed by task id."""
    return {record["task_id"]: record for record in await db_client.list_all_records(collection=RULES)}


async def list_rules() -> dict[str, RecurrenceRule]:
    """Every rule keyed by task id."""
    return {task_id: RecurrenceRule(**record) for task_id, record in (await list_rule_records()).items()}


async def save_rule(*, task_id: str, fields: dict[str, Any]) -> RecurrenceRule:
    """Create the task's rule row or overwrite the existing one."""
    existing = await get_rule(task_id=task_id)
    if existing is None or existing.id is None:
        record = await db_client.create_record(collection=RULES, data={"task_id": task_id, **fields})
    else:
        record = await db_client.update_record(collection=RULES, record_id=existing.id, data=fields)
    return RecurrenceRule(**record)


async def list_occurrences(
    *,
    task_id: str | None = None,
    start: date | None = None,
    end: date | None = None,
    status: OccurrenceStatus | None = None,
) -> list[TaskOccurrence]:
    """Occurrences filtered by task, inclusive scheduled_date range and status, by date."""
    conditions = []
    if task_id is not None:
        conditions.append(f'task_id = "{sanitize_param(task_id)}"')
    if start is not None:
        conditions.append(f'scheduled_date >= "{to_date_str(start)}"')
    if end is not None:
        conditions.append(f'scheduled_date <= "{to_date_str(end)}"')
    if status is not None:
        conditions.append(f'status = "{status}"')

    records = await db_client.list_all_records(
        collection=OCCURRENCES,
        filter_query=" && ".join(conditions),
        sort="scheduled_date,id",
    )
    return [TaskOccurrence(**record) for record in records]


async def get_occurrence(*, occurrence_id: str) -> TaskOccurrence | None:
    """Fetch one occurrence, or None if it does not exist."""
    try:
        record = await db_client.get_record(collection=OCCURRENCES, record_id=occurrence_id)
    except KeyError:
        return None
    return TaskOccurrence(**record)


async def find_occurrence(*, task_id: str, scheduled_date: date) -> TaskOccurrence | None:
    """The task's occurrence on a scheduled date, if any."""
    record = await db_client.get_first_record(
        collection=OCCURRENCES,
        filter_query=f'task_id = "{sanitize_param(task_id)}" && scheduled_date = "{to_date_str(scheduled_date)}"',
    )
    return TaskOccurrence(**record) if record else None


@audited(EventKind.OCC_AUTOCREATE, source=EventSource.SYSTEM, describe=_occurrence_event)
async def insert_occurrence(
    *,
    task_id: str,
    scheduled_date: date,
    scheduled_time: str | None = None,
) -> TaskOccurrence | None:
    """Insert a pending occurrence unless one already exists on that date.

    Returns:
        The new occurrence, or None when the date was already taken
    """
    if await find_occurrence(task_id=task_id, scheduled_date=scheduled_date) is not None:
        return None

    record = await db_client.create_record(
        collection=OCCURRENCES,
        data={
            "task_id": task_id,
            "scheduled_date": to_date_str(scheduled_date),
            "scheduled_time": scheduled_time,
            "status": OccurrenceStatus.PENDING.value,
        },
    )
    logger.info(
        "Inserted occurrence",
        extra={"task_id": task_id, "occurrence_id": record["id"], "date": record["scheduled_date"]},
    )
    return TaskOccurrence(**record)


async def update_occurrence_status(
    *,
    occurrence_id: str,
    status: OccurrenceStatus,
    completed_at: str | None = None,
) -> TaskOccurrence:
    """Set an occurrence's status; completed_at is cleared unless supplied."""
    record = await db_client.update_record(
        collection=OCCURRENCES,
        record_id=occurrence_id,
        data={"status": status.value, "completed_at": completed_at},
    )
    return TaskOccurrence(**record)


@audited(EventKind.OCC_DELETE, source=EventSource.SYSTEM, describe=_occurrence_event)
async def delete_occurrence(*, occurrence_id: str) -> TaskOccurrence | None:
    """Delete an occurrence and return the removed row (None if it was already gone)."""
    occurrence = await get_occurrence(occurrence_id=occurrence_id)
    if occurrence is None:
        return None
    await db_client.delete_record(collection=OCCURRENCES, record_id=occurrence_id)
    logger.info(
        "Deleted occurrence",
        extra={"task_id": occurrence.task_id, "occurrence_id": occurrence_id, "date": occurrence.scheduled_date},
    )
    return occurrence


async def set_deferred_date(*, occurrence_id: str, deferred_date: date | None) -> TaskOccurrence:
    """Set or clear (None) the occurrence's deferred date."""
    record = await db_client.update_record(
        collection=OCCURRENCES,
        record_id=occurrence_id,
        data={"deferred_date": to_date_str(deferred_date) if deferred_date else None},
    )
    return TaskOccurrence(**record)


@audited(EventKind.OCC_REALIGN, source=EventSource.SYSTEM, describe=_rename_event)
async def rename_occurrence(
    *,
    occurrence_id: str,
    scheduled_date: date,
    previous_date: str | None = None,
    scheduled_time: str | None = None,
) -> TaskOccurrence:
    """Move an occurrence to a new scheduled date, keeping its identity.

    `previous_date` is only recorded in the audit event.
    """
    data: dict[str, Any] = {"scheduled_date": to_date_str(scheduled_date), "deferred_date": None}
    if scheduled_time is not None:
        data["scheduled_time"] = scheduled_time
    record = await db_client.update_record(collection=OCCURRENCES, record_id=occurrence_id, data=data)
    return TaskOccurrence(**record)


async def set_task_due(*, task_id: str, due: date) -> Task:
    """Advance a task's due_at and start_date to the same date."""
    day = to_date_str(due)
    record = await db_client.update_record(collection=TASKS, record_id=task_id, data={"due_at": day, "start_date": day})
    return Task(**record)

"""Task service: CRUD, dry-run edit previews and the ensure pass each mutation triggers."""

import logging
from datetime import date
from typing import Any

from tickler.core import db_client
from tickler.core.db_client import RecordNotFoundError, sanitize_param
from tickler.core.errors import DestructiveEditError, InvalidDateError, UnsupportedFrequencyError
from tickler.core.logging import span
from tickler.domain.event import EventKind, EventSource
from tickler.domain.recurrence import (
    OncePattern,
    RecurrencePattern,
    RecurrenceRule,
    rule_fields_from_pattern,
)
from tickler.domain.task import Task, TaskDetail, TaskSpec
from tickler.modules.audit.service import EventInfo, audited
from tickler.modules.occurrences import reconciler, store, window_ensurer
from tickler.modules.occurrences.reconciler import ReconciliationPlan
from tickler.modules.tasks import file_links, tags


logger = logging.getLogger(__name__)


def _task_event(_kwargs: dict[str, Any], detail: TaskDetail) -> EventInfo:
    return {
        "task_id": detail.task.id,
        "details": {
            "title": detail.task.title,
            "recurrence": detail.pattern.kind if detail.pattern else None,
        },
    }


def _build_detail(
    task: Task,
    rule: RecurrenceRule | None,
    task_tags: list[str],
    links: list[str] | None = None,
) -> TaskDetail:
    pattern: RecurrencePattern | None = None
    if rule is not None:
        try:
            pattern, _anchor = window_ensurer.resolve_pattern(task, rule)
        except InvalidDateError:
            logger.warning("Task has an invalid anchor date", extra={"task_id": task.id})
    return TaskDetail(task=task, rule=rule, pattern=pattern, tags=task_tags, file_links=links or [])


async def _ensure(task: Task, rule: RecurrenceRule, today: date | None) -> None:
    try:
        await window_ensurer.ensure_task(task=task, rule=rule, today=today)
    except UnsupportedFrequencyError as e:
        logger.info("Task saved without occurrences", extra={"task_id": task.id, "reason": str(e)})


@audited(EventKind.TASK_CREATE, source=EventSource.USER, describe=_task_event)
async def create_task(*, spec: TaskSpec, today: date | None = None) -> TaskDetail:
    """Create a task with its rule and tags, then materialize its occurrences.

    Args:
        spec: Task payload; `recurrence=None` makes a single task
        today: Reference date for infinite windows (defaults to today)

    Returns:
        TaskDetail for the new task
    """
    with span("task_service.create_task"):
        record = await db_client.create_record(collection=store.TASKS, data=spec.to_record())
        task = Task(**record)
        rule = await store.save_rule(task_id=task.id, fields=rule_fields_from_pattern(spec.recurrence))
        task_tags = await tags.set_task_tags(task_id=task.id, tags=spec.tags)

        await _ensure(task, rule, today)

        logger.info("Created task", extra={"task_id": task.id, "title": task.title})
        return _build_detail(task, rule, task_tags)


async def get_task(*, task_id: str) -> TaskDetail:
    """Fetch a task with its rule, pattern, tags and linked files.

    Raises:
        RecordNotFoundError: If the task does not exist
    """
    with span("task_service.get_task"):
        task = await store.get_task(task_id=task_id)
        if task is None:
            raise RecordNotFoundError(f"Task not found: {task_id}")
        rule = await store.get_rule(task_id=task_id)
        task_tags = await tags.list_task_tags(task_id=task_id)
        links = await file_links.list_task_file_links(task_id=task_id)
        return _build_detail(task, rule, task_tags, links)


def _matches(detail: TaskDetail, needle: str) -> bool:
    haystack = [detail.task.title, detail.task.description, *detail.tags]
    return any(needle in text.lower() for text in haystack)


async def list_tasks(*, query: str | None = None) -> list[TaskDetail]:
    """List tasks, optionally filtered by a case-insensitive substring of title, description or tags."""
    with span("task_service.list_tasks"):
        tasks = await store.list_tasks()
        rules = await store.list_rules()
        tag_map = await tags.tags_by_task()

        details = [_build_detail(task, rules.get(task.id), tag_map.get(task.id, [])) for task in tasks]
        needle = (query or "").strip().lower()
        if needle:
            details = [detail for detail in details if _matches(detail, needle)]
        return details


async def _plan_edit(task_id: str, spec: TaskSpec, today: date | None) -> ReconciliationPlan:
    """Diff the occurrences an edit would change, without writing anything."""
    candidate = Task(id=task_id, **spec.to_record())
    rule = RecurrenceRule(task_id=task_id, **rule_fields_from_pattern(spec.recurrence))
    pattern, anchor = window_ensurer.resolve_pattern(candidate, rule)

    if window_ensurer.is_completed_anchor(pattern):
        return ReconciliationPlan(task_id=task_id)
    if isinstance(pattern, OncePattern) or pattern.is_finite:
        try:
            return await reconciler.compute_plan(task_id=task_id, pattern=pattern, anchor=anchor, today=today)
        except UnsupportedFrequencyError:
            return ReconciliationPlan(task_id=task_id)
    return await window_ensurer.plan_window_edit(task_id=task_id, pattern=pattern, anchor=anchor, today=today)


async def preview_task_update(*, task_id: str, spec: TaskSpec, today: date | None = None) -> ReconciliationPlan:
    """Dry-run an edit and report the occurrences it would insert and delete.

    Raises:
        RecordNotFoundError: If the task does not exist
    """
    with span("task_service.preview_task_update"):
        if await store.get_task(task_id=task_id) is None:
            raise RecordNotFoundError(f"Task not found: {task_id}")
        return await _plan_edit(task_id, spec, today)


@audited(EventKind.TASK_UPDATE, source=EventSource.USER, describe=_task_event)
async def update_task(
    *,
    task_id: str,
    spec: TaskSpec,
    confirm_destructive: bool = False,
    today: date | None = None,
) -> TaskDetail:
    """Apply an edit and re-run the task's ensure pass.

    An edit whose reconciliation would delete completed occurrences is refused
    unless `confirm_destructive` is set.

    Raises:
        RecordNotFoundError: If the task does not exist
        DestructiveEditError: If completed occurrences would be deleted without confirmation
    """
    with span("task_service.update_task"):
        if await store.get_task(task_id=task_id) is None:
            raise RecordNotFoundError(f"Task not found: {task_id}")

        plan = await _plan_edit(task_id, spec, today)
        if plan.is_destructive and not confirm_destructive:
            raise DestructiveEditError(
                f"This edit would delete {len(plan.done_deletions)} completed occurrence(s)",
                done_dates=plan.done_deletions,
            )

        record = await db_client.update_record(collection=store.TASKS, record_id=task_id, data=spec.to_record())
        task = Task(**record)
        rule = await store.save_rule(task_id=task_id, fields=rule_fields_from_pattern(spec.recurrence))
        task_tags = await tags.set_task_tags(task_id=task_id, tags=spec.tags)

        pattern, anchor = window_ensurer.resolve_pattern(task, rule)
        if not (isinstance(pattern, OncePattern) or pattern.is_finite):
            await window_ensurer.prune_stale(task_id=task_id, pattern=pattern, anchor=anchor, today=today)
        await _ensure(task, rule, today)

        logger.info(
            "Updated task",
            extra={"task_id": task_id, "inserted": len(plan.to_insert), "deleted": len(plan.to_delete)},
        )
        return _build_detail(task, rule, task_tags, await file_links.list_task_file_links(task_id=task_id))


@audited(EventKind.TASK_DELETE, source=EventSource.USER, describe=_task_event)
async def delete_task(*, task_id: str) -> TaskDetail:
    """Delete a task with its rule, occurrences, tags and linked files. Events are kept.

    Raises:
        RecordNotFoundError: If the task does not exist
    """
    with span("task_service.delete_task"):
        detail = await get_task(task_id=task_id)
        task_filter = f'task_id = "{sanitize_param(task_id)}"'

        removed = await db_client.delete_records(collection=store.OCCURRENCES, filter_query=task_filter)
        await db_client.delete_records(collection=store.RULES, filter_query=task_filter)
        await db_client.delete_records(collection=tags.TAGS, filter_query=task_filter)
        await file_links.delete_task_file_links(task_id=task_id)
        await db_client.delete_record(collection=store.TASKS, record_id=task_id)

        logger.info("Deleted task", extra={"task_id": task_id, "occurrences": removed})
        return detail

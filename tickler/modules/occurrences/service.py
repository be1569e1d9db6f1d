"""Occurrence service: the listing and mutation entry points the application calls."""

import logging
from datetime import date, datetime

from tickler.core.dates import parse_optional_date
from tickler.core.errors import InvalidDateError
from tickler.core.logging import span
from tickler.domain.occurrence import CompletionResult, OccurrenceStatus, OccurrenceView, TaskOccurrence
from tickler.modules.occurrences import deferral, state_machine, store, window_ensurer
from tickler.modules.tasks import tags


logger = logging.getLogger(__name__)


def _in_range(effective: str, start: date | None, end: date | None) -> bool:
    try:
        day = parse_optional_date(effective)
    except InvalidDateError:
        logger.warning("Skipping occurrence with invalid date", extra={"date": effective})
        return False
    if day is None:
        return False
    return (start is None or day >= start) and (end is None or day <= end)


async def list_due_occurrences(
    *,
    start: date | str | None = None,
    end: date | str | None = None,
    status: OccurrenceStatus | None = None,
    query: str | None = None,
    today: date | None = None,
) -> list[OccurrenceView]:
    """Run the ensure pass, then list occurrences whose effective date falls in [start, end].

    Args:
        start: Inclusive lower bound on the effective date
        end: Inclusive upper bound on the effective date
        status: Only occurrences in this status
        query: Case-insensitive substring of title, description or tags
        today: Reference date for the ensure pass (defaults to today)

    Returns:
        OccurrenceView rows ordered by effective date, time and title
    """
    with span("occurrence_service.list_due_occurrences"):
        start_day = parse_optional_date(start)
        end_day = parse_optional_date(end)

        await window_ensurer.ensure_all(today=today)

        tasks = {task.id: task for task in await store.list_tasks()}
        rules = await store.list_rules()
        tag_map = await tags.tags_by_task()
        needle = (query or "").strip().lower()

        views = []
        for occurrence in await store.list_occurrences(status=status):
            task = tasks.get(occurrence.task_id)
            if task is None or not _in_range(occurrence.effective_date, start_day, end_day):
                continue
            task_tags = tag_map.get(task.id, [])
            if needle and not any(needle in text.lower() for text in [task.title, task.description, *task_tags]):
                continue

            rule = rules.get(task.id)
            views.append(
                OccurrenceView(
                    **occurrence.model_dump(),
                    title=task.title,
                    description=task.description,
                    is_recurring=task.is_recurring,
                    manual_next_due=bool(rule and rule.manual_next_due),
                    require_complete_comment=task.require_complete_comment,
                    tags=task_tags,
                    effective=occurrence.effective_date,
                )
            )

        views.sort(key=lambda view: (view.effective, view.scheduled_time or "", view.title.lower(), int(view.id)))
        logger.info("Listed occurrences", extra={"count": len(views)})
        return views


async def list_task_occurrences(*, task_id: str) -> list[TaskOccurrence]:
    """Every occurrence of one task, oldest first (no ensure pass)."""
    with span("occurrence_service.list_task_occurrences"):
        return await store.list_occurrences(task_id=task_id)


async def complete_occurrence(
    *,
    occurrence_id: str,
    comment: str | None = None,
    completed_at: datetime | date | str | None = None,
    manual_next_due: date | str | None = None,
) -> CompletionResult | None:
    """Complete an occurrence; see state_machine.complete_occurrence."""
    return await state_machine.complete_occurrence(
        occurrence_id=occurrence_id,
        comment=comment,
        completed_at=completed_at,
        manual_next_due=manual_next_due,
    )


async def set_occurrence_status(*, occurrence_id: str, status: OccurrenceStatus) -> TaskOccurrence | None:
    return await state_machine.set_occurrence_status(occurrence_id=occurrence_id, status=status)


async def defer_occurrence(*, occurrence_id: str, new_date: date | str | None) -> TaskOccurrence:
    """Set or clear an occurrence's deferred date; see deferral.defer_occurrence."""
    return await deferral.defer_occurrence(occurrence_id=occurrence_id, new_date=new_date)

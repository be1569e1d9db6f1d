"""Occurrence state transitions: completion (with next-occurrence spawning) and reopening."""

import logging
from datetime import date, datetime
from typing import Any

from tickler.core.dates import add_days, parse_date, parse_timestamp
from tickler.core.errors import MissingManualNextDueError, NextDueBeforeCurrentError, UnsupportedFrequencyError
from tickler.core.logging import span
from tickler.domain.event import EventKind, EventSource
from tickler.domain.occurrence import CompletionResult, OccurrenceStatus, TaskOccurrence
from tickler.domain.recurrence import ManualNextPattern, OncePattern, RecurrencePattern
from tickler.domain.task import Task
from tickler.modules.audit.service import EventInfo, audited
from tickler.modules.occurrences import projector, store, window_ensurer


logger = logging.getLogger(__name__)


# Done is terminal for the schedule; reopening only flips the row back.
ALLOWED_TRANSITIONS: dict[OccurrenceStatus, set[OccurrenceStatus]] = {
    OccurrenceStatus.PENDING: {OccurrenceStatus.DONE},
    OccurrenceStatus.DONE: {OccurrenceStatus.PENDING},
}


def can_transition(*, current: OccurrenceStatus, target: OccurrenceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _completion_event(kwargs: dict[str, Any], result: CompletionResult) -> EventInfo:
    details: dict[str, Any] = {
        "previous_status": str(result.previous_status),
        "date": result.occurrence.scheduled_date,
        "completed_at": result.occurrence.completed_at,
    }
    if kwargs.get("comment"):
        details["comment"] = kwargs["comment"]
    if result.next_occurrence is not None:
        details["next_date"] = result.next_occurrence.scheduled_date
    return {"task_id": result.occurrence.task_id, "occurrence_id": result.occurrence.id, "details": details}


def _reopen_event(_kwargs: dict[str, Any], occurrence: TaskOccurrence) -> EventInfo:
    return {
        "task_id": occurrence.task_id,
        "occurrence_id": occurrence.id,
        "details": {"previous_status": str(OccurrenceStatus.DONE), "date": occurrence.scheduled_date},
    }


def _completion_stamp(completed_at: datetime | date | str | None) -> str:
    """Normalize the completion timestamp; caller-supplied values are kept as given."""
    if completed_at is None:
        return datetime.now().isoformat(timespec="seconds")
    if isinstance(completed_at, datetime | date):
        return completed_at.isoformat()
    parse_timestamp(completed_at)
    return completed_at.strip()


async def _spawn_next(
    *,
    task: Task,
    pattern: RecurrencePattern,
    anchor: date | None,
    completed: TaskOccurrence,
) -> TaskOccurrence | None:
    """Create the occurrence that follows a completed one, for infinite patterns."""
    if window_ensurer.is_completed_anchor(pattern):
        return await window_ensurer.ensure_completed_anchor(
            task, pattern, anchor or parse_date(completed.scheduled_date)
        )
    if isinstance(pattern, OncePattern | ManualNextPattern) or pattern.is_finite:
        return None

    try:
        following = projector.next_date(pattern, scheduled=parse_date(completed.scheduled_date))
    except UnsupportedFrequencyError as e:
        logger.debug("No next occurrence to spawn", extra={"task_id": task.id, "reason": str(e)})
        return None

    inserted = await store.insert_occurrence(
        task_id=task.id, scheduled_date=following, scheduled_time=completed.scheduled_time
    )
    return inserted or await store.find_occurrence(task_id=task.id, scheduled_date=following)


async def _advance_manual(
    *, task: Task, pattern: ManualNextPattern, next_due: date
) -> TaskOccurrence | None:
    """Move a manual-next-due task to its new due date and realign its occurrence."""
    updated_task = await store.set_task_due(task_id=task.id, due=next_due)
    await window_ensurer.ensure_manual_next(updated_task, pattern, next_due)
    occurrences = await store.list_occurrences(task_id=task.id, status=OccurrenceStatus.PENDING)
    return occurrences[0] if occurrences else None


@audited(EventKind.OCC_COMPLETE, source=EventSource.USER, describe=_completion_event)
async def complete_occurrence(
    *,
    occurrence_id: str,
    comment: str | None = None,
    completed_at: datetime | date | str | None = None,
    manual_next_due: date | str | None = None,
) -> CompletionResult | None:
    """Mark a pending occurrence done and spawn its successor.

    Args:
        occurrence_id: Occurrence to complete
        comment: Optional completion comment, recorded in the audit event
        completed_at: Completion timestamp; defaults to now, accepted as given
        manual_next_due: Next due date, required for manual-next-due tasks

    Returns:
        CompletionResult, or None if the occurrence is missing or already done

    Raises:
        MissingManualNextDueError: Manual-next-due task completed without a date
        NextDueBeforeCurrentError: Supplied date precedes the scheduled date
        InvalidDateError: A supplied date cannot be parsed
    """
    with span("state_machine.complete_occurrence"):
        occurrence = await store.get_occurrence(occurrence_id=occurrence_id)
        if occurrence is None or not can_transition(current=occurrence.status, target=OccurrenceStatus.DONE):
            logger.info("Completion ignored", extra={"occurrence_id": occurrence_id})
            return None

        task = await store.get_task(task_id=occurrence.task_id)
        rule = await store.get_rule(task_id=occurrence.task_id)
        pattern: RecurrencePattern = OncePattern()
        anchor: date | None = None
        if task is not None and rule is not None:
            pattern, anchor = window_ensurer.resolve_pattern(task, rule)

        # Validate everything before the first write
        next_due: date | None = None
        if isinstance(pattern, ManualNextPattern):
            if manual_next_due is None or manual_next_due == "":
                raise MissingManualNextDueError("This task needs the next due date when it is completed")
            next_due = parse_date(manual_next_due)
            current = parse_date(occurrence.scheduled_date)
            # Occurrence dates carry the offset; the task due date does not
            shifted = add_days(next_due, pattern.offset_days)
            if shifted < current:
                raise NextDueBeforeCurrentError(
                    f"Next due date {next_due.isoformat()} falls on {shifted.isoformat()}, "
                    f"before the current date {current.isoformat()}"
                )
        stamp = _completion_stamp(completed_at)

        done = await store.update_occurrence_status(
            occurrence_id=occurrence.id, status=OccurrenceStatus.DONE, completed_at=stamp
        )
        logger.info(
            "Completed occurrence",
            extra={"task_id": done.task_id, "occurrence_id": done.id, "date": done.scheduled_date},
        )

        next_occurrence = None
        if task is not None:
            if isinstance(pattern, ManualNextPattern) and next_due is not None:
                next_occurrence = await _advance_manual(task=task, pattern=pattern, next_due=next_due)
            else:
                next_occurrence = await _spawn_next(task=task, pattern=pattern, anchor=anchor, completed=done)

        return CompletionResult(
            occurrence=done,
            previous_status=occurrence.status,
            next_occurrence=next_occurrence,
        )


@audited(EventKind.OCC_REOPEN, source=EventSource.USER, describe=_reopen_event)
async def reopen_occurrence(*, occurrence_id: str) -> TaskOccurrence | None:
    """Flip a done occurrence back to pending and clear its completion time.

    Returns:
        The reopened occurrence, or None if it is missing or not done
    """
    with span("state_machine.reopen_occurrence"):
        occurrence = await store.get_occurrence(occurrence_id=occurrence_id)
        if occurrence is None or not can_transition(current=occurrence.status, target=OccurrenceStatus.PENDING):
            return None
        reopened = await store.update_occurrence_status(occurrence_id=occurrence.id, status=OccurrenceStatus.PENDING)
        logger.info("Reopened occurrence", extra={"task_id": reopened.task_id, "occurrence_id": reopened.id})
        return reopened


async def set_occurrence_status(*, occurrence_id: str, status: OccurrenceStatus) -> TaskOccurrence | None:
    """Status toggle: done routes through completion, pending through reopen."""
    if status == OccurrenceStatus.DONE:
        result = await complete_occurrence(occurrence_id=occurrence_id)
        return result.occurrence if result else None
    return await reopen_occurrence(occurrence_id=occurrence_id)

"""Window ensurer: keeps every task's occurrences materialized.

Runs before each occurrence listing and after each task mutation. Every
pass is idempotent; running it twice in a row changes nothing the second
time.

Per pattern:
- single tasks and finite rules are handed to the reconciler
- daily (scheduled) and monthly/yearly infinite rules materialize their
  forward window and never delete
- daily (completed anchor) keeps at most one pending occurrence
- weekly infinite keeps only the next pending occurrence
- manual next due keeps one pending occurrence aligned to the task's due date
"""

import logging
from datetime import date

from pydantic import ValidationError

from tickler.core.dates import add_days, parse_date, parse_timestamp, to_date_str
from tickler.core.errors import InvalidDateError, UnsupportedFrequencyError
from tickler.core.logging import log_with_context, span
from tickler.domain.occurrence import OccurrenceStatus, TaskOccurrence
from tickler.domain.recurrence import (
    DailyPattern,
    IntervalAnchor,
    ManualNextPattern,
    OncePattern,
    RecurrencePattern,
    RecurrenceRule,
    WeeklyPattern,
    pattern_from_rule,
    rule_fields_from_pattern,
)
from tickler.domain.task import Task
from tickler.modules.occurrences import projector, reconciler, store
from tickler.modules.occurrences.projector import Lookahead
from tickler.modules.occurrences.reconciler import ReconciliationPlan


logger = logging.getLogger(__name__)


def resolve_pattern(task: Task, rule: RecurrenceRule) -> tuple[RecurrencePattern, date | None]:
    """Decode a task's pattern and the anchor it projects from.

    Raises:
        InvalidDateError: If the task's stored anchor date is malformed
    """
    prefer_due = not task.is_recurring or rule.manual_next_due
    anchor = task.anchor_date(prefer_due=prefer_due)
    return pattern_from_rule(rule, is_recurring=task.is_recurring, anchor=anchor), anchor


def is_completed_anchor(pattern: RecurrencePattern) -> bool:
    return isinstance(pattern, DailyPattern) and pattern.anchor == IntervalAnchor.COMPLETED


def window_targets(
    pattern: RecurrencePattern,
    *,
    anchor: date,
    today: date,
    lookahead: Lookahead | None = None,
) -> list[date]:
    """Shifted dates on or after today an infinite calendar pattern covers.

    The window is projected from today minus the offset, so that after the
    shift it starts at today.

    Raises:
        UnsupportedFrequencyError: For patterns with no calendar projection
    """
    lookahead = lookahead or Lookahead.from_settings()
    if isinstance(pattern, WeeklyPattern) and lookahead.weeks <= pattern.interval:
        # Always include at least one week aligned with the interval
        lookahead = Lookahead(
            weeks=pattern.interval + 1,
            months=lookahead.months,
            years=lookahead.years,
            horizon_days=lookahead.horizon_days,
        )
    start = add_days(today, -pattern.offset_days)
    dates = projector.target_dates(pattern, anchor=anchor, today=start, lookahead=lookahead)
    return [d for d in dates if d >= today]


async def _materialize_window(
    task: Task, pattern: RecurrencePattern, anchor: date, today: date, lookahead: Lookahead | None
) -> None:
    for day in window_targets(pattern, anchor=anchor, today=today, lookahead=lookahead):
        await store.insert_occurrence(task_id=task.id, scheduled_date=day, scheduled_time=task.start_time)


async def _ensure_weekly_next(
    task: Task, pattern: WeeklyPattern, anchor: date, today: date, lookahead: Lookahead | None
) -> None:
    targets = window_targets(pattern, anchor=anchor, today=today, lookahead=lookahead)
    future = await store.list_occurrences(task_id=task.id, start=today)
    done_dates = {occ.scheduled_date for occ in future if occ.is_done}

    upcoming = next((d for d in targets if to_date_str(d) not in done_dates), None)
    upcoming_str = to_date_str(upcoming) if upcoming else None

    for occ in future:
        if not occ.is_done and occ.scheduled_date != upcoming_str:
            await store.delete_occurrence(occurrence_id=occ.id)
    if upcoming is not None:
        await store.insert_occurrence(task_id=task.id, scheduled_date=upcoming, scheduled_time=task.start_time)


def _completion_day(occurrence: TaskOccurrence) -> date:
    if occurrence.completed_at:
        return parse_timestamp(occurrence.completed_at).date()
    return parse_date(occurrence.scheduled_date)


async def ensure_completed_anchor(task: Task, pattern: DailyPattern, anchor: date) -> TaskOccurrence | None:
    """Keep at most one pending occurrence, scheduled from the last completion.

    Returns:
        The occurrence inserted by this pass, if any
    """
    occurrences = await store.list_occurrences(task_id=task.id)
    pending = sorted((occ for occ in occurrences if not occ.is_done), key=lambda occ: occ.scheduled_date)

    if pending:
        for extra in pending[1:]:
            await store.delete_occurrence(occurrence_id=extra.id)
        return None

    if pattern.is_finite and len(occurrences) >= pattern.count:
        return None

    done = [occ for occ in occurrences if occ.is_done]
    if done:
        last_completed = max(_completion_day(occ) for occ in done)
        target = add_days(last_completed, pattern.interval + pattern.offset_days)
    else:
        target = add_days(anchor, pattern.offset_days)

    taken = {occ.scheduled_date for occ in occurrences}
    while to_date_str(target) in taken:
        target = add_days(target, pattern.interval)

    return await store.insert_occurrence(task_id=task.id, scheduled_date=target, scheduled_time=task.start_time)


async def ensure_manual_next(task: Task, pattern: ManualNextPattern, anchor: date | None) -> None:
    """Align the single pending occurrence with the task's due date.

    The existing pending row is renamed rather than recreated so its id survives
    edits to the due date.
    """
    if anchor is None:
        return
    target = add_days(anchor, pattern.offset_days)
    target_str = to_date_str(target)

    pending = await store.list_occurrences(task_id=task.id, status=OccurrenceStatus.PENDING)
    on_target = next((occ for occ in pending if occ.scheduled_date == target_str), None)
    keep = on_target

    if keep is None and await store.find_occurrence(task_id=task.id, scheduled_date=target) is None:
        if pending:
            keep = pending[0]
            await store.rename_occurrence(
                occurrence_id=keep.id,
                scheduled_date=target,
                previous_date=keep.scheduled_date,
                scheduled_time=task.start_time,
            )
        else:
            keep = await store.insert_occurrence(
                task_id=task.id, scheduled_date=target, scheduled_time=task.start_time
            )

    for occ in pending:
        if keep is None or occ.id != keep.id:
            await store.delete_occurrence(occurrence_id=occ.id)


async def ensure_task(
    *,
    task: Task,
    rule: RecurrenceRule | None = None,
    today: date | None = None,
    lookahead: Lookahead | None = None,
) -> None:
    """Run the ensure pass for one task.

    Raises:
        InvalidDateError: If the task's anchor date is malformed
        UnsupportedFrequencyError: If a window pattern cannot be projected
    """
    today = today or date.today()

    if rule is None:
        rule = await store.get_rule(task_id=task.id)
    if rule is None:
        if task.is_recurring:
            logger.warning("Recurring task has no recurrence rule", extra={"task_id": task.id})
            return
        rule = await store.save_rule(task_id=task.id, fields=rule_fields_from_pattern(None))
        logger.info("Created missing single-occurrence rule", extra={"task_id": task.id})

    pattern, anchor = resolve_pattern(task, rule)

    if isinstance(pattern, ManualNextPattern):
        await ensure_manual_next(task, pattern, anchor)
        return
    if anchor is None:
        logger.debug("Task has no anchor date", extra={"task_id": task.id})
        return
    if is_completed_anchor(pattern):
        await ensure_completed_anchor(task, pattern, anchor)
        return
    if isinstance(pattern, OncePattern) or pattern.is_finite:
        await reconciler.reconcile_task(
            task_id=task.id, pattern=pattern, anchor=anchor, scheduled_time=task.start_time, today=today
        )
        return
    if isinstance(pattern, WeeklyPattern):
        await _ensure_weekly_next(task, pattern, anchor, today, lookahead)
        return
    await _materialize_window(task, pattern, anchor, today, lookahead)


async def ensure_all(*, today: date | None = None, lookahead: Lookahead | None = None) -> list[str]:
    """Run the ensure pass over every task.

    A task whose row or rule fails validation, whose dates cannot be parsed or
    whose rule cannot be projected is skipped; the rest of the pass continues.

    Returns:
        IDs of the tasks that were skipped
    """
    today = today or date.today()
    skipped: list[str] = []

    with span("window_ensurer.ensure_all"):
        tasks = await store.list_task_records()
        rules = await store.list_rule_records()

        for record in tasks:
            task_id = str(record.get("id"))
            try:
                task = Task(**record)
                rule_record = rules.get(task.id)
                rule = RecurrenceRule(**rule_record) if rule_record else None
            except ValidationError as e:
                skipped.append(task_id)
                log_with_context(
                    logger, "warning", "Skipping task with invalid stored data", task_id=task_id, error=str(e)
                )
                continue
            try:
                await ensure_task(task=task, rule=rule, today=today, lookahead=lookahead)
            except InvalidDateError as e:
                skipped.append(task.id)
                log_with_context(logger, "warning", "Skipping task with invalid date", task_id=task.id, error=str(e))
            except UnsupportedFrequencyError as e:
                skipped.append(task.id)
                log_with_context(logger, "debug", "Skipping unsupported rule", task_id=task.id, reason=str(e))

        logger.info("Ensure pass complete", extra={"tasks": len(tasks), "skipped": len(skipped)})
    return skipped


async def plan_window_edit(
    *,
    task_id: str,
    pattern: RecurrencePattern,
    anchor: date | None,
    today: date | None = None,
    lookahead: Lookahead | None = None,
) -> ReconciliationPlan:
    """Dry-run diff for switching a task to an infinite pattern.

    Future pending rows the new window no longer covers are listed for
    deletion; done rows and the past are never touched, so the plan is
    never destructive. Patterns without a calendar window (completed
    anchor, manual next due) yield an empty plan.
    """
    today = today or date.today()
    if anchor is None:
        return ReconciliationPlan(task_id=task_id)
    try:
        targets = window_targets(pattern, anchor=anchor, today=today, lookahead=lookahead)
    except UnsupportedFrequencyError:
        return ReconciliationPlan(task_id=task_id)

    future = await store.list_occurrences(task_id=task_id, start=today)
    target_strs = [to_date_str(d) for d in targets]
    wanted = set(target_strs)
    present = {occ.scheduled_date for occ in future}
    done_dates = {occ.scheduled_date for occ in future if occ.is_done}

    if isinstance(pattern, WeeklyPattern):
        upcoming = next((d for d in target_strs if d not in done_dates), None)
        wanted = {upcoming} if upcoming else set()
        to_insert = [upcoming] if upcoming and upcoming not in present else []
    else:
        to_insert = [d for d in target_strs if d not in present]

    return ReconciliationPlan(
        task_id=task_id,
        target_dates=target_strs,
        to_insert=to_insert,
        to_delete=[occ for occ in future if not occ.is_done and occ.scheduled_date not in wanted],
    )


async def prune_stale(
    *,
    task_id: str,
    pattern: RecurrencePattern,
    anchor: date | None,
    today: date | None = None,
    lookahead: Lookahead | None = None,
) -> int:
    """Delete future pending rows an edited infinite pattern no longer projects.

    Returns:
        Number of occurrences removed
    """
    plan = await plan_window_edit(task_id=task_id, pattern=pattern, anchor=anchor, today=today, lookahead=lookahead)
    for occurrence in plan.to_delete:
        await store.delete_occurrence(occurrence_id=occurrence.id)
    return len(plan.to_delete)

"""Finite-count reconciler.

Brings a finite task's persisted occurrences into exact agreement with the
projector's target dates: rows whose date is not a target are deleted
(whatever their status) and missing targets are inserted as pending.

Deleting `done` rows discards completion history, so the diff is exposed as
a ReconciliationPlan that callers can inspect (`done_deletions`,
`is_destructive`) before applying it.
"""

import logging
from datetime import date

from pydantic import BaseModel, Field, computed_field

from tickler.core.dates import to_date_str
from tickler.core.errors import UnsupportedFrequencyError
from tickler.core.logging import span
from tickler.domain.occurrence import TaskOccurrence
from tickler.domain.recurrence import OncePattern, RecurrencePattern
from tickler.modules.occurrences import projector, store


logger = logging.getLogger(__name__)


class ReconciliationPlan(BaseModel):
    """Diff between persisted occurrences and a rule's target dates."""

    task_id: str
    target_dates: list[str] = Field(default_factory=list)
    to_insert: list[str] = Field(default_factory=list)
    to_delete: list[TaskOccurrence] = Field(default_factory=list)

    @computed_field
    @property
    def done_deletions(self) -> list[str]:
        """Scheduled dates of completed occurrences the plan would delete."""
        return [occ.scheduled_date for occ in self.to_delete if occ.is_done]

    @computed_field
    @property
    def is_destructive(self) -> bool:
        return bool(self.done_deletions)

    @property
    def is_noop(self) -> bool:
        return not self.to_insert and not self.to_delete


def plan_reconciliation(*, task_id: str, targets: list[date], existing: list[TaskOccurrence]) -> ReconciliationPlan:
    """Pure diff of target dates against existing rows."""
    target_strs = list(dict.fromkeys(to_date_str(d) for d in targets))
    wanted = set(target_strs)
    present = {occ.scheduled_date for occ in existing}
    return ReconciliationPlan(
        task_id=task_id,
        target_dates=target_strs,
        to_insert=[d for d in target_strs if d not in present],
        to_delete=[occ for occ in existing if occ.scheduled_date not in wanted],
    )


async def compute_plan(
    *,
    task_id: str,
    pattern: RecurrencePattern,
    anchor: date | None,
    today: date | None = None,
) -> ReconciliationPlan:
    """Diff a finite pattern against storage without mutating anything.

    Single tasks compare against every occurrence of the task; finite
    recurrences only against occurrences on or after the comparison anchor.

    Raises:
        UnsupportedFrequencyError: If the pattern has no calendar projection
    """
    if anchor is None:
        targets: list[date] = []
    else:
        targets = projector.target_dates(pattern, anchor=anchor, today=today)

    if isinstance(pattern, OncePattern) or anchor is None:
        existing = await store.list_occurrences(task_id=task_id)
    else:
        existing = await store.list_occurrences(
            task_id=task_id,
            start=projector.comparison_anchor(anchor, pattern.offset_days),
        )
    return plan_reconciliation(task_id=task_id, targets=targets, existing=existing)


async def apply_plan(plan: ReconciliationPlan, *, scheduled_time: str | None = None) -> ReconciliationPlan:
    """Execute a plan: deletes first, then inserts."""
    for occurrence in plan.to_delete:
        await store.delete_occurrence(occurrence_id=occurrence.id)
    for day in plan.to_insert:
        await store.insert_occurrence(
            task_id=plan.task_id,
            scheduled_date=date.fromisoformat(day),
            scheduled_time=scheduled_time,
        )
    if plan.is_destructive:
        logger.warning(
            "Reconciliation deleted completed occurrences",
            extra={"task_id": plan.task_id, "dates": plan.done_deletions},
        )
    return plan


async def reconcile_task(
    *,
    task_id: str,
    pattern: RecurrencePattern,
    anchor: date | None,
    scheduled_time: str | None = None,
    today: date | None = None,
) -> ReconciliationPlan | None:
    """Reconcile one finite task. Unsupported rule shapes are a logged no-op.

    Returns:
        The applied plan, or None if the pattern could not be projected
    """
    with span("reconciler.reconcile_task"):
        try:
            plan = await compute_plan(task_id=task_id, pattern=pattern, anchor=anchor, today=today)
        except UnsupportedFrequencyError as e:
            logger.debug("Skipping reconciliation", extra={"task_id": task_id, "reason": str(e)})
            return None

        if plan.is_noop:
            return plan
        return await apply_plan(plan, scheduled_time=scheduled_time)

"""Deferral handler: per-occurrence date override.

Deferral only changes the effective date of one row. It never touches
scheduled_date, so projection, reconciliation and spawning ignore it.
"""

import logging
from datetime import date
from typing import Any

from tickler.core.dates import parse_optional_date
from tickler.core.db_client import RecordNotFoundError
from tickler.core.logging import span
from tickler.domain.event import EventKind, EventSource
from tickler.domain.occurrence import TaskOccurrence
from tickler.modules.audit.service import EventInfo, audited
from tickler.modules.occurrences import store


logger = logging.getLogger(__name__)


def _defer_event(_kwargs: dict[str, Any], occurrence: TaskOccurrence) -> EventInfo:
    return {
        "task_id": occurrence.task_id,
        "occurrence_id": occurrence.id,
        "details": {"scheduled_date": occurrence.scheduled_date, "deferred_date": occurrence.deferred_date},
    }


@audited(EventKind.OCC_DEFER, source=EventSource.USER, describe=_defer_event)
async def defer_occurrence(*, occurrence_id: str, new_date: date | str | None) -> TaskOccurrence:
    """Set the occurrence's deferred date, or clear it with None.

    Raises:
        RecordNotFoundError: If the occurrence does not exist
        InvalidDateError: If new_date cannot be parsed
    """
    with span("deferral.defer_occurrence"):
        deferred = parse_optional_date(new_date)
        occurrence = await store.get_occurrence(occurrence_id=occurrence_id)
        if occurrence is None:
            raise RecordNotFoundError(f"Occurrence not found: {occurrence_id}")

        updated = await store.set_deferred_date(occurrence_id=occurrence.id, deferred_date=deferred)
        logger.info(
            "Deferred occurrence",
            extra={"occurrence_id": updated.id, "task_id": updated.task_id, "deferred_date": updated.deferred_date},
        )
        return updated

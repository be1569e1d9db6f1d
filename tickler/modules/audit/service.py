"""Audit emitter: append-only task event log.

Events are a best-effort side channel. A failure to record one is logged
and never propagates into the operation that produced it.
"""

import functools
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, ParamSpec, TypedDict, TypeVar

from tickler.core import db_client
from tickler.core.config import constants
from tickler.core.db_client import sanitize_param
from tickler.core.logging import span
from tickler.domain.event import EventKind, EventSource, TaskEvent


logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


class EventInfo(TypedDict, total=False):
    """What an audited call contributes to its event."""

    task_id: str | None
    occurrence_id: str | None
    details: dict[str, Any] | None


async def append_event(
    *,
    kind: EventKind | str,
    source: EventSource = EventSource.SYSTEM,
    task_id: str | None = None,
    occurrence_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Append one event; failures are logged and swallowed."""
    try:
        await db_client.create_record(
            collection="task_events",
            data={
                "ts": datetime.now().isoformat(timespec="seconds"),
                "kind": str(kind),
                "source": str(source),
                "task_id": task_id,
                "occurrence_id": occurrence_id,
                "details": json.dumps(details) if details is not None else None,
            },
        )
    except Exception as e:
        logger.warning(
            "Failed to append task event",
            extra={"kind": str(kind), "task_id": task_id, "occurrence_id": occurrence_id, "error": str(e)},
        )


def audited(
    kind: EventKind,
    *,
    source: EventSource = EventSource.SYSTEM,
    describe: Callable[[dict[str, Any], Any], EventInfo] | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Record an event after a mutating coroutine returns.

    `describe(kwargs, result)` picks the task/occurrence ids and details for
    the event. A result of None means nothing changed and no event is written.
    Audited functions are called with keyword arguments only.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            result = await func(*args, **kwargs)
            if result is None:
                return result
            try:
                info = describe(kwargs, result) if describe else EventInfo()
            except Exception as e:
                logger.warning("Failed to describe task event", extra={"kind": str(kind), "error": str(e)})
                info = EventInfo()
            await append_event(kind=kind, source=source, **info)
            return result

        return wrapper

    return decorator


def _parse_details(raw: Any) -> dict[str, Any] | None:
    if raw is None or isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {"raw": str(raw)}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


async def list_events(*, task_id: str | None = None, limit: int = constants.DEFAULT_EVENT_LIMIT) -> list[TaskEvent]:
    """Read back recent events, newest first.

    Args:
        task_id: Restrict to one task's events
        limit: Maximum number of events returned

    Returns:
        List of TaskEvent
    """
    with span("audit_service.list_events"):
        filter_query = f'task_id = "{sanitize_param(task_id)}"' if task_id else ""
        records = await db_client.list_records(
            collection="task_events",
            per_page=max(1, limit),
            filter_query=filter_query,
            sort="-ts,-id",
        )
        return [TaskEvent(**{**record, "details": _parse_details(record.get("details"))}) for record in records]

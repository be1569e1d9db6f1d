"""Audit event models and enums."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventKind(StrEnum):
    """Kinds of mutation recorded in the audit log."""

    TASK_CREATE = "task.create"
    TASK_UPDATE = "task.update"
    TASK_DELETE = "task.delete"
    OCC_AUTOCREATE = "occ.autocreate"
    OCC_COMPLETE = "occ.complete"
    OCC_REOPEN = "occ.reopen"
    OCC_DELETE = "occ.delete"
    OCC_DEFER = "occ.defer"
    OCC_REALIGN = "occ.realign"


class EventSource(StrEnum):
    """Who caused the mutation."""

    USER = "user"
    SYSTEM = "system"


class TaskEvent(BaseModel):
    """Append-only audit record."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique event ID from database")
    ts: str = Field(..., description="Event timestamp (ISO format)")
    kind: str = Field(..., description="Event kind, e.g. occ.complete")
    source: EventSource
    task_id: str | None = None
    occurrence_id: str | None = None
    details: dict[str, Any] | None = None

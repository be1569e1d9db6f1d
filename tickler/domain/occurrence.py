"""Occurrence domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class OccurrenceStatus(StrEnum):
    """Occurrence lifecycle: pending -> done (done is terminal for the row)."""

    PENDING = "pending"
    DONE = "done"


class TaskOccurrence(BaseModel):
    """One concrete, dated instance of a task."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique occurrence ID from database")
    task_id: str = Field(..., description="Owning task ID")
    scheduled_date: str = Field(..., description="Canonical formula-derived date (YYYY-MM-DD)")
    scheduled_time: str | None = Field(default=None, description="Time of day (HH:MM)")
    deferred_date: str | None = Field(default=None, description="Display override; never alters scheduled_date")
    status: OccurrenceStatus = Field(default=OccurrenceStatus.PENDING)
    completed_at: str | None = Field(default=None, description="Completion timestamp as supplied")
    created: str | None = None
    updated: str | None = None

    @property
    def effective_date(self) -> str:
        return self.deferred_date or self.scheduled_date

    @property
    def is_done(self) -> bool:
        return self.status == OccurrenceStatus.DONE


class OccurrenceView(TaskOccurrence):
    """Occurrence row joined with the task fields a listing shows."""

    title: str
    description: str = ""
    is_recurring: bool = False
    manual_next_due: bool = False
    require_complete_comment: bool = False
    tags: list[str] = Field(default_factory=list)
    effective: str = Field(..., description="deferred_date if set, else scheduled_date")


class CompletionResult(BaseModel):
    """Outcome of completing an occurrence."""

    occurrence: TaskOccurrence
    previous_status: OccurrenceStatus
    next_occurrence: TaskOccurrence | None = None

"""Task domain models."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tickler.core.dates import parse_optional_date
from tickler.domain.recurrence import OncePattern, RecurrencePattern, RecurrenceRule


class Task(BaseModel):
    """Task data transfer object.

    Dates are kept as stored strings; callers parse them with the calendar
    helpers so a malformed row surfaces as InvalidDateError at the point of use.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique task ID from database")
    created: str | None = Field(default=None, description="Creation timestamp")
    updated: str | None = Field(default=None, description="Last update timestamp")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    due_at: str | None = Field(default=None, description="Due date (YYYY-MM-DD), used by single tasks")
    start_date: str | None = Field(default=None, description="Anchor date for recurring tasks (YYYY-MM-DD)")
    start_time: str | None = Field(default=None, description="Time of day copied onto occurrences (HH:MM)")
    is_recurring: bool = Field(default=False)
    require_complete_comment: bool = Field(default=False, description="Completion must carry a comment")

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: str | None) -> str:
        return value or ""

    def anchor_date(self, *, prefer_due: bool | None = None) -> date | None:
        """The date projections start from.

        Single tasks use COALESCE(due_at, start_date); recurring tasks prefer
        start_date. Raises InvalidDateError for a malformed stored value.
        """
        if prefer_due is None:
            prefer_due = not self.is_recurring
        first, second = (self.due_at, self.start_date) if prefer_due else (self.start_date, self.due_at)
        return parse_optional_date(first or second)


class TaskSpec(BaseModel):
    """Create/update payload for a task.

    A `recurrence` of None (or a OncePattern) makes a single task.
    """

    title: str = Field(..., min_length=1)
    description: str = ""
    due_at: date | None = None
    start_date: date | None = None
    start_time: str | None = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    recurrence: RecurrencePattern | None = None
    require_complete_comment: bool = False
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _recurring_needs_anchor(self) -> "TaskSpec":
        if self.is_recurring and self.start_date is None and self.due_at is None:
            raise ValueError("Recurring tasks need a start_date")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None and not isinstance(self.recurrence, OncePattern)

    def to_record(self) -> dict:
        """Column values for the tasks table."""
        return {
            "title": self.title.strip(),
            "description": self.description,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "start_time": self.start_time,
            "is_recurring": self.is_recurring,
            "require_complete_comment": self.require_complete_comment,
        }


class TaskDetail(BaseModel):
    """A task together with its rule, decoded pattern, tags and linked files."""

    task: Task
    rule: RecurrenceRule | None = None
    pattern: RecurrencePattern | None = None
    tags: list[str] = Field(default_factory=list)
    file_links: list[str] = Field(default_factory=list)

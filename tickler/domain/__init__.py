"""Domain models and DTOs."""

from tickler.domain.event import EventKind, EventSource, TaskEvent
from tickler.domain.occurrence import CompletionResult, OccurrenceStatus, OccurrenceView, TaskOccurrence
from tickler.domain.recurrence import (
    DailyPattern,
    Frequency,
    IntervalAnchor,
    ManualNextPattern,
    MonthlyByDayPattern,
    MonthlyByWeekdayPattern,
    OncePattern,
    RecurrencePattern,
    RecurrenceRule,
    WeeklyPattern,
    YearlyPattern,
    pattern_from_rule,
    rule_fields_from_pattern,
)
from tickler.domain.task import Task, TaskDetail, TaskSpec


__all__ = [
    "CompletionResult",
    "DailyPattern",
    "EventKind",
    "EventSource",
    "Frequency",
    "IntervalAnchor",
    "ManualNextPattern",
    "MonthlyByDayPattern",
    "MonthlyByWeekdayPattern",
    "OccurrenceStatus",
    "OccurrenceView",
    "OncePattern",
    "RecurrencePattern",
    "RecurrenceRule",
    "Task",
    "TaskDetail",
    "TaskEvent",
    "TaskOccurrence",
    "TaskSpec",
    "WeeklyPattern",
    "YearlyPattern",
    "pattern_from_rule",
    "rule_fields_from_pattern",
]

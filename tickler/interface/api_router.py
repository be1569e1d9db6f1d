"""JSON API over the task and occurrence services."""

import logging
from datetime import date, datetime

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from tickler.core.config import constants
from tickler.core.errors import DestructiveEditError, TicklerError, classify_error_with_response
from tickler.domain.event import TaskEvent
from tickler.domain.occurrence import CompletionResult, OccurrenceStatus, OccurrenceView, TaskOccurrence
from tickler.domain.task import TaskDetail, TaskSpec
from tickler.modules.audit import service as audit_service
from tickler.modules.occurrences import service as occurrence_service
from tickler.modules.occurrences.reconciler import ReconciliationPlan
from tickler.modules.tasks import file_links, tags
from tickler.modules.tasks import service as task_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tickler"])


class CompleteRequest(BaseModel):
    comment: str | None = None
    completed_at: datetime | None = None
    manual_next_due: date | None = None


class DeferRequest(BaseModel):
    new_date: date | None = Field(default=None, description="New effective date; null clears the deferral")


class StatusRequest(BaseModel):
    status: OccurrenceStatus


class TagsRequest(BaseModel):
    tags: list[str]


class RenameTagRequest(BaseModel):
    old: str
    new: str


class FileLinksRequest(BaseModel):
    shas: list[str]


def _http_error(exc: Exception) -> HTTPException:
    """Map a service exception onto an HTTP error with a structured body."""
    response = classify_error_with_response(exc)
    detail: dict = {"code": response.code, "message": response.message, "suggestion": response.suggestion}

    if isinstance(exc, KeyError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, DestructiveEditError):
        status_code = status.HTTP_409_CONFLICT
        detail["done_dates"] = exc.done_dates
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    logger.info("api_error", extra={"code": response.code, "status_code": status_code})
    return HTTPException(status_code=status_code, detail=detail)


@router.get("/occurrences")
async def list_occurrences(
    start: date | None = None,
    end: date | None = None,
    status_filter: OccurrenceStatus | None = Query(default=None, alias="status"),
    query: str | None = None,
) -> list[OccurrenceView]:
    """List occurrences due in a date range (runs the ensure pass first)."""
    try:
        return await occurrence_service.list_due_occurrences(
            start=start, end=end, status=status_filter, query=query
        )
    except (TicklerError, ValueError) as e:
        raise _http_error(e) from e


@router.post("/occurrences/{occurrence_id}/complete")
async def complete_occurrence(occurrence_id: str, payload: CompleteRequest) -> CompletionResult:
    try:
        result = await occurrence_service.complete_occurrence(
            occurrence_id=occurrence_id,
            comment=payload.comment,
            completed_at=payload.completed_at,
            manual_next_due=payload.manual_next_due,
        )
    except (TicklerError, ValueError) as e:
        raise _http_error(e) from e
    if result is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Occurrence is missing or already done")
    return result


@router.post("/occurrences/{occurrence_id}/defer")
async def defer_occurrence(occurrence_id: str, payload: DeferRequest) -> TaskOccurrence:
    try:
        return await occurrence_service.defer_occurrence(occurrence_id=occurrence_id, new_date=payload.new_date)
    except (TicklerError, KeyError, ValueError) as e:
        raise _http_error(e) from e


@router.put("/occurrences/{occurrence_id}/status")
async def set_occurrence_status(occurrence_id: str, payload: StatusRequest) -> TaskOccurrence:
    try:
        result = await occurrence_service.set_occurrence_status(occurrence_id=occurrence_id, status=payload.status)
    except (TicklerError, ValueError) as e:
        raise _http_error(e) from e
    if result is None:
        detail = f"Occurrence is missing or already {payload.status}"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    return result


@router.get("/tasks")
async def list_tasks(query: str | None = None) -> list[TaskDetail]:
    return await task_service.list_tasks(query=query)


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(spec: TaskSpec) -> TaskDetail:
    try:
        return await task_service.create_task(spec=spec)
    except (TicklerError, ValueError) as e:
        raise _http_error(e) from e


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> TaskDetail:
    try:
        return await task_service.get_task(task_id=task_id)
    except KeyError as e:
        raise _http_error(e) from e


@router.post("/tasks/{task_id}/preview")
async def preview_task_update(task_id: str, spec: TaskSpec) -> ReconciliationPlan:
    """Dry-run an edit: which occurrences it would insert and delete."""
    try:
        return await task_service.preview_task_update(task_id=task_id, spec=spec)
    except (TicklerError, KeyError, ValueError) as e:
        raise _http_error(e) from e


@router.put("/tasks/{task_id}")
async def update_task(task_id: str, spec: TaskSpec, confirm_destructive: bool = False) -> TaskDetail:
    try:
        return await task_service.update_task(task_id=task_id, spec=spec, confirm_destructive=confirm_destructive)
    except (TicklerError, KeyError, ValueError) as e:
        raise _http_error(e) from e


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str) -> None:
    try:
        await task_service.delete_task(task_id=task_id)
    except KeyError as e:
        raise _http_error(e) from e


@router.get("/tasks/{task_id}/occurrences")
async def list_task_occurrences(task_id: str) -> list[TaskOccurrence]:
    return await occurrence_service.list_task_occurrences(task_id=task_id)


@router.put("/tasks/{task_id}/tags")
async def set_task_tags(task_id: str, payload: TagsRequest) -> list[str]:
    return await tags.set_task_tags(task_id=task_id, tags=payload.tags)


@router.get("/tasks/{task_id}/files")
async def list_task_files(task_id: str) -> list[str]:
    return await file_links.list_task_file_links(task_id=task_id)


@router.put("/tasks/{task_id}/files")
async def set_task_files(task_id: str, payload: FileLinksRequest) -> list[str]:
    try:
        return await file_links.set_task_file_links(task_id=task_id, shas=payload.shas)
    except ValueError as e:
        raise _http_error(e) from e


@router.get("/tags")
async def list_all_tags() -> list[str]:
    return await tags.list_all_tags()


@router.post("/tags/rename")
async def rename_tag(payload: RenameTagRequest) -> dict[str, int]:
    try:
        return {"renamed": await tags.rename_tag(old=payload.old, new=payload.new)}
    except ValueError as e:
        raise _http_error(e) from e


@router.get("/events")
async def list_events(
    task_id: str | None = None,
    limit: int = Query(default=constants.DEFAULT_EVENT_LIMIT, ge=1, le=1000),
) -> list[TaskEvent]:
    return await audit_service.list_events(task_id=task_id, limit=limit)

"""Task tag helpers."""

import logging
from collections import defaultdict

from tickler.core import db_client
from tickler.core.db_client import sanitize_param
from tickler.core.logging import span


logger = logging.getLogger(__name__)

TAGS = "task_tags"


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim, drop empties, de-duplicate and sort."""
    return sorted({tag.strip() for tag in tags if tag and tag.strip()})


async def list_task_tags(*, task_id: str) -> list[str]:
    """Tags attached to one task, sorted."""
    records = await db_client.list_all_records(
        collection=TAGS,
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
    )
    return sorted(record["tag"] for record in records)


async def set_task_tags(*, task_id: str, tags: list[str]) -> list[str]:
    """Replace a task's tags with the normalized list."""
    with span("tags.set_task_tags"):
        wanted = normalize_tags(tags)
        existing = await db_client.list_all_records(
            collection=TAGS,
            filter_query=f'task_id = "{sanitize_param(task_id)}"',
        )
        present = set()
        for record in existing:
            if record["tag"] in wanted:
                present.add(record["tag"])
            else:
                await db_client.delete_record(collection=TAGS, record_id=record["id"])

        for tag in wanted:
            if tag not in present:
                await db_client.create_record(collection=TAGS, data={"task_id": task_id, "tag": tag})
        return wanted


async def tags_by_task() -> dict[str, list[str]]:
    """Every task's sorted tags keyed by task id."""
    grouped: dict[str, list[str]] = defaultdict(list)
    for record in await db_client.list_all_records(collection=TAGS, sort="tag"):
        grouped[record["task_id"]].append(record["tag"])
    return dict(grouped)


async def list_all_tags() -> list[str]:
    """Distinct tags across all tasks, sorted."""
    records = await db_client.list_all_records(collection=TAGS)
    return sorted({record["tag"] for record in records})


async def rename_tag(*, old: str, new: str) -> int:
    """Rename a tag everywhere, merging into `new` where a task already has it.

    Returns:
        Number of tag rows changed or merged
    """
    old, new = old.strip(), new.strip()
    if not old or not new:
        raise ValueError("Tag names must not be empty")
    if old == new:
        return 0

    with span("tags.rename_tag"):
        rows = await db_client.list_all_records(collection=TAGS, filter_query=f'tag = "{sanitize_param(old)}"')
        already_tagged = {
            record["task_id"]
            for record in await db_client.list_all_records(
                collection=TAGS, filter_query=f'tag = "{sanitize_param(new)}"'
            )
        }
        for record in rows:
            if record["task_id"] in already_tagged:
                await db_client.delete_record(collection=TAGS, record_id=record["id"])
            else:
                await db_client.update_record(collection=TAGS, record_id=record["id"], data={"tag": new})

        logger.info("Renamed tag", extra={"old": old, "new": new, "rows": len(rows)})
        return len(rows)

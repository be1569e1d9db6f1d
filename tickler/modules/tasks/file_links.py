"""Linked files: SHA-256 references from a task into the external file registry."""

import logging
import re

from tickler.core import db_client
from tickler.core.db_client import sanitize_param


logger = logging.getLogger(__name__)

FILE_LINKS = "task_file_links"

_SHA256 = re.compile(r"^[0-9A-F]{64}$")


def normalize_sha(value: str) -> str:
    """Trim and upper-case a SHA-256 hex digest.

    Raises:
        ValueError: If the value is not 64 hex characters
    """
    sha = str(value or "").strip().upper()
    if not _SHA256.match(sha):
        raise ValueError(f"Not a SHA-256 digest: {value!r}")
    return sha


async def list_task_file_links(*, task_id: str) -> list[str]:
    """SHA-256 digests linked to a task, in link order."""
    records = await db_client.list_all_records(
        collection=FILE_LINKS,
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
    )
    return [record["file_sha256"] for record in records]


async def set_task_file_links(*, task_id: str, shas: list[str]) -> list[str]:
    """Replace a task's linked files."""
    wanted = list(dict.fromkeys(normalize_sha(sha) for sha in shas))
    await delete_task_file_links(task_id=task_id)
    for sha in wanted:
        await db_client.create_record(collection=FILE_LINKS, data={"task_id": task_id, "file_sha256": sha})
    logger.info("Set task file links", extra={"task_id": task_id, "count": len(wanted)})
    return wanted


async def delete_task_file_links(*, task_id: str) -> int:
    return await db_client.delete_records(
        collection=FILE_LINKS,
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
    )

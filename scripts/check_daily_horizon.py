#!/usr/bin/env python3
"""Create a daily task in a scratch database and check the horizon is honoured on edit."""

import asyncio
import logging
import sys
import tempfile
from datetime import date
from pathlib import Path

from tickler.core import db_client
from tickler.core.config import settings
from tickler.domain import DailyPattern, TaskSpec
from tickler.modules.occurrences import service as occurrence_service
from tickler.modules.tasks import service as task_service


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def check(db_path: Path) -> bool:
    settings.sqlite_db_path = str(db_path)
    await db_client.init_db()

    today = date.today()
    spec = TaskSpec(title="Water plants", start_date=today, recurrence=DailyPattern(horizon_days=3))
    detail = await task_service.create_task(spec=spec, today=today)
    ok = True

    occurrences = await occurrence_service.list_task_occurrences(task_id=detail.task.id)
    logger.info(f"Horizon 3: {len(occurrences)} occurrences")
    ok &= len(occurrences) == 3

    spec = spec.model_copy(update={"recurrence": DailyPattern(horizon_days=7)})
    await task_service.update_task(task_id=detail.task.id, spec=spec, today=today)

    occurrences = await occurrence_service.list_task_occurrences(task_id=detail.task.id)
    logger.info(f"Horizon 7: {len(occurrences)} occurrences")
    ok &= len(occurrences) == 7
    ok &= occurrences[0].scheduled_date == today.isoformat()

    await db_client.close_connection()
    return ok


def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ok = asyncio.run(check(Path(tmp) / "tickler.db"))
    if not ok:
        logger.error("Daily horizon check failed")
        sys.exit(1)
    logger.info("Daily horizon check passed")


if __name__ == "__main__":
    main()

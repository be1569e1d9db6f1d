"""SQLite schema management (code-first approach)."""

import logging

from tickler.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema, parents first
COLLECTIONS = [
    "tasks",
    "recurrence_rules",
    "task_occurrences",
    "task_events",
    "task_tags",
    "task_file_links",
]


_TIMESTAMPS = """
    created TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP"""


def _get_collection_schema(*, collection_name: str) -> str:
    """Get the CREATE TABLE statement for a collection."""
    schemas = {
        "tasks": f"""
            CREATE TABLE IF NOT EXISTS tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                due_at TEXT,
                start_date TEXT,
                start_time TEXT,
                is_recurring INTEGER NOT NULL DEFAULT 0,
                require_complete_comment INTEGER NOT NULL DEFAULT 0,{_TIMESTAMPS}
            )""",
        "recurrence_rules": f"""
            CREATE TABLE IF NOT EXISTS recurrence_rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id INTEGER NOT NULL UNIQUE REFERENCES tasks(id) ON DELETE CASCADE,
                freq TEXT NOT NULL DEFAULT 'monthly'
                    CHECK (freq IN ('daily', 'weekly', 'monthly', 'yearly')),
                count INTEGER NOT NULL DEFAULT 1,
                interval INTEGER NOT NULL DEFAULT 1,
                interval_anchor TEXT NOT NULL DEFAULT 'scheduled'
                    CHECK (interval_anchor IN ('scheduled', 'completed')),
                horizon_days INTEGER,
                monthly_day INTEGER,
                monthly_nth INTEGER,
                monthly_nth_dow INTEGER,
                weekly_dows INTEGER,
                yearly_month INTEGER,
                manual_next_due INTEGER NOT NULL DEFAULT 0,
                occurrence_offset_days INTEGER NOT NULL DEFAULT 0,{_TIMESTAMPS}
            )""",
        "task_occurrences": f"""
            CREATE TABLE IF NOT EXISTS task_occurrences (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                scheduled_date TEXT NOT NULL,
                scheduled_time TEXT,
                deferred_date TEXT,
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'done')),
                completed_at TEXT,{_TIMESTAMPS},
                UNIQUE (task_id, scheduled_date)
            )""",
        # Events outlive their task, so they carry no foreign keys
        "task_events": f"""
            CREATE TABLE IF NOT EXISTS task_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts TEXT NOT NULL,
                kind TEXT NOT NULL,
                source TEXT NOT NULL CHECK (source IN ('user', 'system')),
                task_id INTEGER,
                occurrence_id INTEGER,
                details TEXT,{_TIMESTAMPS}
            )""",
        "task_tags": f"""
            CREATE TABLE IF NOT EXISTS task_tags (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                tag TEXT NOT NULL,{_TIMESTAMPS},
                UNIQUE (task_id, tag)
            )""",
        "task_file_links": f"""
            CREATE TABLE IF NOT EXISTS task_file_links (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                file_sha256 TEXT NOT NULL,{_TIMESTAMPS},
                UNIQUE (task_id, file_sha256)
            )""",
    }
    return schemas[collection_name]


INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_occurrences_date ON task_occurrences (scheduled_date)",
    "CREATE INDEX IF NOT EXISTS idx_occurrences_task_status ON task_occurrences (task_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_events_task ON task_events (task_id, ts)",
    "CREATE INDEX IF NOT EXISTS idx_tags_tag ON task_tags (tag)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create every table and index if missing (idempotent).

    Args:
        db_path: Optional database file. If not provided, uses settings.sqlite_db_path.
    """
    logger.info("Starting SQLite schema sync...")

    conn = await db_client.get_connection(db_path=db_path)
    for collection_name in COLLECTIONS:
        await conn.execute(_get_collection_schema(collection_name=collection_name))
    for statement in INDEXES:
        await conn.execute(statement)
    await conn.commit()

    logger.info("SQLite schema sync complete", extra={"collections": len(COLLECTIONS)})

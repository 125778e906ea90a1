"""SQLite schema management (code-first approach)."""

import logging

from evv.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections, parents first
COLLECTIONS = [
    "schedules",
    "visits",
    "tasks",
]


_DDL = [
    """
    CREATE TABLE IF NOT EXISTS schedules (
        id TEXT PRIMARY KEY,
        client_name TEXT NOT NULL,
        shift_time TEXT NOT NULL,
        location TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'upcoming'
            CHECK (status IN ('upcoming', 'in_progress', 'completed', 'missed')),
        visit_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_schedules_created_at ON schedules (created_at)",
    "CREATE INDEX IF NOT EXISTS idx_schedules_status ON schedules (status)",
    # duration_minutes is derived from the check-in/check-out times and is never written directly
    """
    CREATE TABLE IF NOT EXISTS visits (
        id TEXT PRIMARY KEY,
        schedule_id TEXT NOT NULL REFERENCES schedules (id) ON DELETE CASCADE,
        start_time TEXT NOT NULL,
        start_latitude REAL NOT NULL,
        start_longitude REAL NOT NULL,
        end_time TEXT,
        end_latitude REAL,
        end_longitude REAL,
        status TEXT NOT NULL DEFAULT 'in_progress'
            CHECK (status IN ('not_started', 'in_progress', 'completed')),
        duration_minutes INTEGER GENERATED ALWAYS AS (
            CASE
                WHEN end_time IS NULL THEN NULL
                ELSE CAST(ROUND((julianday(end_time) - julianday(start_time)) * 1440, 6) AS INTEGER)
            END
        ) VIRTUAL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # One visit per schedule; concurrent starts for the same schedule fail here
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_visits_schedule_id ON visits (schedule_id)",
    "CREATE INDEX IF NOT EXISTS idx_visits_status ON visits (status)",
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        schedule_id TEXT NOT NULL REFERENCES schedules (id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'completed', 'not_completed')),
        reason TEXT,
        completed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tasks_schedule_id ON tasks (schedule_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks (status)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist yet."""
    async with db_client.transaction(db_path=db_path):
        for statement in _DDL:
            await db_client.execute(statement)

    logger.info("Database schema initialized", extra={"collections": COLLECTIONS})

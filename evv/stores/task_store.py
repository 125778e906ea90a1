"""Task persistence and task aggregates."""

import logging

from evv.core import clock, db_client
from evv.core.db_client import sanitize_param
from evv.domain.task import Task, TaskCreate, TaskStatus
from evv.models.service_models import TaskStats


logger = logging.getLogger(__name__)

COLLECTION = "tasks"
COLUMNS = "id, schedule_id, name, description, status, reason, completed_at, created_at, updated_at"


def _schedule_filter(schedule_id: str) -> str:
    return f'schedule_id = "{sanitize_param(schedule_id)}"'


async def get_by_id(*, task_id: str) -> Task:
    """Get a task by ID.

    Raises:
        db_client.RecordNotFoundError: If the task does not exist
    """
    record = await db_client.get_record(collection=COLLECTION, record_id=task_id, columns=COLUMNS)
    return Task.model_validate(record)


async def list_by_schedule_id(*, schedule_id: str) -> list[Task]:
    """List a schedule's tasks, oldest first."""
    records = await db_client.list_records(
        collection=COLLECTION,
        per_page=None,
        filter_query=_schedule_filter(schedule_id),
        sort="+created_at",
        columns=COLUMNS,
    )
    return [Task.model_validate(r) for r in records]


async def list_by_status(*, status: TaskStatus) -> list[Task]:
    """List tasks in one status, newest first."""
    records = await db_client.list_records(
        collection=COLLECTION,
        per_page=None,
        filter_query=f'status = "{sanitize_param(status)}"',
        sort="-created_at",
        columns=COLUMNS,
    )
    return [Task.model_validate(r) for r in records]


async def list_incomplete_with_reason() -> list[Task]:
    """List not-completed tasks that carry a reason, newest first."""
    rows = await db_client.fetch_all(
        f"SELECT {COLUMNS} FROM tasks WHERE status = ? AND reason IS NOT NULL "  # noqa: S608
        "ORDER BY created_at DESC, rowid DESC",
        [TaskStatus.NOT_COMPLETED],
    )
    return [Task.model_validate(row) for row in rows]


async def create(*, schedule_id: str, name: str, description: str | None = None) -> Task:
    """Insert a pending task for a schedule."""
    record = await db_client.create_record(
        collection=COLLECTION,
        data={
            "schedule_id": schedule_id,
            "name": name,
            "description": description,
            "status": TaskStatus.PENDING,
            "reason": None,
            "completed_at": None,
        },
    )
    return Task.model_validate(record)


async def create_batch(*, schedule_id: str, tasks: list[TaskCreate]) -> list[Task]:
    """Insert several pending tasks one by one.

    Each insert commits on its own. The first failure is raised and the
    tasks inserted before it stay in place.
    """
    created = []
    for task in tasks:
        created.append(await create(schedule_id=schedule_id, name=task.name, description=task.description))

    logger.info("Created task batch", extra={"schedule_id": schedule_id, "count": len(created)})
    return created


async def update(*, task: Task) -> Task:
    """Overwrite the stored task with the given one."""
    record = await db_client.update_record(
        collection=COLLECTION,
        record_id=task.id,
        data={
            "name": task.name,
            "description": task.description,
            "status": task.status,
            "reason": task.reason,
            "completed_at": task.completed_at,
        },
    )
    return Task.model_validate(record)


async def update_status(*, task_id: str, status: TaskStatus, reason: str | None) -> Task:
    """Set status and reason; completed_at is stamped for completed tasks and cleared otherwise.

    Raises:
        db_client.RecordNotFoundError: If the task does not exist
    """
    completed_at = clock.utc_now() if status == TaskStatus.COMPLETED else None
    record = await db_client.update_record(
        collection=COLLECTION,
        record_id=task_id,
        data={"status": status, "reason": reason, "completed_at": completed_at},
    )
    return Task.model_validate(record)


async def update_reason(*, task_id: str, reason: str) -> Task:
    record = await db_client.update_record(collection=COLLECTION, record_id=task_id, data={"reason": reason})
    return Task.model_validate(record)


async def exists(*, task_id: str) -> bool:
    return await db_client.record_exists(collection=COLLECTION, filter_query=f'id = "{sanitize_param(task_id)}"')


async def delete(*, task_id: str) -> None:
    await db_client.delete_record(collection=COLLECTION, record_id=task_id)


async def stats_by_schedule(*, schedule_id: str) -> TaskStats:
    """Count a schedule's tasks per status."""
    counts = await db_client.count_by(
        collection=COLLECTION,
        column="status",
        filter_query=_schedule_filter(schedule_id),
    )
    return TaskStats.from_status_counts(counts)


async def overall_stats() -> TaskStats:
    """Count all tasks per status."""
    counts = await db_client.count_by(collection=COLLECTION, column="status")
    return TaskStats.from_status_counts(counts)


async def completion_rate(*, schedule_id: str) -> float:
    """Percentage of a schedule's tasks that are completed; 0.0 when it has none."""
    task_stats = await stats_by_schedule(schedule_id=schedule_id)
    if task_stats.total == 0:
        return 0.0
    return task_stats.completed / task_stats.total * 100

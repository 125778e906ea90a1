"""Task service for care-task CRUD, status updates and reporting."""

import logging

from pydantic import ValidationError

from evv.core import clock, db_client
from evv.core.errors import InvalidInputError, NotFoundError
from evv.core.logging import span
from evv.core.validators import is_valid_task_status
from evv.domain.task import Task, TaskCreate, TaskStatus
from evv.models.service_models import TaskReport, TaskStats
from evv.stores import schedule_store, task_store


logger = logging.getLogger(__name__)


def _require_task_status(status: str) -> TaskStatus:
    if not is_valid_task_status(status):
        raise InvalidInputError(f"Invalid task status: {status}", field="status")
    return TaskStatus(status)


def _require_reason(status: TaskStatus, reason: str | None) -> None:
    if status == TaskStatus.NOT_COMPLETED and not (reason and reason.strip()):
        raise InvalidInputError("A reason is required for not_completed tasks", field="reason")


def _validated_task_inputs(tasks: list[TaskCreate | dict]) -> list[TaskCreate]:
    try:
        return [task if isinstance(task, TaskCreate) else TaskCreate.model_validate(task) for task in tasks]
    except ValidationError as e:
        raise InvalidInputError(f"Invalid task: {e.errors()[0]['msg']}", field="name") from e


async def _require_schedule(schedule_id: str) -> None:
    try:
        await schedule_store.get_by_id(schedule_id=schedule_id)
    except db_client.RecordNotFoundError as e:
        raise NotFoundError(f"Schedule not found: {schedule_id}") from e


async def create_task(*, schedule_id: str, name: str, description: str | None = None) -> Task:
    """Create a pending task for a schedule.

    Raises:
        InvalidInputError: If the name is blank
        NotFoundError: If the schedule does not exist
    """
    with span("task_service.create_task"):
        (task_input,) = _validated_task_inputs([{"name": name, "description": description}])
        await _require_schedule(schedule_id)

        task = await task_store.create(schedule_id=schedule_id, name=task_input.name, description=description)
        logger.info("Created task", extra={"task_id": task.id, "schedule_id": schedule_id})
        return task


async def create_batch_tasks(*, schedule_id: str, tasks: list[TaskCreate | dict]) -> list[Task]:
    """Create several pending tasks for a schedule.

    The batch is not atomic: if one insert fails, the ones before it remain.

    Raises:
        InvalidInputError: If any task name is blank (nothing is written)
        NotFoundError: If the schedule does not exist
    """
    with span("task_service.create_batch_tasks"):
        task_inputs = _validated_task_inputs(tasks)
        await _require_schedule(schedule_id)
        return await task_store.create_batch(schedule_id=schedule_id, tasks=task_inputs)


async def get_task_by_id(*, task_id: str) -> Task:
    with span("task_service.get_task_by_id"):
        try:
            return await task_store.get_by_id(task_id=task_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Task not found: {task_id}") from e


async def get_tasks_by_schedule_id(*, schedule_id: str) -> list[Task]:
    """Tasks of a schedule, oldest first."""
    with span("task_service.get_tasks_by_schedule_id"):
        return await task_store.list_by_schedule_id(schedule_id=schedule_id)


async def get_tasks_by_status(*, status: str) -> list[Task]:
    with span("task_service.get_tasks_by_status"):
        return await task_store.list_by_status(status=_require_task_status(status))


async def update_task_status(*, task_id: str, status: str, reason: str | None = None) -> Task:
    """Move a task to a new status.

    completed_at is stamped when the task becomes completed and cleared otherwise.

    Args:
        task_id: Task ID
        status: New status
        reason: Required (non-blank) when status is not_completed

    Returns:
        The updated task

    Raises:
        InvalidInputError: If status is unknown or a required reason is missing
        NotFoundError: If the task does not exist
    """
    with span("task_service.update_task_status", task_id=task_id, status=status):
        new_status = _require_task_status(status)
        _require_reason(new_status, reason)

        if not await task_store.exists(task_id=task_id):
            raise NotFoundError(f"Task not found: {task_id}")

        try:
            task = await task_store.update_status(task_id=task_id, status=new_status, reason=reason)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Task not found: {task_id}") from e

        logger.info("Updated task status", extra={"task_id": task_id, "status": new_status})
        return task


async def update_task(
    *,
    task_id: str,
    name: str | None = None,
    description: str | None = None,
    status: str | None = None,
    reason: str | None = None,
) -> Task:
    """Partially update a task; empty or None values leave the field unchanged.

    Raises:
        InvalidInputError: If status is unknown or the result would break the reason rule
        NotFoundError: If the task does not exist
    """
    with span("task_service.update_task"):
        new_status = _require_task_status(status) if status else None
        if new_status is not None:
            _require_reason(new_status, reason)

        task = await get_task_by_id(task_id=task_id)
        changes: dict[str, object] = {}
        if name:
            changes["name"] = name
        if description:
            changes["description"] = description
        if reason is not None:
            changes["reason"] = reason
        if new_status is not None and new_status != task.status:
            changes["status"] = new_status
            changes["completed_at"] = clock.utc_now() if new_status == TaskStatus.COMPLETED else None

        try:
            updated = Task.model_validate({**task.model_dump(), **changes})
        except ValidationError as e:
            raise InvalidInputError(f"Invalid task update: {e.errors()[0]['msg']}", field="reason") from e

        return await task_store.update(task=updated)


async def mark_pending_tasks_as_not_completed(*, schedule_id: str, reason: str) -> list[Task]:
    """Mark every pending task of a schedule as not completed with the same reason.

    Stops at the first failure and raises it; tasks updated before it stay updated.
    """
    with span("task_service.mark_pending_tasks_as_not_completed"):
        updated = []
        for task in await task_store.list_by_schedule_id(schedule_id=schedule_id):
            if task.status != TaskStatus.PENDING:
                continue
            updated.append(await update_task_status(task_id=task.id, status=TaskStatus.NOT_COMPLETED, reason=reason))

        logger.info("Marked pending tasks as not completed", extra={"schedule_id": schedule_id, "count": len(updated)})
        return updated


async def update_task_reason(*, task_id: str, reason: str) -> Task:
    with span("task_service.update_task_reason"):
        if not reason or not reason.strip():
            raise InvalidInputError("Reason cannot be empty", field="reason")
        try:
            return await task_store.update_reason(task_id=task_id, reason=reason)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Task not found: {task_id}") from e


async def delete_task(*, task_id: str) -> None:
    with span("task_service.delete_task"):
        if not await task_store.exists(task_id=task_id):
            raise NotFoundError(f"Task not found: {task_id}")
        await task_store.delete(task_id=task_id)
        logger.info("Deleted task", extra={"task_id": task_id})


async def validate_task_update(*, task_id: str, schedule_id: str) -> None:
    """Check the task belongs to the given schedule.

    Raises:
        NotFoundError: If the task does not exist
        InvalidInputError: If the task belongs to another schedule
    """
    task = await get_task_by_id(task_id=task_id)
    if task.schedule_id != schedule_id:
        raise InvalidInputError("Task does not belong to the specified schedule", field="schedule_id")


async def get_task_stats_by_schedule(*, schedule_id: str) -> TaskStats:
    with span("task_service.get_task_stats_by_schedule"):
        return await task_store.stats_by_schedule(schedule_id=schedule_id)


async def get_task_completion_rate(*, schedule_id: str) -> float:
    with span("task_service.get_task_completion_rate"):
        return await task_store.completion_rate(schedule_id=schedule_id)


async def get_overall_task_stats() -> TaskStats:
    with span("task_service.get_overall_task_stats"):
        return await task_store.overall_stats()


async def get_incomplete_tasks() -> list[Task]:
    """Not-completed tasks that carry a reason, newest first."""
    with span("task_service.get_incomplete_tasks"):
        return await task_store.list_incomplete_with_reason()


async def get_tasks_requiring_attention() -> list[Task]:
    """Incomplete tasks whose reason is not blank."""
    incomplete = await get_incomplete_tasks()
    return [task for task in incomplete if task.reason and task.reason.strip()]


async def generate_task_report(*, schedule_id: str) -> TaskReport:
    """Summarize a schedule's tasks.

    Raises:
        NotFoundError: If the schedule does not exist
    """
    with span("task_service.generate_task_report"):
        try:
            schedule = await schedule_store.get_by_id(schedule_id=schedule_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Schedule not found: {schedule_id}") from e

        tasks = await task_store.list_by_schedule_id(schedule_id=schedule_id)
        stats = await task_store.stats_by_schedule(schedule_id=schedule_id)
        completion_rate = await task_store.completion_rate(schedule_id=schedule_id)

        return TaskReport(
            schedule_id=schedule.id,
            client_name=schedule.client_name,
            shift_time=schedule.shift_time,
            location=schedule.location,
            stats=stats,
            completion_rate=completion_rate,
            tasks=tasks,
            generated_at=clock.utc_now(),
        )

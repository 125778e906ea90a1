"""Schedule persistence: paging, search, aggregates and the detail view."""

import logging
from datetime import timedelta

from evv.core import clock, db_client
from evv.core.db_client import sanitize_param
from evv.domain.schedule import Schedule, ScheduleDetails, ScheduleStatus
from evv.domain.task import Task
from evv.domain.visit import Visit
from evv.models.service_models import SchedulePage, ScheduleStats


logger = logging.getLogger(__name__)

COLLECTION = "schedules"
COLUMNS = "id, client_name, shift_time, location, status, visit_id, created_at, updated_at"

_VISIT_COLUMNS = (
    "id, schedule_id, start_time, start_latitude, start_longitude, "
    "end_time, end_latitude, end_longitude, duration_minutes, status, created_at, updated_at"
)
_TASK_COLUMNS = "id, schedule_id, name, description, status, reason, completed_at, created_at, updated_at"


async def _page(*, filter_query: str, page: int, limit: int) -> SchedulePage:
    records = await db_client.list_records(
        collection=COLLECTION,
        page=page,
        per_page=limit,
        filter_query=filter_query,
        sort="-created_at",
        columns=COLUMNS,
    )
    total = await db_client.count_records(collection=COLLECTION, filter_query=filter_query)
    return SchedulePage.build(
        items=[Schedule.model_validate(r) for r in records],
        page=page,
        limit=limit,
        total=total,
    )


async def list_schedules(*, page: int, limit: int, status: str = "") -> SchedulePage:
    """List schedules newest first, optionally restricted to one status.

    An empty status means no status filter.
    """
    filter_query = f'status = "{sanitize_param(status)}"' if status else ""
    return await _page(filter_query=filter_query, page=page, limit=limit)


async def list_today() -> list[Schedule]:
    """List schedules created on the current UTC date, earliest shift first."""
    now = clock.utc_now()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)

    filter_query = (
        f'created_at >= "{clock.to_db_timestamp(day_start)}" && created_at < "{clock.to_db_timestamp(day_end)}"'
    )
    records = await db_client.list_records(
        collection=COLLECTION,
        per_page=None,
        filter_query=filter_query,
        sort="+shift_time",
        columns=COLUMNS,
    )
    return [Schedule.model_validate(r) for r in records]


async def list_upcoming(*, days: int) -> list[Schedule]:
    """List upcoming schedules created within the last `days` days, earliest shift first."""
    since = clock.utc_now() - timedelta(days=days)
    records = await db_client.list_records(
        collection=COLLECTION,
        per_page=None,
        filter_query=f'status = "{ScheduleStatus.UPCOMING}" && created_at >= "{clock.to_db_timestamp(since)}"',
        sort="+shift_time",
        columns=COLUMNS,
    )
    return [Schedule.model_validate(r) for r in records]


async def get_by_id(*, schedule_id: str) -> Schedule:
    """Get a schedule by ID.

    Raises:
        db_client.RecordNotFoundError: If the schedule does not exist
    """
    record = await db_client.get_record(collection=COLLECTION, record_id=schedule_id, columns=COLUMNS)
    return Schedule.model_validate(record)


async def get_with_details(*, schedule_id: str) -> ScheduleDetails:
    """Get a schedule with its most recent visit and its tasks in creation order.

    Raises:
        db_client.RecordNotFoundError: If the schedule does not exist
    """
    record = await db_client.get_record(collection=COLLECTION, record_id=schedule_id, columns=COLUMNS)

    visit_row = await db_client.fetch_one(
        f"SELECT {_VISIT_COLUMNS} FROM visits WHERE schedule_id = ? "  # noqa: S608
        "ORDER BY created_at DESC, rowid DESC LIMIT 1",
        [schedule_id],
    )
    task_rows = await db_client.fetch_all(
        f"SELECT {_TASK_COLUMNS} FROM tasks WHERE schedule_id = ? ORDER BY created_at ASC, rowid ASC",  # noqa: S608
        [schedule_id],
    )

    return ScheduleDetails(
        **Schedule.model_validate(record).model_dump(),
        visit=Visit.model_validate(visit_row) if visit_row else None,
        tasks=[Task.model_validate(row) for row in task_rows],
    )


async def create(
    *,
    client_name: str,
    shift_time: str,
    location: str,
    status: ScheduleStatus = ScheduleStatus.UPCOMING,
) -> Schedule:
    """Insert a schedule as given."""
    record = await db_client.create_record(
        collection=COLLECTION,
        data={
            "client_name": client_name,
            "shift_time": shift_time,
            "location": location,
            "status": status,
            "visit_id": None,
        },
    )
    return Schedule.model_validate(record)


async def update(*, schedule: Schedule) -> Schedule:
    """Overwrite the stored schedule with the given one."""
    record = await db_client.update_record(
        collection=COLLECTION,
        record_id=schedule.id,
        data={
            "client_name": schedule.client_name,
            "shift_time": schedule.shift_time,
            "location": schedule.location,
            "status": schedule.status,
            "visit_id": schedule.visit_id,
        },
    )
    return Schedule.model_validate(record)


async def update_status(*, schedule_id: str, status: ScheduleStatus) -> None:
    """Set the status of a schedule.

    Raises:
        db_client.RecordNotFoundError: If the schedule does not exist
    """
    await db_client.update_record(collection=COLLECTION, record_id=schedule_id, data={"status": status})


async def set_visit(*, schedule_id: str, visit_id: str) -> None:
    """Record which visit belongs to the schedule."""
    await db_client.update_record(collection=COLLECTION, record_id=schedule_id, data={"visit_id": visit_id})


async def delete(*, schedule_id: str) -> None:
    """Delete a schedule; its visit and tasks go with it."""
    await db_client.delete_record(collection=COLLECTION, record_id=schedule_id)


async def stats() -> ScheduleStats:
    """Count schedules per status."""
    counts = await db_client.count_by(collection=COLLECTION, column="status")
    return ScheduleStats.from_status_counts(counts)


async def search(*, query: str, page: int, limit: int) -> SchedulePage:
    """Case-insensitive substring search over client name and location."""
    term = sanitize_param(query)
    filter_query = f'(client_name ~ "{term}" || location ~ "{term}")'
    return await _page(filter_query=filter_query, page=page, limit=limit)

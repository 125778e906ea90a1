"""Visit persistence and visit aggregates."""

import logging
from datetime import datetime

from evv.core import db_client
from evv.core.db_client import sanitize_param
from evv.domain.visit import Visit, VisitStatus
from evv.models.service_models import DurationStats, VisitStats


logger = logging.getLogger(__name__)

COLLECTION = "visits"
COLUMNS = (
    "id, schedule_id, start_time, start_latitude, start_longitude, "
    "end_time, end_latitude, end_longitude, duration_minutes, status, created_at, updated_at"
)


async def get_by_id(*, visit_id: str) -> Visit:
    """Get a visit by ID.

    Raises:
        db_client.RecordNotFoundError: If the visit does not exist
    """
    record = await db_client.get_record(collection=COLLECTION, record_id=visit_id, columns=COLUMNS)
    return Visit.model_validate(record)


async def get_by_schedule_id(*, schedule_id: str) -> Visit:
    """Get the most recent visit for a schedule.

    Raises:
        db_client.RecordNotFoundError: If the schedule has no visit
    """
    record = await db_client.get_first_record(
        collection=COLLECTION,
        filter_query=f'schedule_id = "{sanitize_param(schedule_id)}"',
        sort="-created_at",
        columns=COLUMNS,
    )
    if record is None:
        msg = f"No visit found for schedule: {schedule_id}"
        raise db_client.RecordNotFoundError(msg)
    return Visit.model_validate(record)


async def create(
    *,
    schedule_id: str,
    start_time: datetime,
    start_latitude: float,
    start_longitude: float,
    status: VisitStatus = VisitStatus.IN_PROGRESS,
) -> Visit:
    """Insert a visit as given.

    Raises:
        db_client.DuplicateRecordError: If the schedule already has a visit
    """
    record = await db_client.create_record(
        collection=COLLECTION,
        data={
            "schedule_id": schedule_id,
            "start_time": start_time,
            "start_latitude": start_latitude,
            "start_longitude": start_longitude,
            "status": status,
        },
    )
    return Visit.model_validate(record)


async def start(*, schedule_id: str, start_time: datetime, latitude: float, longitude: float) -> Visit:
    """Check in: create an in-progress visit for the schedule."""
    visit = await create(
        schedule_id=schedule_id,
        start_time=start_time,
        start_latitude=latitude,
        start_longitude=longitude,
        status=VisitStatus.IN_PROGRESS,
    )
    logger.info("Visit started", extra={"visit_id": visit.id, "schedule_id": schedule_id})
    return visit


async def end(*, visit_id: str, end_time: datetime, latitude: float, longitude: float) -> Visit:
    """Check out: record the end point and complete the visit.

    The row is read back so duration_minutes comes from the stored column.

    Raises:
        db_client.RecordNotFoundError: If the visit does not exist
    """
    await db_client.update_record(
        collection=COLLECTION,
        record_id=visit_id,
        data={
            "end_time": end_time,
            "end_latitude": latitude,
            "end_longitude": longitude,
            "status": VisitStatus.COMPLETED,
        },
    )
    visit = await get_by_id(visit_id=visit_id)
    logger.info("Visit ended", extra={"visit_id": visit_id, "duration_minutes": visit.duration_minutes})
    return visit


async def update_status(*, visit_id: str, status: VisitStatus) -> None:
    """Set the status of a visit.

    Raises:
        db_client.RecordNotFoundError: If the visit does not exist
    """
    await db_client.update_record(collection=COLLECTION, record_id=visit_id, data={"status": status})


async def exists_for_schedule(*, schedule_id: str) -> bool:
    return await db_client.record_exists(
        collection=COLLECTION,
        filter_query=f'schedule_id = "{sanitize_param(schedule_id)}"',
    )


async def stats() -> VisitStats:
    """Count visits per status."""
    counts = await db_client.count_by(collection=COLLECTION, column="status")
    return VisitStats.from_status_counts(counts)


async def duration_stats() -> DurationStats:
    """Average, shortest and longest duration over visits that have one."""
    row = await db_client.fetch_one(
        """
        SELECT
            AVG(duration_minutes) AS avg_minutes,
            MIN(duration_minutes) AS min_minutes,
            MAX(duration_minutes) AS max_minutes,
            COUNT(duration_minutes) AS total_completed
        FROM visits
        WHERE duration_minutes IS NOT NULL
        """
    )
    if row is None:
        return DurationStats(avg_minutes=None, min_minutes=None, max_minutes=None, total_completed=0)
    return DurationStats.model_validate(row)


async def list_by_status(*, status: VisitStatus) -> list[Visit]:
    """List visits in one status, newest first."""
    records = await db_client.list_records(
        collection=COLLECTION,
        per_page=None,
        filter_query=f'status = "{sanitize_param(status)}"',
        sort="-created_at",
        columns=COLUMNS,
    )
    return [Visit.model_validate(r) for r in records]

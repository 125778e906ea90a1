"""Visit service: check-in/check-out state machine and visit analytics.

A visit moves not_started -> in_progress -> completed and is never reopened.
Starting and ending a visit each touch two aggregates (the visit and its
schedule), so both run as a single unit of work.
"""

import logging
from datetime import datetime, timedelta

from evv.core import clock, db_client
from evv.core.config import constants
from evv.core.errors import ConflictError, InvalidInputError, NotFoundError
from evv.core.logging import span
from evv.core.validators import is_valid_coordinates, is_valid_visit_status
from evv.domain.schedule import ScheduleStatus
from evv.domain.visit import Visit, VisitStatus
from evv.models.service_models import DurationStats, VisitStats
from evv.stores import schedule_store, visit_store


logger = logging.getLogger(__name__)

_VISIT_STATUS_ORDER = [VisitStatus.NOT_STARTED, VisitStatus.IN_PROGRESS, VisitStatus.COMPLETED]


def _require_coordinates(latitude: float, longitude: float, *, field: str = "coordinates") -> None:
    if not is_valid_coordinates(latitude, longitude):
        msg = f"Invalid coordinates: ({latitude}, {longitude})"
        raise InvalidInputError(msg, field=field)


def _require_visit_status(status: str) -> VisitStatus:
    if not is_valid_visit_status(status):
        raise InvalidInputError(f"Invalid visit status: {status}", field="status")
    return VisitStatus(status)


async def start_visit(*, schedule_id: str, start_time: datetime, latitude: float, longitude: float) -> Visit:
    """Check in to a schedule.

    Args:
        schedule_id: Schedule being visited
        start_time: Check-in time; naive values are taken as UTC
        latitude: Check-in latitude
        longitude: Check-in longitude

    Returns:
        The new in-progress visit

    Raises:
        InvalidInputError: If coordinates are out of range or start_time is more
            than the grace period in the past
        NotFoundError: If the schedule does not exist
        ConflictError: If the schedule already has a visit
    """
    with span("visit_service.start_visit", schedule_id=schedule_id):
        _require_coordinates(latitude, longitude)
        start_time = clock.ensure_utc(start_time)

        try:
            async with db_client.transaction():
                try:
                    await schedule_store.get_by_id(schedule_id=schedule_id)
                except db_client.RecordNotFoundError as e:
                    raise NotFoundError(f"Schedule not found: {schedule_id}") from e

                if await visit_store.exists_for_schedule(schedule_id=schedule_id):
                    raise ConflictError(f"Visit already exists for schedule: {schedule_id}")

                earliest = clock.utc_now() - timedelta(minutes=constants.VISIT_START_GRACE_MINUTES)
                if start_time < earliest:
                    raise InvalidInputError("Start time cannot be in the past", field="start_time")

                visit = await visit_store.start(
                    schedule_id=schedule_id,
                    start_time=start_time,
                    latitude=latitude,
                    longitude=longitude,
                )
                await schedule_store.update_status(schedule_id=schedule_id, status=ScheduleStatus.IN_PROGRESS)
                await schedule_store.set_visit(schedule_id=schedule_id, visit_id=visit.id)
        except db_client.DuplicateRecordError as e:
            raise ConflictError(f"Visit already exists for schedule: {schedule_id}") from e

        logger.info("Started visit", extra={"visit_id": visit.id, "schedule_id": schedule_id})
        return visit


async def end_visit(*, schedule_id: str, end_time: datetime, latitude: float, longitude: float) -> Visit:
    """Check out of a schedule's visit.

    Raises:
        InvalidInputError: If coordinates are out of range, end_time precedes the
            start, or end_time is too far in the future
        NotFoundError: If the schedule has no visit
        ConflictError: If the visit is already completed
    """
    with span("visit_service.end_visit", schedule_id=schedule_id):
        _require_coordinates(latitude, longitude)
        end_time = clock.ensure_utc(end_time)

        async with db_client.transaction():
            try:
                visit = await visit_store.get_by_schedule_id(schedule_id=schedule_id)
            except db_client.RecordNotFoundError as e:
                raise NotFoundError(f"No visit found for schedule: {schedule_id}") from e

            if visit.status == VisitStatus.COMPLETED:
                raise ConflictError(f"Visit already completed: {visit.id}")

            if end_time < visit.start_time:
                raise InvalidInputError("End time cannot be before start time", field="end_time")

            latest = clock.utc_now() + timedelta(hours=constants.VISIT_END_FUTURE_TOLERANCE_HOURS)
            if end_time > latest:
                raise InvalidInputError("End time cannot be too far in the future", field="end_time")

            visit = await visit_store.end(visit_id=visit.id, end_time=end_time, latitude=latitude, longitude=longitude)
            await schedule_store.update_status(schedule_id=schedule_id, status=ScheduleStatus.COMPLETED)

        logger.info(
            "Ended visit",
            extra={"visit_id": visit.id, "schedule_id": schedule_id, "duration_minutes": visit.duration_minutes},
        )
        return visit


async def validate_start_visit(*, schedule_id: str) -> None:
    """Check, without writing, that a visit could be started for the schedule.

    Raises:
        NotFoundError: If the schedule does not exist
        ConflictError: If a visit exists already or the schedule is completed
    """
    with span("visit_service.validate_start_visit"):
        try:
            schedule = await schedule_store.get_by_id(schedule_id=schedule_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Schedule not found: {schedule_id}") from e

        if await visit_store.exists_for_schedule(schedule_id=schedule_id):
            raise ConflictError(f"Visit already exists for schedule: {schedule_id}")

        if schedule.status == ScheduleStatus.COMPLETED:
            raise ConflictError(f"Schedule already completed: {schedule_id}")


def validate_visit_data(
    *,
    start_latitude: float,
    start_longitude: float,
    end_latitude: float | None = None,
    end_longitude: float | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> None:
    """Check visit coordinates and time ordering without touching the store.

    End coordinates are only checked when end_time is given.
    """
    _require_coordinates(start_latitude, start_longitude, field="start_coordinates")

    if end_time is not None:
        if end_latitude is None or end_longitude is None:
            raise InvalidInputError("End coordinates are required with an end time", field="end_coordinates")
        _require_coordinates(end_latitude, end_longitude, field="end_coordinates")

    if start_time is not None and end_time is not None:
        if clock.ensure_utc(end_time) < clock.ensure_utc(start_time):
            raise InvalidInputError("End time must be after start time", field="end_time")


def calculate_visit_duration(visit: Visit) -> str:
    """Human-readable visit length: "In progress", "45m" or "2h 5m"."""
    minutes = visit.duration_minutes
    if minutes is None:
        return "In progress"

    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


async def get_visit_by_id(*, visit_id: str) -> Visit:
    with span("visit_service.get_visit_by_id"):
        try:
            return await visit_store.get_by_id(visit_id=visit_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Visit not found: {visit_id}") from e


async def get_visit_by_schedule_id(*, schedule_id: str) -> Visit:
    """Most recent visit for a schedule."""
    with span("visit_service.get_visit_by_schedule_id"):
        try:
            return await visit_store.get_by_schedule_id(schedule_id=schedule_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"No visit found for schedule: {schedule_id}") from e


async def get_visit_summary(*, schedule_id: str) -> Visit:
    """Visit for a schedule with its duration filled in when it has ended."""
    return await get_visit_by_schedule_id(schedule_id=schedule_id)


async def update_visit_status(*, visit_id: str, status: str) -> Visit:
    """Move a visit forward to status.

    Setting the current status again is a no-op. Completion carries an end
    time and location, so it only happens through end_visit.

    Raises:
        InvalidInputError: If status is not a visit status, or is completed
        NotFoundError: If the visit does not exist
        ConflictError: If the visit is completed, or status would move it backwards
    """
    with span("visit_service.update_visit_status"):
        new_status = _require_visit_status(status)
        visit = await get_visit_by_id(visit_id=visit_id)

        if new_status == visit.status:
            return visit
        if visit.status == VisitStatus.COMPLETED:
            raise ConflictError(f"Cannot reopen completed visit: {visit_id}")
        if new_status == VisitStatus.COMPLETED:
            raise InvalidInputError("Visits are completed by ending them with end_visit", field="status")
        if _VISIT_STATUS_ORDER.index(new_status) < _VISIT_STATUS_ORDER.index(visit.status):
            raise ConflictError(f"Visit status cannot move from {visit.status} back to {new_status}")

        await visit_store.update_status(visit_id=visit_id, status=new_status)
        return await visit_store.get_by_id(visit_id=visit_id)


async def get_visit_stats() -> VisitStats:
    with span("visit_service.get_visit_stats"):
        return await visit_store.stats()


async def get_visit_duration_stats() -> DurationStats:
    with span("visit_service.get_visit_duration_stats"):
        return await visit_store.duration_stats()


async def get_average_visit_duration() -> timedelta | None:
    """Average length of visits that have ended, or None if there are none."""
    duration_stats = await get_visit_duration_stats()
    if duration_stats.avg_minutes is None:
        return None
    return timedelta(minutes=duration_stats.avg_minutes)


async def get_visits_by_status(*, status: str) -> list[Visit]:
    with span("visit_service.get_visits_by_status"):
        return await visit_store.list_by_status(status=_require_visit_status(status))


async def get_active_visits() -> list[Visit]:
    """Visits currently in progress, newest first."""
    with span("visit_service.get_active_visits"):
        return await visit_store.list_by_status(status=VisitStatus.IN_PROGRESS)

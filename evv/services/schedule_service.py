"""Schedule service: listing, search, lifecycle updates and analytics."""

import logging
from collections import Counter

from evv.core import db_client
from evv.core.config import constants, settings
from evv.core.errors import InvalidInputError, NotFoundError, StorageError
from evv.core.logging import span
from evv.core.validators import is_valid_pagination, is_valid_schedule_status, is_valid_shift_time
from evv.domain.schedule import Schedule, ScheduleDetails, ScheduleStatus
from evv.models.service_models import (
    DataSource,
    GeoPoint,
    ScheduleAnalytics,
    ScheduleList,
    SchedulePage,
    SchedulesByStatus,
    ScheduleStats,
    TaskStats,
    VisitAnalytics,
)
from evv.services import fallback_data, visit_service
from evv.stores import schedule_store, task_store


logger = logging.getLogger(__name__)


def _fallback_enabled(use_fallback: bool | None) -> bool:
    if use_fallback is None:
        return settings.use_fallback_on_error
    return use_fallback


def _log_fallback(operation: str, error: StorageError) -> None:
    logger.warning(
        "Serving demonstration data after storage failure",
        extra={"operation": operation, "error": str(error)},
    )


def _validate_page(page: int, limit: int) -> None:
    if not is_valid_pagination(page, limit):
        msg = f"Invalid pagination: page must be >= 1 and limit between 1 and {constants.MAX_PAGE_LIMIT}"
        raise InvalidInputError(msg, field="limit")


def _validate_text(value: str, field: str) -> str:
    """Strip and length-check a descriptive schedule field."""
    value = value.strip()
    if not constants.MIN_NAME_LENGTH <= len(value) <= constants.MAX_NAME_LENGTH:
        msg = f"{field} must be between {constants.MIN_NAME_LENGTH} and {constants.MAX_NAME_LENGTH} characters"
        raise InvalidInputError(msg, field=field)
    return value


def _validate_shift_time(shift_time: str) -> str:
    if not is_valid_shift_time(shift_time):
        msg = f"Invalid shift time format: {shift_time!r}, expected HH:MM-HH:MM"
        raise InvalidInputError(msg, field="shift_time")
    return shift_time


def _fallback_page(items: list[Schedule], page: int, limit: int) -> SchedulePage:
    start = (page - 1) * limit
    result = SchedulePage.build(items=items[start : start + limit], page=page, limit=limit, total=len(items))
    result.source = DataSource.FALLBACK
    return result


async def get_schedules(
    *,
    page: int = constants.DEFAULT_PAGE,
    limit: int = constants.DEFAULT_PAGE_LIMIT,
    status: str = "",
    use_fallback: bool | None = None,
) -> SchedulePage:
    """List schedules newest first.

    Args:
        page: 1-indexed page number
        limit: Page size (1-100)
        status: Optional status filter; empty means all statuses
        use_fallback: Serve demonstration data on storage failure
            (defaults to settings.use_fallback_on_error)

    Returns:
        Page of schedules, tagged with where it came from

    Raises:
        InvalidInputError: If pagination or status is invalid
        StorageError: If the store fails and fallback is disabled
    """
    with span("schedule_service.get_schedules"):
        _validate_page(page, limit)
        if status and not is_valid_schedule_status(status):
            raise InvalidInputError(f"Invalid schedule status: {status}", field="status")

        try:
            return await schedule_store.list_schedules(page=page, limit=limit, status=status)
        except StorageError as e:
            if not _fallback_enabled(use_fallback):
                raise
            _log_fallback("get_schedules", e)
            items = [s for s in fallback_data.schedules() if not status or s.status == status]
            return _fallback_page(items, page, limit)


async def get_today_schedules(*, use_fallback: bool | None = None) -> ScheduleList:
    """List schedules created today (UTC), earliest shift first."""
    with span("schedule_service.get_today_schedules"):
        try:
            return ScheduleList(items=await schedule_store.list_today())
        except StorageError as e:
            if not _fallback_enabled(use_fallback):
                raise
            _log_fallback("get_today_schedules", e)
            return ScheduleList(items=fallback_data.today_schedules(), source=DataSource.FALLBACK)


async def get_upcoming_schedules(*, days: int = constants.UPCOMING_WINDOW_DAYS) -> list[Schedule]:
    """List schedules still upcoming that were created in the last `days` days.

    Raises:
        InvalidInputError: If days is not a positive integer
    """
    with span("schedule_service.get_upcoming_schedules", days=days):
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise InvalidInputError(f"Invalid window: {days!r} days, expected at least 1", field="days")
        return await schedule_store.list_upcoming(days=days)


async def get_schedule_by_id(*, schedule_id: str, use_fallback: bool | None = None) -> ScheduleDetails:
    """Get a schedule with its visit and tasks.

    Raises:
        NotFoundError: If the schedule does not exist (never answered from fallback data)
        StorageError: If the store fails and fallback is disabled
    """
    with span("schedule_service.get_schedule_by_id"):
        try:
            return await schedule_store.get_with_details(schedule_id=schedule_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Schedule not found: {schedule_id}") from e
        except StorageError as e:
            if not _fallback_enabled(use_fallback):
                raise
            _log_fallback("get_schedule_by_id", e)
            details = fallback_data.schedule_details(schedule_id)
            if details is None:
                raise NotFoundError(f"Schedule not found: {schedule_id}") from e
            return details


async def search_schedules(
    *,
    query: str,
    page: int = constants.DEFAULT_PAGE,
    limit: int = constants.DEFAULT_PAGE_LIMIT,
    use_fallback: bool | None = None,
) -> SchedulePage:
    """Case-insensitive search over client name and location."""
    with span("schedule_service.search_schedules"):
        _validate_page(page, limit)

        try:
            return await schedule_store.search(query=query, page=page, limit=limit)
        except StorageError as e:
            if not _fallback_enabled(use_fallback):
                raise
            _log_fallback("search_schedules", e)
            needle = query.lower()
            items = [
                s
                for s in fallback_data.schedules()
                if needle in s.client_name.lower() or needle in s.location.lower()
            ]
            return _fallback_page(items, page, limit)


async def get_schedule_stats(*, use_fallback: bool | None = None) -> ScheduleStats:
    """Count schedules per status."""
    with span("schedule_service.get_schedule_stats"):
        try:
            return await schedule_store.stats()
        except StorageError as e:
            if not _fallback_enabled(use_fallback):
                raise
            _log_fallback("get_schedule_stats", e)
            result = ScheduleStats.from_status_counts(Counter(s.status for s in fallback_data.schedules()))
            result.source = DataSource.FALLBACK
            return result


async def create_schedule(*, client_name: str, shift_time: str, location: str) -> Schedule:
    """Create an upcoming schedule.

    Args:
        client_name: Client receiving care (2-255 characters)
        shift_time: Shift window, HH:MM-HH:MM
        location: Address of the shift (2-255 characters)

    Returns:
        The created schedule

    Raises:
        InvalidInputError: If any field is malformed
    """
    with span("schedule_service.create_schedule"):
        schedule = await schedule_store.create(
            client_name=_validate_text(client_name, "client_name"),
            shift_time=_validate_shift_time(shift_time),
            location=_validate_text(location, "location"),
            status=ScheduleStatus.UPCOMING,
        )
        logger.info("Created schedule", extra={"schedule_id": schedule.id, "client_name": schedule.client_name})
        return schedule


async def update_schedule(
    *,
    schedule_id: str,
    client_name: str | None = None,
    shift_time: str | None = None,
    location: str | None = None,
) -> Schedule:
    """Update the descriptive fields of a schedule; fields left as None keep their value."""
    with span("schedule_service.update_schedule"):
        try:
            schedule = await schedule_store.get_by_id(schedule_id=schedule_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Schedule not found: {schedule_id}") from e

        if client_name is not None:
            schedule.client_name = _validate_text(client_name, "client_name")
        if shift_time is not None:
            schedule.shift_time = _validate_shift_time(shift_time)
        if location is not None:
            schedule.location = _validate_text(location, "location")

        return await schedule_store.update(schedule=schedule)


async def delete_schedule(*, schedule_id: str) -> None:
    """Delete a schedule together with its visit and tasks."""
    with span("schedule_service.delete_schedule"):
        try:
            await schedule_store.delete(schedule_id=schedule_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Schedule not found: {schedule_id}") from e
        logger.info("Deleted schedule", extra={"schedule_id": schedule_id})


async def update_schedule_status(*, schedule_id: str, status: str) -> None:
    """Set a schedule's status to any of its four values.

    Raises:
        InvalidInputError: If status is not a schedule status
        NotFoundError: If the schedule does not exist
    """
    with span("schedule_service.update_schedule_status"):
        if not is_valid_schedule_status(status):
            raise InvalidInputError(f"Invalid schedule status: {status}", field="status")

        try:
            await schedule_store.update_status(schedule_id=schedule_id, status=ScheduleStatus(status))
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Schedule not found: {schedule_id}") from e


async def get_schedules_by_status(*, status: str) -> SchedulesByStatus:
    """List up to one status-query page of schedules in a status, with the overall counts."""
    with span("schedule_service.get_schedules_by_status"):
        if not is_valid_schedule_status(status):
            raise InvalidInputError(f"Invalid schedule status: {status}", field="status")

        page = await schedule_store.list_schedules(page=1, limit=constants.STATUS_QUERY_LIMIT, status=status)
        summary = await schedule_store.stats()
        return SchedulesByStatus(status=ScheduleStatus(status), items=page.items, summary=summary)


async def get_schedule_analytics(*, schedule_id: str) -> ScheduleAnalytics:
    """Assemble task and visit figures for one schedule.

    Raises:
        NotFoundError: If the schedule does not exist
    """
    with span("schedule_service.get_schedule_analytics"):
        try:
            details = await schedule_store.get_with_details(schedule_id=schedule_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"Schedule not found: {schedule_id}") from e

        completion_rate = await task_store.completion_rate(schedule_id=schedule_id)
        task_stats = TaskStats.from_status_counts(Counter(t.status for t in details.tasks))

        visit_section = None
        if details.visit is not None:
            visit = details.visit
            end_location = None
            if visit.end_time is not None and visit.end_latitude is not None and visit.end_longitude is not None:
                end_location = GeoPoint(latitude=visit.end_latitude, longitude=visit.end_longitude)
            visit_section = VisitAnalytics(
                visit_id=visit.id,
                status=visit.status,
                start_time=visit.start_time,
                end_time=visit.end_time,
                duration_minutes=visit.duration_minutes or 0,
                duration_display=visit_service.calculate_visit_duration(visit),
                start_location=GeoPoint(latitude=visit.start_latitude, longitude=visit.start_longitude),
                end_location=end_location,
            )

        return ScheduleAnalytics(
            schedule_id=details.id,
            client_name=details.client_name,
            shift_time=details.shift_time,
            location=details.location,
            status=details.status,
            task_completion_rate=completion_rate,
            task_stats=task_stats,
            visit=visit_section,
        )

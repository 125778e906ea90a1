"""Stateless validation predicates.

Every function returns a boolean and never raises, whatever it is given.
"""

import math
import re

from evv.core.config import constants
from evv.domain.schedule import ScheduleStatus
from evv.domain.task import TaskStatus
from evv.domain.visit import VisitStatus


_SHIFT_TIME_PATTERN = re.compile(r"[0-9]{2}:[0-9]{2}-[0-9]{2}:[0-9]{2}")


def is_valid_coordinates(lat: float, lon: float) -> bool:
    """Return True if lat is within [-90, 90] and lon within [-180, 180].

    Only real numbers qualify; numeric strings and booleans are rejected.
    """
    for value in (lat, lon):
        if isinstance(value, bool) or not isinstance(value, int | float):
            return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def is_valid_shift_time(shift_time: str) -> bool:
    """Return True if shift_time has the literal shape HH:MM-HH:MM."""
    if not isinstance(shift_time, str):
        return False
    return _SHIFT_TIME_PATTERN.fullmatch(shift_time) is not None


def is_valid_schedule_status(status: str) -> bool:
    return ScheduleStatus.is_valid(status)


def is_valid_visit_status(status: str) -> bool:
    return VisitStatus.is_valid(status)


def is_valid_task_status(status: str) -> bool:
    return TaskStatus.is_valid(status)


def is_valid_pagination(page: int, limit: int) -> bool:
    """Return True for a 1-indexed page and a limit within the allowed page size."""
    if isinstance(page, bool) or isinstance(limit, bool):
        return False
    if not isinstance(page, int) or not isinstance(limit, int):
        return False
    return page >= 1 and 1 <= limit <= constants.MAX_PAGE_LIMIT

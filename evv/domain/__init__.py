"""Domain models and DTOs."""

from evv.domain.schedule import DataSource, Schedule, ScheduleDetails, ScheduleStatus
from evv.domain.task import Task, TaskCreate, TaskStatus
from evv.domain.visit import Visit, VisitStatus


__all__ = [
    "DataSource",
    "Schedule",
    "ScheduleDetails",
    "ScheduleStatus",
    "Task",
    "TaskCreate",
    "TaskStatus",
    "Visit",
    "VisitStatus",
]

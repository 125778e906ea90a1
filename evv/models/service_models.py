"""Pydantic models for store and service layer return types.

These models provide type safety at service boundaries, converting database
rows and aggregates into typed objects.
"""

from datetime import datetime
from math import ceil

from pydantic import BaseModel, Field

from evv.domain.schedule import DataSource, Schedule, ScheduleStatus
from evv.domain.task import Task, TaskStatus
from evv.domain.visit import VisitStatus


class SchedulePage(BaseModel):
    """One page of schedules."""

    items: list[Schedule]
    page: int
    limit: int
    total: int
    total_pages: int
    source: DataSource = DataSource.LIVE

    @classmethod
    def build(cls, *, items: list[Schedule], page: int, limit: int, total: int) -> "SchedulePage":
        """Build a page, deriving total_pages as ceil(total / limit)."""
        return cls(items=items, page=page, limit=limit, total=total, total_pages=ceil(total / limit))

class ScheduleStats(BaseModel):
    """Schedule counts.

    pending groups schedules not yet resolved (upcoming and in progress);
    not_completed counts missed schedules.
    """

    total: int
    completed: int
    pending: int
    not_completed: int
    upcoming: int
    in_progress: int
    missed: int
    source: DataSource = DataSource.LIVE

    @classmethod
    def from_status_counts(cls, counts: dict[str, int]) -> "ScheduleStats":
        """Fold raw per-status counts into the summary."""
        upcoming = counts.get(ScheduleStatus.UPCOMING, 0)
        in_progress = counts.get(ScheduleStatus.IN_PROGRESS, 0)
        completed = counts.get(ScheduleStatus.COMPLETED, 0)
        missed = counts.get(ScheduleStatus.MISSED, 0)
        return cls(
            total=sum(counts.values()),
            completed=completed,
            pending=upcoming + in_progress,
            not_completed=missed,
            upcoming=upcoming,
            in_progress=in_progress,
            missed=missed,
        )

class SchedulesByStatus(BaseModel):
    """Schedules in one status together with the overall count summary."""

    status: ScheduleStatus
    items: list[Schedule]
    summary: ScheduleStats

class ScheduleList(BaseModel):
    """Unpaginated schedule list (e.g. today's schedules)."""

    items: list[Schedule]
    source: DataSource = DataSource.LIVE

class VisitStats(BaseModel):
    """Visit counts by status."""

    total: int
    completed: int
    in_progress: int
    not_started: int

    @classmethod
    def from_status_counts(cls, counts: dict[str, int]) -> "VisitStats":
        """Fold raw per-status counts into the summary."""
        return cls(
            total=sum(counts.values()),
            completed=counts.get(VisitStatus.COMPLETED, 0),
            in_progress=counts.get(VisitStatus.IN_PROGRESS, 0),
            not_started=counts.get(VisitStatus.NOT_STARTED, 0),
        )

class DurationStats(BaseModel):
    """Duration statistics over visits that have a duration."""

    avg_minutes: float | None
    min_minutes: int | None
    max_minutes: int | None
    total_completed: int

class TaskStats(BaseModel):
    """Task counts by status."""

    total: int
    completed: int
    pending: int
    not_completed: int

    @classmethod
    def from_status_counts(cls, counts: dict[str, int]) -> "TaskStats":
        """Fold raw per-status counts into the summary."""
        return cls(
            total=sum(counts.values()),
            completed=counts.get(TaskStatus.COMPLETED, 0),
            pending=counts.get(TaskStatus.PENDING, 0),
            not_completed=counts.get(TaskStatus.NOT_COMPLETED, 0),
        )

class GeoPoint(BaseModel):
    """Latitude/longitude pair."""

    latitude: float
    longitude: float

class VisitAnalytics(BaseModel):
    """Visit section of the schedule analytics view."""

    visit_id: str
    status: VisitStatus
    start_time: datetime
    end_time: datetime | None
    duration_minutes: int
    duration_display: str
    start_location: GeoPoint
    end_location: GeoPoint | None = None

class ScheduleAnalytics(BaseModel):
    """Composite analytics view for one schedule."""

    schedule_id: str
    client_name: str
    shift_time: str
    location: str
    status: ScheduleStatus
    task_completion_rate: float
    task_stats: TaskStats
    visit: VisitAnalytics | None = None

class TaskReport(BaseModel):
    """Task report for one schedule."""

    schedule_id: str
    client_name: str
    shift_time: str
    location: str
    stats: TaskStats
    completion_rate: float
    tasks: list[Task]
    generated_at: datetime = Field(..., description="When the report was generated (UTC)")

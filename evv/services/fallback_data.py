"""Fixed demonstration dataset served when the store is unavailable and fallback is enabled."""

from datetime import datetime

from evv.core import clock
from evv.domain.schedule import DataSource, Schedule, ScheduleDetails, ScheduleStatus
from evv.domain.task import Task, TaskStatus
from evv.domain.visit import Visit, VisitStatus


DEMO_SCHEDULE_ID = "demo-schedule-1"
DEMO_ACTIVE_SCHEDULE_ID = "demo-schedule-2"
DEMO_VISIT_ID = "demo-visit-2"


def _schedules(now: datetime) -> list[Schedule]:
    return [
        Schedule(
            id=DEMO_SCHEDULE_ID,
            client_name="John Smith",
            shift_time="09:00-12:00",
            location="123 Main St, Anytown",
            status=ScheduleStatus.UPCOMING,
            created_at=now,
            updated_at=now,
        ),
        Schedule(
            id=DEMO_ACTIVE_SCHEDULE_ID,
            client_name="Jane Doe",
            shift_time="10:00-14:00",
            location="456 Oak Ave, Somewhere",
            status=ScheduleStatus.IN_PROGRESS,
            created_at=now,
            updated_at=now,
        ),
    ]


def schedules() -> list[Schedule]:
    """All demo schedules, newest first."""
    return _schedules(clock.utc_now())


def today_schedules() -> list[Schedule]:
    """Demo schedules for today (only the one already in progress)."""
    return [s for s in schedules() if s.status == ScheduleStatus.IN_PROGRESS]


def _demo_tasks(schedule_id: str, now: datetime) -> list[Task]:
    if schedule_id == DEMO_ACTIVE_SCHEDULE_ID:
        return [
            Task(
                id="demo-task-3",
                schedule_id=schedule_id,
                name="Vital Signs Check",
                status=TaskStatus.PENDING,
                created_at=now,
                updated_at=now,
            ),
        ]
    return [
        Task(
            id="demo-task-1",
            schedule_id=schedule_id,
            name="Morning Medication",
            description="Administer morning medication",
            status=TaskStatus.COMPLETED,
            reason="Administered as prescribed",
            completed_at=now,
            created_at=now,
            updated_at=now,
        ),
        Task(
            id="demo-task-2",
            schedule_id=schedule_id,
            name="Vital Signs Check",
            description="Check blood pressure and temperature",
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        ),
    ]


def schedule_details(schedule_id: str) -> ScheduleDetails | None:
    """Demo detail view tagged as fallback data, or None for IDs outside the dataset."""
    now = clock.utc_now()
    schedule = next((s for s in _schedules(now) if s.id == schedule_id), None)
    if schedule is None:
        return None

    visit = None
    if schedule.status == ScheduleStatus.IN_PROGRESS:
        visit = Visit(
            id=DEMO_VISIT_ID,
            schedule_id=schedule_id,
            start_time=now,
            start_latitude=40.7128,
            start_longitude=-74.0060,
            status=VisitStatus.IN_PROGRESS,
            created_at=now,
            updated_at=now,
        )
        schedule.visit_id = visit.id

    return ScheduleDetails(
        **schedule.model_dump(),
        visit=visit,
        tasks=_demo_tasks(schedule_id, now),
        source=DataSource.FALLBACK,
    )

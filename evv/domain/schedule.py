"""Schedule domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from evv.domain.task import Task
from evv.domain.visit import Visit


class ScheduleStatus(StrEnum):
    """Schedule lifecycle state."""

    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MISSED = "missed"

    @classmethod
    def is_valid(cls, value: object) -> bool:
        """Return True if value names a schedule status."""
        return isinstance(value, str) and value in cls._value2member_map_


class DataSource(StrEnum):
    """Where a schedule read was served from."""

    LIVE = "live"
    FALLBACK = "fallback"


class Schedule(BaseModel):
    """Planned caregiver shift for a client (aggregate root)."""

    id: str = Field(..., description="Unique schedule ID")
    client_name: str = Field(..., description="Name of the client receiving care")
    shift_time: str = Field(..., description="Shift window in HH:MM-HH:MM form")
    location: str = Field(..., description="Address or site of the shift")
    status: ScheduleStatus = Field(default=ScheduleStatus.UPCOMING, description="Current lifecycle state")
    visit_id: str | None = Field(default=None, description="Current visit ID, once a visit has started")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC)")


class ScheduleDetails(Schedule):
    """Schedule together with its visit and its tasks (oldest task first)."""

    visit: Visit | None = Field(default=None, description="Most recent visit for the schedule")
    tasks: list[Task] = Field(default_factory=list, description="Tasks ordered by creation time")
    source: DataSource = Field(default=DataSource.LIVE, description="Whether the view came from the store or demo data")

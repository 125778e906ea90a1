"""Visit domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class VisitStatus(StrEnum):
    """Visit lifecycle state. COMPLETED is terminal."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def is_valid(cls, value: object) -> bool:
        """Return True if value names a visit status."""
        return isinstance(value, str) and value in cls._value2member_map_


class Visit(BaseModel):
    """Geolocated check-in/check-out record for a schedule."""

    id: str = Field(..., description="Unique visit ID")
    schedule_id: str = Field(..., description="Owning schedule ID")
    start_time: datetime = Field(..., description="Check-in time (UTC)")
    start_latitude: float = Field(..., description="Check-in latitude")
    start_longitude: float = Field(..., description="Check-in longitude")
    end_time: datetime | None = Field(default=None, description="Check-out time (UTC)")
    end_latitude: float | None = Field(default=None, description="Check-out latitude")
    end_longitude: float | None = Field(default=None, description="Check-out longitude")
    duration_minutes: int | None = Field(
        default=None,
        frozen=True,
        description="Whole minutes between check-in and check-out as stored; None while in progress",
    )
    status: VisitStatus = Field(default=VisitStatus.IN_PROGRESS, description="Current lifecycle state")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC)")

"""Task domain models and enums."""

from datetime import datetime
from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field, field_validator, model_validator


class TaskStatus(StrEnum):
    """Task lifecycle state."""

    PENDING = "pending"
    COMPLETED = "completed"
    NOT_COMPLETED = "not_completed"

    @classmethod
    def is_valid(cls, value: object) -> bool:
        """Return True if value names a task status."""
        return isinstance(value, str) and value in cls._value2member_map_


class Task(BaseModel):
    """Discrete care action tied to a schedule.

    A task marked not_completed always carries a non-empty reason, and
    completed_at is present exactly when the task is completed.
    """

    id: str = Field(..., description="Unique task ID")
    schedule_id: str = Field(..., description="Owning schedule ID")
    name: str = Field(..., description="Short name of the care action")
    description: str | None = Field(default=None, description="Detailed instructions")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current lifecycle state")
    reason: str | None = Field(default=None, description="Why the task was not completed")
    completed_at: datetime | None = Field(default=None, description="Completion timestamp (UTC)")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC)")

    @model_validator(mode="after")
    def validate_status_fields(self) -> Self:
        """Reject status/reason/completed_at combinations the lifecycle forbids."""
        if self.status == TaskStatus.NOT_COMPLETED and not (self.reason and self.reason.strip()):
            raise ValueError("Reason is required for not_completed tasks")
        if self.status == TaskStatus.COMPLETED and self.completed_at is None:
            raise ValueError("completed_at must be set for completed tasks")
        if self.status != TaskStatus.COMPLETED and self.completed_at is not None:
            raise ValueError("completed_at must be empty unless the task is completed")
        return self


class TaskCreate(BaseModel):
    """Input for creating a task; new tasks always start pending."""

    name: str = Field(..., description="Short name of the care action")
    description: str | None = Field(default=None, description="Detailed instructions")

    @field_validator("name")
    @classmethod
    def validate_name_present(cls, v: str) -> str:
        """Validate the task name is not blank."""
        v = v.strip()
        if not v:
            raise ValueError("Task name cannot be empty")
        return v

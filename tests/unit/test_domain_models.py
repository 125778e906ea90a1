"""Unit tests for domain model validation."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from evv.domain import ScheduleStatus, Task, TaskCreate, TaskStatus, Visit, VisitStatus


NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _task(**overrides) -> Task:
    data = {
        "id": "task-1",
        "schedule_id": "schedule-1",
        "name": "Medication",
        "created_at": NOW,
        "updated_at": NOW,
        **overrides,
    }
    return Task(**data)


def _visit(**overrides) -> Visit:
    data = {
        "id": "visit-1",
        "schedule_id": "schedule-1",
        "start_time": NOW,
        "start_latitude": 40.0,
        "start_longitude": -74.0,
        "created_at": NOW,
        "updated_at": NOW,
        **overrides,
    }
    return Visit(**data)


@pytest.mark.unit
class TestStatusEnums:
    """Tests for the canonical is_valid predicates."""

    def test_is_valid(self):
        """Test each enum recognizes its own values only."""
        assert ScheduleStatus.is_valid("missed") is True
        assert VisitStatus.is_valid("missed") is False
        assert TaskStatus.is_valid("not_completed") is True
        assert TaskStatus.is_valid(3) is False


@pytest.mark.unit
class TestTaskInvariant:
    """Tests for Task construction-time validation."""

    def test_pending_task_defaults(self):
        """Test a new task is pending with no reason or completion time."""
        task = _task()

        assert task.status == TaskStatus.PENDING
        assert task.reason is None
        assert task.completed_at is None

    def test_not_completed_requires_reason(self):
        """Test a not_completed task cannot be built without a reason."""
        with pytest.raises(ValidationError, match="Reason is required"):
            _task(status=TaskStatus.NOT_COMPLETED)

        with pytest.raises(ValidationError, match="Reason is required"):
            _task(status=TaskStatus.NOT_COMPLETED, reason="   ")

    def test_not_completed_with_reason(self):
        """Test a not_completed task with a reason is valid."""
        task = _task(status=TaskStatus.NOT_COMPLETED, reason="Client declined")

        assert task.reason == "Client declined"

    def test_completed_requires_completed_at(self):
        """Test completed_at is present exactly for completed tasks."""
        with pytest.raises(ValidationError, match="completed_at must be set"):
            _task(status=TaskStatus.COMPLETED)

        with pytest.raises(ValidationError, match="completed_at must be empty"):
            _task(status=TaskStatus.PENDING, completed_at=NOW)

        assert _task(status=TaskStatus.COMPLETED, completed_at=NOW).completed_at == NOW


@pytest.mark.unit
class TestTaskCreate:
    """Tests for TaskCreate."""

    def test_strips_name(self):
        """Test names are trimmed."""
        assert TaskCreate(name="  Bathing ").name == "Bathing"

    def test_rejects_blank_name(self):
        """Test blank names are rejected."""
        with pytest.raises(ValidationError, match="Task name cannot be empty"):
            TaskCreate(name="   ")


@pytest.mark.unit
class TestVisitDuration:
    """Tests for the stored Visit.duration_minutes."""

    def test_none_while_in_progress(self):
        """Test a visit without an end has no duration."""
        assert _visit().duration_minutes is None

    def test_not_derived_in_memory(self):
        """Test the duration is only what the store supplied."""
        visit = _visit(end_time=NOW + timedelta(minutes=61, seconds=59), status=VisitStatus.COMPLETED)

        assert visit.duration_minutes is None

    def test_included_in_dump(self):
        """Test the duration is serialized with the visit."""
        visit = _visit(end_time=NOW + timedelta(hours=1), duration_minutes=60, status=VisitStatus.COMPLETED)

        assert visit.model_dump()["duration_minutes"] == 60

    def test_cannot_be_set(self):
        """Test the duration cannot be assigned directly."""
        visit = _visit()

        with pytest.raises(ValidationError):
            visit.duration_minutes = 5

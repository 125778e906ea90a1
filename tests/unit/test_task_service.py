"""Unit tests for task_service."""

import pytest

from evv.core.errors import InvalidInputError, NotFoundError
from evv.domain.task import TaskCreate, TaskStatus
from evv.services import task_service
from evv.stores import schedule_store, task_store


@pytest.mark.unit
class TestCreateTasks:
    """Tests for create_task and create_batch_tasks."""

    async def test_create_task(self, schedule):
        """Test a task is created pending."""
        task = await task_service.create_task(schedule_id=schedule.id, name="Medication", description="Morning")

        assert task.status == TaskStatus.PENDING
        assert task.schedule_id == schedule.id

    async def test_create_task_missing_schedule(self, db):
        """Test the schedule must exist."""
        with pytest.raises(NotFoundError, match="Schedule not found"):
            await task_service.create_task(schedule_id="missing", name="Medication")

    async def test_create_task_blank_name(self, schedule):
        """Test blank names are rejected."""
        with pytest.raises(InvalidInputError, match="Task name cannot be empty"):
            await task_service.create_task(schedule_id=schedule.id, name="  ")

    async def test_create_batch(self, schedule):
        """Test batches accept models or dicts."""
        tasks = await task_service.create_batch_tasks(
            schedule_id=schedule.id,
            tasks=[TaskCreate(name="Bathing"), {"name": "Lunch", "description": "Soft food"}],
        )

        assert [t.name for t in tasks] == ["Bathing", "Lunch"]
        assert all(t.status == TaskStatus.PENDING for t in tasks)

    async def test_create_batch_validates_before_writing(self, schedule):
        """Test a blank name anywhere in the batch writes nothing."""
        with pytest.raises(InvalidInputError):
            await task_service.create_batch_tasks(schedule_id=schedule.id, tasks=[{"name": "Lunch"}, {"name": ""}])

        assert await task_store.list_by_schedule_id(schedule_id=schedule.id) == []


@pytest.mark.unit
class TestUpdateTaskStatus:
    """Tests for update_task_status."""

    async def test_complete(self, schedule, fixed_now):
        """Test completing stamps completed_at."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        updated = await task_service.update_task_status(task_id=task.id, status="completed")

        assert updated.status == TaskStatus.COMPLETED
        assert updated.completed_at == fixed_now

    async def test_not_completed_requires_reason(self, schedule):
        """Test not_completed needs a non-blank reason."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        with pytest.raises(InvalidInputError, match="reason is required"):
            await task_service.update_task_status(task_id=task.id, status="not_completed")
        with pytest.raises(InvalidInputError, match="reason is required"):
            await task_service.update_task_status(task_id=task.id, status="not_completed", reason="")

        updated = await task_service.update_task_status(task_id=task.id, status="not_completed", reason="Refused")
        assert updated.reason == "Refused"
        assert updated.completed_at is None

    async def test_invalid_status(self, schedule):
        """Test unknown statuses are rejected."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        with pytest.raises(InvalidInputError, match="Invalid task status"):
            await task_service.update_task_status(task_id=task.id, status="done")

    async def test_missing_task(self, db):
        """Test unknown tasks raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await task_service.update_task_status(task_id="missing", status="completed")

    async def test_repeated_updates_revalidate(self, schedule):
        """Test a task can move back and forth, re-checking the reason each time."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        await task_service.update_task_status(task_id=task.id, status="completed")
        await task_service.update_task_status(task_id=task.id, status="not_completed", reason="Spilled")
        with pytest.raises(InvalidInputError):
            await task_service.update_task_status(task_id=task.id, status="not_completed")
        reverted = await task_service.update_task_status(task_id=task.id, status="pending")

        assert reverted.status == TaskStatus.PENDING
        assert reverted.completed_at is None


@pytest.mark.unit
class TestUpdateTask:
    """Tests for update_task."""

    async def test_partial_update(self, schedule):
        """Test empty values leave fields unchanged."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication", description="Morning")

        updated = await task_service.update_task(task_id=task.id, name="", description="Evening")

        assert updated.name == "Medication"
        assert updated.description == "Evening"

    async def test_status_change_sets_completed_at(self, schedule, fixed_now):
        """Test completed_at follows the new status."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        completed = await task_service.update_task(task_id=task.id, status="completed")
        assert completed.completed_at == fixed_now

        reverted = await task_service.update_task(task_id=task.id, status="pending")
        assert reverted.completed_at is None

    async def test_reason_rule(self, schedule):
        """Test not_completed without a reason is rejected."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        with pytest.raises(InvalidInputError, match="reason is required"):
            await task_service.update_task(task_id=task.id, status="not_completed")

    async def test_missing(self, db):
        """Test unknown tasks raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await task_service.update_task(task_id="missing", name="New")


@pytest.mark.unit
class TestBulkAndReports:
    """Tests for bulk updates, reports and queries."""

    async def test_mark_pending_as_not_completed(self, schedule):
        """Test only pending tasks are marked, each with the reason."""
        done = await task_store.create(schedule_id=schedule.id, name="Medication")
        first = await task_store.create(schedule_id=schedule.id, name="Bathing")
        second = await task_store.create(schedule_id=schedule.id, name="Lunch")
        await task_service.update_task_status(task_id=done.id, status="completed")

        updated = await task_service.mark_pending_tasks_as_not_completed(
            schedule_id=schedule.id, reason="Client asleep"
        )

        assert [t.id for t in updated] == [first.id, second.id]
        assert all(t.reason == "Client asleep" for t in updated)
        assert (await task_store.get_by_id(task_id=done.id)).status == TaskStatus.COMPLETED

    async def test_mark_pending_stops_at_first_failure(self, schedule, monkeypatch):
        """Test earlier updates remain when a later one fails."""
        first = await task_store.create(schedule_id=schedule.id, name="Bathing")
        second = await task_store.create(schedule_id=schedule.id, name="Lunch")
        original = task_service.update_task_status

        async def flaky(**kwargs):
            if kwargs["task_id"] == second.id:
                raise NotFoundError("gone")
            return await original(**kwargs)

        monkeypatch.setattr(task_service, "update_task_status", flaky)

        with pytest.raises(NotFoundError, match="gone"):
            await task_service.mark_pending_tasks_as_not_completed(schedule_id=schedule.id, reason="Asleep")

        assert (await task_store.get_by_id(task_id=first.id)).status == TaskStatus.NOT_COMPLETED
        assert (await task_store.get_by_id(task_id=second.id)).status == TaskStatus.PENDING

    async def test_mark_pending_blank_reason(self, schedule):
        """Test a blank reason fails on the first pending task."""
        await task_store.create(schedule_id=schedule.id, name="Bathing")

        with pytest.raises(InvalidInputError):
            await task_service.mark_pending_tasks_as_not_completed(schedule_id=schedule.id, reason=" ")

    async def test_generate_task_report(self, schedule, fixed_now):
        """Test the report combines schedule, tasks and figures."""
        done = await task_store.create(schedule_id=schedule.id, name="Medication")
        await task_store.create(schedule_id=schedule.id, name="Lunch")
        await task_service.update_task_status(task_id=done.id, status="completed")

        report = await task_service.generate_task_report(schedule_id=schedule.id)

        assert report.client_name == schedule.client_name
        assert report.stats.total == 2
        assert report.completion_rate == 50.0
        assert [t.name for t in report.tasks] == ["Medication", "Lunch"]
        assert report.generated_at == fixed_now

    async def test_generate_task_report_missing(self, db):
        """Test reports need an existing schedule."""
        with pytest.raises(NotFoundError):
            await task_service.generate_task_report(schedule_id="missing")

    async def test_tasks_requiring_attention(self, schedule):
        """Test only not-completed tasks with reasons are returned."""
        refused = await task_store.create(schedule_id=schedule.id, name="Bathing")
        await task_store.create(schedule_id=schedule.id, name="Lunch")
        await task_service.update_task_status(task_id=refused.id, status="not_completed", reason="Refused")

        attention = await task_service.get_tasks_requiring_attention()

        assert [t.id for t in attention] == [refused.id]
        assert [t.id for t in await task_service.get_incomplete_tasks()] == [refused.id]

    async def test_stats_and_rates(self, schedule):
        """Test the pass-through aggregates."""
        other = await schedule_store.create(client_name="Bob", shift_time="13:00-15:00", location="Home")
        done = await task_store.create(schedule_id=schedule.id, name="Medication")
        await task_store.create(schedule_id=other.id, name="Lunch")
        await task_service.update_task_status(task_id=done.id, status="completed")

        assert (await task_service.get_task_stats_by_schedule(schedule_id=schedule.id)).completed == 1
        assert await task_service.get_task_completion_rate(schedule_id=schedule.id) == 100.0
        assert await task_service.get_task_completion_rate(schedule_id=other.id) == 0.0
        overall = await task_service.get_overall_task_stats()
        assert (overall.total, overall.completed, overall.pending) == (2, 1, 1)
        assert [t.id for t in await task_service.get_tasks_by_status(status="completed")] == [done.id]
        with pytest.raises(InvalidInputError):
            await task_service.get_tasks_by_status(status="finished")


@pytest.mark.unit
class TestMaintenance:
    """Tests for reason updates, deletion and ownership checks."""

    async def test_update_task_reason(self, schedule):
        """Test reasons must be non-empty."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        assert (await task_service.update_task_reason(task_id=task.id, reason="Late")).reason == "Late"
        with pytest.raises(InvalidInputError, match="Reason cannot be empty"):
            await task_service.update_task_reason(task_id=task.id, reason="")
        with pytest.raises(NotFoundError):
            await task_service.update_task_reason(task_id="missing", reason="Late")

    async def test_delete_task(self, schedule):
        """Test deletion and deletion of an unknown task."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        await task_service.delete_task(task_id=task.id)

        with pytest.raises(NotFoundError):
            await task_service.delete_task(task_id=task.id)

    async def test_validate_task_update(self, schedule):
        """Test tasks must belong to the given schedule."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        await task_service.validate_task_update(task_id=task.id, schedule_id=schedule.id)
        with pytest.raises(InvalidInputError, match="does not belong"):
            await task_service.validate_task_update(task_id=task.id, schedule_id="other")
        with pytest.raises(NotFoundError):
            await task_service.validate_task_update(task_id="missing", schedule_id=schedule.id)

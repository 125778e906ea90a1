"""Unit tests for task_store."""

import pytest

from evv.core import db_client
from evv.domain.task import TaskCreate, TaskStatus
from evv.stores import task_store


@pytest.mark.unit
class TestCreate:
    """Tests for create and create_batch."""

    async def test_create_pending(self, schedule):
        """Test new tasks are pending without reason or completion time."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication", description="Morning pills")

        assert task.status == TaskStatus.PENDING
        assert task.description == "Morning pills"
        assert task.reason is None
        assert task.completed_at is None

    async def test_create_batch_keeps_order(self, schedule):
        """Test batch creation preserves input order."""
        created = await task_store.create_batch(
            schedule_id=schedule.id,
            tasks=[TaskCreate(name="Bathing"), TaskCreate(name="Lunch"), TaskCreate(name="Walk")],
        )

        listed = await task_store.list_by_schedule_id(schedule_id=schedule.id)
        assert [t.name for t in listed] == ["Bathing", "Lunch", "Walk"]
        assert [t.id for t in listed] == [t.id for t in created]

    async def test_create_batch_is_not_atomic(self, schedule, monkeypatch):
        """Test earlier inserts stay when a later one fails."""
        original_create = task_store.create
        calls = 0

        async def flaky_create(**kwargs):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise db_client.DatabaseError("disk full")
            return await original_create(**kwargs)

        monkeypatch.setattr(task_store, "create", flaky_create)

        with pytest.raises(db_client.DatabaseError, match="disk full"):
            await task_store.create_batch(
                schedule_id=schedule.id,
                tasks=[TaskCreate(name="Bathing"), TaskCreate(name="Lunch"), TaskCreate(name="Walk")],
            )

        listed = await task_store.list_by_schedule_id(schedule_id=schedule.id)
        assert [t.name for t in listed] == ["Bathing"]


@pytest.mark.unit
class TestUpdateStatus:
    """Tests for update_status and update_reason."""

    async def test_completed_stamps_completed_at(self, schedule, fixed_now):
        """Test completing sets completed_at to now."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        updated = await task_store.update_status(task_id=task.id, status=TaskStatus.COMPLETED, reason=None)

        assert updated.status == TaskStatus.COMPLETED
        assert updated.completed_at == fixed_now

    async def test_leaving_completed_clears_completed_at(self, schedule):
        """Test any other status clears completed_at and stores the reason."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")
        await task_store.update_status(task_id=task.id, status=TaskStatus.COMPLETED, reason=None)

        updated = await task_store.update_status(task_id=task.id, status=TaskStatus.NOT_COMPLETED, reason="Refused")

        assert updated.completed_at is None
        assert updated.reason == "Refused"

    async def test_missing_task(self, db):
        """Test unknown tasks raise RecordNotFoundError."""
        with pytest.raises(db_client.RecordNotFoundError):
            await task_store.update_status(task_id="missing", status=TaskStatus.COMPLETED, reason=None)

    async def test_update_reason(self, schedule):
        """Test only the reason changes."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")

        updated = await task_store.update_reason(task_id=task.id, reason="Running late")

        assert updated.reason == "Running late"
        assert updated.status == TaskStatus.PENDING


@pytest.mark.unit
class TestQueries:
    """Tests for listing, stats and completion rate."""

    async def _tasks(self, schedule_id: str):
        done = await task_store.create(schedule_id=schedule_id, name="Medication")
        refused = await task_store.create(schedule_id=schedule_id, name="Bathing")
        pending = await task_store.create(schedule_id=schedule_id, name="Lunch")
        await task_store.update_status(task_id=done.id, status=TaskStatus.COMPLETED, reason=None)
        await task_store.update_status(task_id=refused.id, status=TaskStatus.NOT_COMPLETED, reason="Refused")
        return done, refused, pending

    async def test_list_by_status_and_incomplete(self, schedule):
        """Test status listing and the not-completed-with-reason query."""
        done, refused, pending = await self._tasks(schedule.id)

        assert [t.id for t in await task_store.list_by_status(status=TaskStatus.PENDING)] == [pending.id]
        assert [t.id for t in await task_store.list_incomplete_with_reason()] == [refused.id]

    async def test_stats_and_completion_rate(self, schedule):
        """Test per-schedule counts and percentage."""
        await self._tasks(schedule.id)

        stats = await task_store.stats_by_schedule(schedule_id=schedule.id)
        rate = await task_store.completion_rate(schedule_id=schedule.id)

        assert (stats.total, stats.completed, stats.pending, stats.not_completed) == (3, 1, 1, 1)
        assert rate == pytest.approx(100 / 3)

    async def test_completion_rate_without_tasks(self, schedule):
        """Test a schedule with no tasks has a 0.0 completion rate."""
        assert await task_store.completion_rate(schedule_id=schedule.id) == 0.0

    async def test_overall_stats(self, schedule):
        """Test counts across all schedules."""
        await self._tasks(schedule.id)

        stats = await task_store.overall_stats()

        assert stats.total == 3
        assert stats.completed == 1

    async def test_exists_and_delete(self, schedule):
        """Test existence checks follow deletion."""
        task = await task_store.create(schedule_id=schedule.id, name="Medication")
        assert await task_store.exists(task_id=task.id) is True

        await task_store.delete(task_id=task.id)

        assert await task_store.exists(task_id=task.id) is False
        with pytest.raises(db_client.RecordNotFoundError):
            await task_store.delete(task_id=task.id)

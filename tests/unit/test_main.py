"""Unit tests for the operator entry point."""

import sys

import pytest

from evv import main
from evv.services import schedule_service, task_service


@pytest.mark.unit
class TestSeedDemo:
    """Tests for seed_demo."""

    async def test_seeds_schedules_and_tasks(self, db):
        """Test the demo schedules are created with their tasks."""
        await main.seed_demo()

        page = await schedule_service.get_schedules(page=1, limit=10)
        stats = await task_service.get_overall_task_stats()

        assert {s.client_name for s in page.items} == {"John Smith", "Jane Doe"}
        assert stats.total == 4
        assert stats.pending == 4


@pytest.mark.unit
class TestMain:
    """Tests for argument handling."""

    def test_unknown_command_exits(self, monkeypatch):
        """Test unknown commands exit with status 2."""
        monkeypatch.setattr(sys, "argv", ["evv", "drop-everything"])

        with pytest.raises(SystemExit) as exc_info:
            main.main()

        assert exc_info.value.code == 2

    def test_help(self, monkeypatch, capsys):
        """Test --help prints usage."""
        monkeypatch.setattr(sys, "argv", ["evv", "--help"])

        main.main()

        assert "seed-demo" in capsys.readouterr().out

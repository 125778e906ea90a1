"""Operator entry point for the EVV core.

Usage:
    evv init-db
    evv seed-demo
    evv stats
"""

import asyncio
import logging
import sys

from evv.core import db_client
from evv.core.logging import configure_logfire
from evv.core.schema import init_db
from evv.services import schedule_service, task_service, visit_service


logger = logging.getLogger(__name__)


_DEMO_SCHEDULES = [
    {
        "client_name": "John Smith",
        "shift_time": "09:00-12:00",
        "location": "123 Main St, Anytown",
        "tasks": [
            {"name": "Morning Medication", "description": "Administer morning medication"},
            {"name": "Vital Signs Check", "description": "Check blood pressure and temperature"},
        ],
    },
    {
        "client_name": "Jane Doe",
        "shift_time": "10:00-14:00",
        "location": "456 Oak Ave, Somewhere",
        "tasks": [
            {"name": "Meal Preparation", "description": "Prepare lunch following the diet plan"},
            {"name": "Mobility Exercises", "description": "Assist with the daily walking routine"},
        ],
    },
]


async def seed_demo() -> None:
    """Create the demonstration schedules and their tasks."""
    for entry in _DEMO_SCHEDULES:
        schedule = await schedule_service.create_schedule(
            client_name=entry["client_name"],
            shift_time=entry["shift_time"],
            location=entry["location"],
        )
        tasks = await task_service.create_batch_tasks(schedule_id=schedule.id, tasks=entry["tasks"])
        logger.info(f"Seeded schedule {schedule.id} for {schedule.client_name} with {len(tasks)} tasks")


async def show_stats() -> None:
    """Log schedule, visit and task counts."""
    schedule_stats = await schedule_service.get_schedule_stats()
    visit_stats = await visit_service.get_visit_stats()
    task_stats = await task_service.get_overall_task_stats()

    logger.info(f"Schedules: {schedule_stats.model_dump_json()}")
    logger.info(f"Visits: {visit_stats.model_dump_json()}")
    logger.info(f"Tasks: {task_stats.model_dump_json()}")


async def run(command: str) -> None:
    """Run one operator command against the configured database."""
    try:
        await init_db()
        if command == "seed-demo":
            await seed_demo()
        elif command == "stats":
            await show_stats()
    finally:
        await db_client.close_connection()


def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]

    if not args or "--help" in args or "-h" in args:
        print(__doc__)
        return

    command = args[0]
    if command not in {"init-db", "seed-demo", "stats"}:
        print(__doc__)
        sys.exit(2)

    configure_logfire()
    asyncio.run(run(command))


if __name__ == "__main__":
    main()

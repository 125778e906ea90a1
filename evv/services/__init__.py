from evv.services import (
    fallback_data,
    visit_service,
    task_service,
    schedule_service,
)


__all__ = [
    "fallback_data",
    "schedule_service",
    "task_service",
    "visit_service",
]

"""Electronic Visit Verification core: schedules, visits and care tasks."""

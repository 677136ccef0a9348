"""Background job scheduling.

Provides get_scheduler() / set_scheduler() to swap implementations:
- InMemoryScheduler for development and testing
- CeleryScheduler for production workers (JOB_SCHEDULER=celery)
"""

import os

from shared.jobs.port import JobScheduler

_current_scheduler: JobScheduler | None = None


def get_scheduler() -> JobScheduler:
    """Return the configured job scheduler (singleton)."""
    global _current_scheduler
    if _current_scheduler is None:
        backend = os.environ.get("JOB_SCHEDULER", "memory")
        if backend == "memory":
            from shared.jobs.memory_adapter import InMemoryScheduler

            _current_scheduler = InMemoryScheduler()
        elif backend == "celery":
            from shared.jobs.celery_adapter import CeleryScheduler
            from worker import celery_app

            _current_scheduler = CeleryScheduler(celery_app)
        else:
            raise ValueError(f"Unknown job scheduler: {backend}")
    return _current_scheduler


def set_scheduler(scheduler: JobScheduler) -> None:
    """Override the active scheduler (useful for tests)."""
    global _current_scheduler
    _current_scheduler = scheduler


def reset_scheduler() -> None:
    global _current_scheduler
    _current_scheduler = None

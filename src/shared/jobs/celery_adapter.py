"""Celery-backed job scheduler for production workers.

``bind_jobs(app)`` turns every registered job into a bound Celery task whose
retry count, countdowns and queue come from the job's RetryPolicy.
``CeleryScheduler`` enqueues through those tasks.
"""

import structlog
from celery import Celery

from shared.jobs.port import JobDefinition, JobScheduler, get_job, registered_jobs

logger = structlog.get_logger(__name__)


def _task_body(definition: JobDefinition):
    def run(self, **payload):
        try:
            return definition.run(payload)
        except Exception as exc:
            attempt = self.request.retries + 1
            if definition.policy.should_retry(attempt):
                countdown = definition.policy.delay_for(attempt)
                logger.warning(
                    "Job attempt failed, retry scheduled",
                    task_id=self.request.id,
                    job_type=definition.name,
                    attempt=attempt,
                    retry_in=countdown,
                    error=str(exc),
                )
                raise self.retry(exc=exc, countdown=countdown) from exc

            logger.error(
                "Job failed after exhausting retries",
                task_id=self.request.id,
                job_type=definition.name,
                attempts=attempt,
                error=str(exc),
            )
            if definition.on_failure is not None:
                definition.on_failure(payload, exc)
            raise

    run.__name__ = definition.name.rsplit(".", 1)[-1]
    return run


def bind_jobs(app: Celery) -> list[str]:
    """Register every known job as a Celery task on ``app``. Returns new task names."""
    bound = []
    for name, definition in registered_jobs().items():
        if name in app.tasks:
            continue
        app.task(
            name=name,
            bind=True,
            queue=definition.queue,
            max_retries=max(definition.policy.max_attempts - 1, 0),
            acks_late=True,
        )(_task_body(definition))
        bound.append(name)
    return bound


class CeleryScheduler(JobScheduler):
    def __init__(self, app: Celery) -> None:
        self.app = app

    def enqueue(self, job_type: str, payload: dict, queue: str | None = None, delay: float = 0) -> str:
        definition = get_job(job_type)
        if job_type not in self.app.tasks:
            bind_jobs(self.app)
        result = self.app.tasks[job_type].apply_async(
            kwargs=payload,
            queue=queue or definition.queue,
            countdown=delay or None,
        )
        logger.debug("Job enqueued", job_id=result.id, job_type=job_type, queue=queue or definition.queue)
        return result.id

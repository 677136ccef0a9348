"""In-process job scheduler for development and testing.

Jobs sit in a list until ``run_pending()`` or ``drain()`` is called. A failed
run is re-queued according to the job's RetryPolicy, with ``run_at`` computed
from the shared clock, so tests can freeze time and step through backoff.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

import structlog

from shared.clock import get_clock
from shared.jobs.port import JobScheduler, get_job

logger = structlog.get_logger(__name__)


@dataclass
class QueuedJob:
    id: str
    job_type: str
    payload: dict
    queue: str
    run_at: datetime
    attempt: int = 1
    last_error: str | None = None


class InMemoryScheduler(JobScheduler):
    def __init__(self) -> None:
        self.pending: list[QueuedJob] = []
        self.completed: list[QueuedJob] = []
        self.failed: list[QueuedJob] = []

    def enqueue(self, job_type: str, payload: dict, queue: str | None = None, delay: float = 0) -> str:
        definition = get_job(job_type)
        queued = QueuedJob(
            id=uuid4().hex,
            job_type=job_type,
            payload=dict(payload),
            queue=queue or definition.queue,
            run_at=get_clock().now() + timedelta(seconds=delay),
        )
        self.pending.append(queued)
        logger.debug("Job enqueued", job_id=queued.id, job_type=job_type, queue=queued.queue)
        return queued.id

    def due(self, queue: str | None = None) -> list[QueuedJob]:
        now = get_clock().now()
        return [j for j in self.pending if j.run_at <= now and (queue is None or j.queue == queue)]

    def run_pending(self, queue: str | None = None) -> int:
        """Run every job that is due right now, once. Returns how many ran."""
        ready = self.due(queue)
        for queued in ready:
            self.pending.remove(queued)
            self._execute(queued)
        return len(ready)

    def drain(self, queue: str | None = None, max_rounds: int = 50) -> int:
        """Keep running due jobs until none are left.

        Jobs enqueued by other jobs are picked up; retries scheduled in the
        future are not, unless the clock is advanced.
        """
        total = 0
        for _ in range(max_rounds):
            ran = self.run_pending(queue)
            if not ran:
                break
            total += ran
        return total

    def _execute(self, queued: QueuedJob) -> None:
        definition = get_job(queued.job_type)
        try:
            definition.run(queued.payload)
        except Exception as exc:
            queued.last_error = str(exc)
            if definition.policy.should_retry(queued.attempt):
                delay = definition.policy.delay_for(queued.attempt)
                logger.warning(
                    "Job attempt failed, retry scheduled",
                    job_id=queued.id,
                    job_type=queued.job_type,
                    attempt=queued.attempt,
                    retry_in=delay,
                    error=str(exc),
                )
                queued.attempt += 1
                queued.run_at = get_clock().now() + timedelta(seconds=delay)
                self.pending.append(queued)
                return

            logger.error(
                "Job failed after exhausting retries",
                job_id=queued.id,
                job_type=queued.job_type,
                attempts=queued.attempt,
                error=str(exc),
            )
            self.failed.append(queued)
            if definition.on_failure is not None:
                definition.on_failure(queued.payload, exc)
            return

        self.completed.append(queued)

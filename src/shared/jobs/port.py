"""Job scheduler port and the job registry.

Background work is declared with the ``@job`` decorator, which records the
job's queue, retry policy and the domain whose context it runs in. Scheduler
adapters look definitions up by name; the job functions themselves only raise
on failure and leave retrying to the scheduler.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

DEFAULT_QUEUE = "default"


class UnknownJobError(LookupError):
    """Raised when enqueuing or running a job type nobody registered."""


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a job may run and how long to wait between runs."""

    max_attempts: int = 1
    backoff_seconds: tuple[int, ...] = ()

    def should_retry(self, attempt: int) -> bool:
        """Whether another run is allowed after ``attempt`` (1-based) failed."""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> int:
        """Seconds to wait after ``attempt`` (1-based) failed."""
        if not self.backoff_seconds:
            return 0
        index = min(attempt - 1, len(self.backoff_seconds) - 1)
        return self.backoff_seconds[index]


@dataclass(frozen=True)
class JobDefinition:
    name: str
    func: Callable[..., Any]
    queue: str = DEFAULT_QUEUE
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    domain: Any = None
    on_failure: Callable[[dict, BaseException], None] | None = None

    def run(self, payload: dict) -> Any:
        """Execute the job body inside its domain context, if it has one."""
        if self.domain is None:
            return self.func(**payload)
        with self.domain.domain_context():
            return self.func(**payload)


_registry: dict[str, JobDefinition] = {}


def job(
    name: str,
    queue: str = DEFAULT_QUEUE,
    policy: RetryPolicy | None = None,
    domain: Any = None,
    on_failure: Callable[[dict, BaseException], None] | None = None,
):
    """Register the decorated function as the body of job type ``name``."""

    def decorator(func):
        _registry[name] = JobDefinition(
            name=name,
            func=func,
            queue=queue,
            policy=policy or RetryPolicy(),
            domain=domain,
            on_failure=on_failure,
        )
        return func

    return decorator


def get_job(name: str) -> JobDefinition:
    try:
        return _registry[name]
    except KeyError:
        raise UnknownJobError(f"No job registered as '{name}'") from None


def registered_jobs() -> dict[str, JobDefinition]:
    return dict(_registry)


class JobScheduler(ABC):
    """Abstract background job scheduler."""

    @abstractmethod
    def enqueue(self, job_type: str, payload: dict, queue: str | None = None, delay: float = 0) -> str:
        """Schedule ``job_type`` to run with ``payload`` after ``delay`` seconds.

        ``queue`` defaults to the queue the job was registered with.
        Returns the scheduler's id for the queued job.
        """
        ...

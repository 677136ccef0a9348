"""Short-lived mutual exclusion keyed by resource id.

Two backends:
- InProcessLocks: threading locks, for development and single-process tests
- RedisLocks: redis-py ``Lock`` objects, for multi-worker deployments

Select with the LOCK_BACKEND environment variable (``memory`` or ``redis``).
"""

import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

logger = structlog.get_logger(__name__)


class LockNotAcquired(Exception):
    """Raised when a lock could not be taken within the blocking timeout."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Lock '{key}' is held by another worker")
        self.key = key


class LockBackend(ABC):
    @abstractmethod
    @contextmanager
    def hold(self, key: str, ttl: float = 30, blocking_timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        ``blocking_timeout=0`` fails immediately if the lock is taken,
        ``None`` waits indefinitely. Raises LockNotAcquired on timeout.
        """
        ...


class InProcessLocks(LockBackend):
    """Per-key ``threading.Lock`` instances. ``ttl`` is ignored."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    @contextmanager
    def hold(self, key: str, ttl: float = 30, blocking_timeout: float | None = None) -> Iterator[None]:  # noqa: ARG002
        lock = self._lock_for(key)
        if blocking_timeout == 0:
            acquired = lock.acquire(blocking=False)
        elif blocking_timeout is None:
            acquired = lock.acquire()
        else:
            acquired = lock.acquire(timeout=blocking_timeout)
        if not acquired:
            raise LockNotAcquired(key)
        try:
            yield
        finally:
            lock.release()


class RedisLocks(LockBackend):
    """Locks stored in Redis, expiring after ``ttl`` seconds."""

    def __init__(self, url: str | None = None, client=None, prefix: str = "lock:") -> None:
        if client is None:
            import redis

            client = redis.Redis.from_url(url or os.environ.get("REDIS_URL", "redis://localhost:6379/0"))
        self._client = client
        self._prefix = prefix

    @contextmanager
    def hold(self, key: str, ttl: float = 30, blocking_timeout: float | None = None) -> Iterator[None]:
        from redis.exceptions import LockError

        lock = self._client.lock(f"{self._prefix}{key}", timeout=ttl, blocking_timeout=blocking_timeout)
        if not lock.acquire():
            raise LockNotAcquired(key)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # The ttl elapsed while the block was running
                logger.warning("Lock expired before release", key=key, ttl=ttl)


_current_locks: LockBackend | None = None


def get_locks() -> LockBackend:
    """Return the configured lock backend (singleton)."""
    global _current_locks
    if _current_locks is None:
        backend = os.environ.get("LOCK_BACKEND", "memory")
        if backend == "memory":
            _current_locks = InProcessLocks()
        elif backend == "redis":
            _current_locks = RedisLocks()
        else:
            raise ValueError(f"Unknown lock backend: {backend}")
    return _current_locks


def set_locks(backend: LockBackend) -> None:
    global _current_locks
    _current_locks = backend


def reset_locks() -> None:
    global _current_locks
    _current_locks = None

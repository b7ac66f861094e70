"""
Concurrency control for payment allocation.

Posting itself is protected by the database: one atomic block per event,
a unique idempotency key, and select_for_update on the rows it changes.
Allocating a student payment also reads prior postings for the student to
work out what each billing period still needs, so two concurrent payments
for the same student are serialized with a Redis lock.

Usage:
    from finance.locks import DistributedLock, student_allocation_lock

    with student_allocation_lock(student_id):
        allocate_payment(payment)

    # Non-blocking
    lock = DistributedLock("rent-accrual:2025-10", ttl=60, blocking=False)
    if lock.acquire():
        try:
            run_accruals()
        finally:
            lock.release()
"""

from __future__ import annotations

import logging
import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django.conf import settings

from django_redis import get_redis_connection

from finance.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

logger = logging.getLogger(__name__)


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - TTL releases the lock if the holder crashes
        - Token ownership: only the holder can release or extend
        - Blocking (with timeout) and non-blocking acquisition
        - Context manager support

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before the lock expires on its own
        blocking: If True, acquire() waits until the lock is free
        timeout: Maximum wait in seconds (blocking mode only)
    """

    # Delete only if we still own the key
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Reset the TTL only if we still own the key
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    RETRY_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: If the lock is held elsewhere (non-blocking)
                or was not freed within the timeout (blocking)
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while True:
                if self._try_acquire(redis):
                    return True
                if time.monotonic() >= deadline:
                    break
                time.sleep(self.RETRY_INTERVAL)

            self._token = None
            logger.warning(
                f"Timed out waiting for lock {self.key}",
                extra={"lock_key": self.key, "timeout": self.timeout},
            )
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        """Try once to acquire the lock."""
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if released, False if we did not hold it
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """
        Reset the TTL if we hold the lock.

        Args:
            additional_ttl: New TTL in seconds (defaults to the original TTL)

        Returns:
            True if extended, False if we do not hold the lock
        """
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        result = redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        """Check if we currently hold the lock."""
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


def student_allocation_lock(student_id: Any) -> DistributedLock:
    """
    Lock serializing payment allocation for one student.

    TTL and wait timeout come from FINANCE_ALLOCATION_LOCK_TTL and
    FINANCE_ALLOCATION_LOCK_TIMEOUT.
    """
    return DistributedLock(
        f"student-allocation:{student_id}",
        ttl=getattr(settings, "FINANCE_ALLOCATION_LOCK_TTL", 30),
        timeout=getattr(settings, "FINANCE_ALLOCATION_LOCK_TIMEOUT", 10.0),
    )


__all__ = [
    "DistributedLock",
    "student_allocation_lock",
]

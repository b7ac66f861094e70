"""
Tests for the Redis allocation lock.

Redis is replaced by the mock_redis fixture; these tests check the
commands sent to it.
"""

import pytest

from finance.exceptions import LockAcquisitionError
from finance.locks import DistributedLock, student_allocation_lock


class TestDistributedLock:
    """Tests for DistributedLock."""

    def test_acquire_sets_key_with_ttl(self, mock_redis):
        """Should SET NX with the lock ttl."""
        lock = DistributedLock("rent-accrual:2025-10", ttl=60, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True
        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:rent-accrual:2025-10"
        assert kwargs == {"nx": True, "ex": 60}

    def test_each_acquisition_has_its_own_token(self, mock_redis):
        first = DistributedLock("a", blocking=False)
        second = DistributedLock("b", blocking=False)

        first.acquire()
        second.acquire()

        assert first._token != second._token

    def test_non_blocking_raises_when_held(self, mock_redis):
        """Should fail at once when another holder has the key."""
        mock_redis.set.return_value = False
        lock = DistributedLock("a", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["key"] == "lock:a"
        assert lock.is_held is False

    def test_blocking_retries_until_free(self, mock_redis, mocker):
        mocker.patch("finance.locks.time.sleep")
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("a", blocking=True, timeout=5.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_times_out(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("a", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert exc_info.value.details["timeout"] == 0.1

    def test_release_runs_owner_script(self, mock_redis):
        """Release deletes the key only through the token check."""
        lock = DistributedLock("a", blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True
        mock_redis.eval.assert_called_once_with(
            DistributedLock.RELEASE_SCRIPT, 1, "lock:a", token
        )
        assert lock.is_held is False

    def test_release_when_not_owner(self, mock_redis):
        mock_redis.eval.return_value = 0
        lock = DistributedLock("a", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire(self, mock_redis):
        lock = DistributedLock("a", blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_extend(self, mock_redis):
        lock = DistributedLock("a", ttl=30, blocking=False)
        assert lock.extend() is False

        lock.acquire()

        assert lock.extend(90) is True
        assert mock_redis.eval.call_args[0][-1] == 90

    def test_context_manager_releases_on_error(self, mock_redis):
        """The lock is released even when the block raises."""
        with pytest.raises(RuntimeError):
            with DistributedLock("a", blocking=False):
                raise RuntimeError("allocation failed")

        mock_redis.eval.assert_called_once()


class TestStudentAllocationLock:
    """Tests for student_allocation_lock()."""

    def test_key_and_settings(self, settings):
        settings.FINANCE_ALLOCATION_LOCK_TTL = 45
        settings.FINANCE_ALLOCATION_LOCK_TIMEOUT = 2.5

        lock = student_allocation_lock("s-1")

        assert lock.key == "lock:student-allocation:s-1"
        assert lock.ttl == 45
        assert lock.timeout == 2.5
        assert lock.blocking is True

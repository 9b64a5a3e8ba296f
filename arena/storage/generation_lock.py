"""Cross-instance lock for background generation.

Several service instances may run the auto-generator against the same store.
Only the holder of `lock:<name>` may run a cycle; the key carries a TTL so a
crashed holder cannot block the others for longer than `ttl`.

Built on `redis.lock.Lock`: acquisition is a non-blocking `SET NX` with the
holder id as the lock token, and release only deletes the key while it still
carries that token, so an instance never deletes a lock that expired and was
re-acquired by someone else.
"""

import logging
from datetime import timedelta

import redis

from arena.core.errors import StoreError


logger = logging.getLogger(__name__)


def _lock_key(lock_name: str) -> str:
    return f"lock:{lock_name}"


class GenerationLock:
    """Redis-backed mutual exclusion keyed by lock name."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def try_acquire(self, lock_name: str, holder_id: str, ttl: timedelta | int) -> bool:
        """Take the lock without blocking.

        Args:
            lock_name: Name of the lock (prefixed with `lock:`).
            holder_id: Identifier stored as the lock value.
            ttl: Expiry, as seconds or a timedelta.

        Returns:
            True if this call took the lock, False if another holder has it.
        """
        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        lock = self.client.lock(_lock_key(lock_name), timeout=ttl, thread_local=False)
        try:
            acquired = lock.acquire(blocking=False, token=holder_id)
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to acquire lock {lock_name}: {exc}") from exc

        if acquired:
            logger.debug(f"Acquired lock: {lock_name} ({holder_id})")
            return True
        logger.debug(f"Lock {lock_name} held by another instance")
        return False

    def release(self, lock_name: str, holder_id: str) -> bool:
        """Delete the lock if `holder_id` still owns it.

        Returns:
            True if the lock was deleted, False if it had expired or belongs
            to another holder.
        """
        lock = self.client.lock(_lock_key(lock_name), thread_local=False)
        try:
            lock.do_release(holder_id)
        except redis.exceptions.LockNotOwnedError:
            logger.debug(f"Lock {lock_name} already released or expired")
            return False
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to release lock {lock_name}: {exc}") from exc
        logger.debug(f"Released lock: {lock_name}")
        return True

    def holder(self, lock_name: str) -> str | None:
        try:
            return self.client.get(_lock_key(lock_name))
        except redis.exceptions.RedisError as exc:
            raise StoreError(f"failed to read lock {lock_name}: {exc}") from exc

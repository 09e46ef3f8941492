import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError, LockError

from core.config import settings
from core.exceptions import PersistenceError
from core.logger import logger


class UserLockRegistry:
    """Per-user asyncio locks; serializes statistics writes inside one process."""
    _instance = None
    _locks: Dict[str, asyncio.Lock] = {}
    _waiters: Dict[str, int] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(UserLockRegistry, cls).__new__(cls)
        return cls._instance

    @asynccontextmanager
    async def hold(self, user_id: str):
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._release(user_id)

    def _release(self, user_id: str):
        """Forget the lock once nobody holds or waits on it."""
        remaining = self._waiters.get(user_id, 1) - 1
        if remaining <= 0:
            self._waiters.pop(user_id, None)
            self._locks.pop(user_id, None)
        else:
            self._waiters[user_id] = remaining

    def active_count(self) -> int:
        return len(self._locks)


user_locks = UserLockRegistry()

_redis: Optional[Redis] = None


def get_lock_redis() -> Optional[Redis]:
    """Shared Redis client for cross-process locks, or None when disabled."""
    global _redis
    if not settings.USE_REDIS_LOCKS:
        return None
    if _redis is None:
        _redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


async def close_lock_redis():
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


@asynccontextmanager
async def user_stats_lock(user_id: str, redis: Optional[Redis] = None):
    """
    Serialize statistics updates for one user.

    With Redis the lock spans every worker process; without it only this
    process is covered and the row lock taken by the caller does the rest.
    """
    async with user_locks.hold(user_id):
        if redis is None:
            yield
            return

        lock = redis.lock(
            f"quizzes:stats-lock:{user_id}",
            timeout=settings.STATS_LOCK_TIMEOUT_SECONDS,
            blocking_timeout=settings.STATS_LOCK_TIMEOUT_SECONDS,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error("Stats lock backend failed", user_id=user_id, error=str(e))
            raise PersistenceError("Could not acquire statistics lock") from e
        if not acquired:
            logger.warning("Stats lock timed out", user_id=user_id)
            raise PersistenceError("Timed out waiting for statistics lock")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; the row lock still guarded the write
                logger.warning("Stats lock expired before release", user_id=user_id)

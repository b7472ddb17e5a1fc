"""
Per-user turn serialization for the Stock Order Bot
Turns of one user run one at a time; different users run in parallel
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class LockRegistry(ABC):
    """Abstract base class for per-user locks"""

    @abstractmethod
    def hold(self, user_id: str):
        """Context manager holding the user's lock"""
        pass


class UserLockRegistry(LockRegistry):
    """Process-local locks, one per user id, dropped once nobody holds or waits on them"""

    def __init__(self):
        # user_id -> [lock, holders and waiters]
        self._locks: Dict[str, list] = {}
        self._guard = threading.Lock()

    def _checkout(self, user_id: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(user_id)
            if entry is None:
                entry = self._locks[user_id] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, user_id: str) -> None:
        with self._guard:
            entry = self._locks[user_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[user_id]

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self._checkout(user_id)
        try:
            with lock:
                yield
        finally:
            self._checkin(user_id)


class RedisUserLockRegistry(LockRegistry):
    """Redis locks so turns are serialized across worker processes"""

    def __init__(self, redis_url: str, timeout_seconds: int = 30):
        """
        Initialize Redis lock registry

        Args:
            redis_url: Redis connection URL
            timeout_seconds: Lock expiry and wait limit
        """
        try:
            import redis
            self.redis_client = redis.from_url(redis_url, decode_responses=True)
            self.redis_client.ping()
            self.timeout = timeout_seconds
            logger.info(f"✅ Redis locks enabled: {redis_url}")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis for locks: {e}")
            raise

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self.redis_client.lock(
            f"lock:{user_id}",
            timeout=self.timeout,
            blocking_timeout=self.timeout
        )
        if not lock.acquire():
            raise TimeoutError(f"Could not lock conversation of {user_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except Exception as e:
                # The lock expired while the turn was running
                logger.warning(f"Releasing lock for {user_id} failed: {e}")


def create_lock_registry(redis_enabled: bool = False, redis_url: str = None,
                         timeout_seconds: int = 30) -> LockRegistry:
    """
    Factory function to create the appropriate lock registry

    Returns:
        LockRegistry instance (Redis or process-local)
    """
    if redis_enabled and redis_url:
        try:
            return RedisUserLockRegistry(redis_url, timeout_seconds)
        except Exception as e:
            logger.warning(f"Failed to initialize Redis locks, falling back to local locks: {e}")
    return UserLockRegistry()

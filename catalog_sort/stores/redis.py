"""Redis store for the run lock.

Handles:
- Distributed lock so two sort runs never write to the catalog concurrently

The lock is a redis-py Lock whose token is the run id. Extending and
releasing are token-checked server side, so a run whose lock expired can
neither refresh nor delete a lock another run has taken since.

TTL policies:
- Run lock: run_lock_ttl_s (default 1 hour), refreshed after every product,
  released when the run ends
"""

import logging

import redis.asyncio as redis
from redis.exceptions import LockError, LockNotOwnedError

from catalog_sort.settings import get_settings

# Key prefixes
PREFIX_LOCK = "lock:"

RUN_LOCK_KEY = "catalog_sort:run"

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("catalog_sort")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def is_redis_ready() -> bool:
    return _redis is not None


def _get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


class RunLock:
    """Lock owned by one run (the owner string is stored as the lock value)."""

    def __init__(self, key: str, owner: str, ttl: int):
        self.key = f"{PREFIX_LOCK}{key}"
        self.owner = owner
        self.ttl = ttl
        self._lock = _get_redis().lock(self.key, timeout=ttl, blocking=False, thread_local=False)

    async def acquire(self) -> bool:
        """SET NX PX with the owner as value. False if another owner holds it."""
        return bool(await self._lock.acquire(token=self.owner))

    async def refresh(self) -> bool:
        """Reset the TTL to its full value.

        Returns:
            False if the lock expired or now belongs to another owner.
        """
        try:
            await self._lock.reacquire()
        except LockNotOwnedError:
            logger.error(f"Run lock {self.key} is no longer owned by {self.owner}")
            return False
        except LockError as e:
            logger.error(f"Run lock {self.key} could not be refreshed: {e}")
            return False
        return True

    async def release(self) -> None:
        """Delete the lock only if this owner still holds it."""
        try:
            await self._lock.release()
        except LockNotOwnedError:
            logger.warning(f"Run lock {self.key} expired before release; left for its current owner")
        except LockError as e:
            logger.warning(f"Run lock {self.key} was not held at release: {e}")

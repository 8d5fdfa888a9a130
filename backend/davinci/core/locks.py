"""
Redis-backed name locks.

Guards entity names (organizations, roles) while a create or rename is in
flight so two concurrent requests cannot both claim the same name.
"""

from __future__ import annotations

import logging
from enum import Enum
from uuid import UUID

import redis.asyncio as aioredis
from redis.exceptions import LockError

from davinci.core.config import settings

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "davinci:lock"


class CheckEntity(str, Enum):
    """Entities whose names are guarded by a lock."""

    organization = "organization"
    role = "role"


def lock_redis_key(entity: CheckEntity, name: str, scope_id: UUID | None = None) -> str:
    """Redis key for a name lock. Format: davinci:lock:{entity}:{name}[:{scope_id}]"""
    key = f"{LOCK_KEY_PREFIX}:{entity.value}:{name}"
    if scope_id is not None:
        key = f"{key}:{scope_id}"
    return key


class NameLock:
    """
    Non-blocking claim on a name, held as a Redis key with a TTL.

    Built on redis-py's Lock: the key holds a per-claim token and release is
    a server-side compare-and-delete, so a claim that outlived its TTL never
    removes the key of whoever took the name next.
    """

    def __init__(self, redis: aioredis.Redis, key: str, ttl_seconds: int) -> None:
        self.key = key
        self.ttl_seconds = ttl_seconds
        self._lock = redis.lock(key, timeout=ttl_seconds, blocking=False)
        self.acquired = False

    async def acquire(self) -> bool:
        """Try once to take the lock. Returns False when someone else holds it."""
        self.acquired = await self._lock.acquire()
        if not self.acquired:
            logger.info("Lock %s is held by another request", self.key)
        return self.acquired

    async def release(self) -> None:
        """Release the lock if this instance still owns it."""
        if not self.acquired:
            return
        self.acquired = False
        try:
            await self._lock.release()
        except LockError:
            logger.warning("Lock %s expired before release, left to its current holder", self.key)


def get_name_lock(
    redis: aioredis.Redis,
    entity: CheckEntity,
    name: str,
    scope_id: UUID | None = None,
) -> NameLock:
    """Build a lock for an entity name (optionally scoped, e.g. per organization)."""
    return NameLock(
        redis,
        lock_redis_key(entity, name, scope_id),
        settings.NAME_LOCK_TTL_SECONDS,
    )

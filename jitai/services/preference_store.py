"""
Persistent key-value store for engine state.

Holds the bandit state blob and the burden score history. Writes go to
Redis when it is reachable and always to an in-memory mirror, so the
engine keeps working (without durability) when Redis is down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from jitai.lib.exceptions import StorageError
from jitai.services.redis_service import RedisService

logger = logging.getLogger(__name__)

KEY_PREFIX = "jitai:"


class KeyValueStore(Protocol):
    """String key-value persistence used by the bandit and trend monitor."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class PreferenceStore:
    """
    Key-value store with a Redis backend and in-memory mirror.

    - Reads hit memory first, then Redis (and warm memory on a hit)
    - Writes update memory, then Redis
    - Redis failures are logged and never raised
    """

    def __init__(self, redis_service: RedisService | None = None) -> None:
        """
        Args:
            redis_service: Redis backend; None keeps state in memory only
        """
        self._memory: dict[str, str] = {}
        self._redis = redis_service
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            if key in self._memory:
                return self._memory[key]
            if self._redis is None:
                return None
            try:
                value = await self._redis.get(KEY_PREFIX + key)
            except StorageError:
                logger.warning("Key-value read failed for %s, treating as missing", key, exc_info=True)
                return None
            if value is not None:
                self._memory[key] = value
            return value

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._memory[key] = value
            if self._redis is None:
                return
            try:
                await self._redis.set(KEY_PREFIX + key, value)
            except StorageError:
                logger.warning("Key-value write failed for %s, kept in memory only", key, exc_info=True)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._memory.pop(key, None)
            if self._redis is None:
                return
            try:
                await self._redis.delete(KEY_PREFIX + key)
            except StorageError:
                logger.warning("Key-value delete failed for %s", key, exc_info=True)

"""Redis service backing the engine's key-value state."""

from __future__ import annotations

import logging
import os
from typing import Any

import redis.asyncio as redis

from jitai.lib.exceptions import StorageError

logger = logging.getLogger(__name__)


class RedisService:
    """Thin async Redis wrapper that degrades to 'no client' when Redis is down."""

    def __init__(self, redis_url: str | None = None) -> None:
        self._redis_url = redis_url or os.environ.get("REDIS_URL", "redis://localhost:6379/0")
        self._client: redis.Redis | None = None
        self._unavailable = False

    @staticmethod
    def _tls_kwargs(redis_url: str) -> dict[str, Any]:
        """Build TLS keyword arguments when using rediss:// URLs."""
        import ssl

        if not redis_url.startswith("rediss://"):
            return {}

        cert_path = os.environ.get("REDIS_TLS_CERT_PATH")
        if cert_path:
            ssl_ctx = ssl.create_default_context(cafile=cert_path)
        else:
            ssl_ctx = ssl.create_default_context()
        ssl_ctx.check_hostname = True
        ssl_ctx.verify_mode = ssl.CERT_REQUIRED
        return {"ssl": ssl_ctx}

    async def _ensure_async_client(self) -> redis.Redis | None:
        """Get or create the async client; None once Redis proved unreachable."""
        if self._client is None and not self._unavailable:
            try:
                client = redis.from_url(
                    self._redis_url,
                    decode_responses=True,
                    **self._tls_kwargs(self._redis_url),
                )
                await client.ping()
                self._client = client
            except (redis.ConnectionError, OSError):
                logger.warning("Redis unavailable at %s, using in-memory state only", self._redis_url)
                self._unavailable = True
                self._client = None
        return self._client

    @property
    def available(self) -> bool:
        return self._client is not None

    async def get(self, key: str) -> str | None:
        """Get value by key."""
        client = await self._ensure_async_client()
        if client is None:
            return None
        try:
            result = await client.get(key)
        except redis.RedisError as exc:
            raise StorageError(f"Redis GET {key} failed") from exc
        return str(result) if result is not None else None

    async def set(self, key: str, value: str) -> bool:
        """Store a string value verbatim."""
        client = await self._ensure_async_client()
        if client is None:
            return False
        try:
            return bool(await client.set(key, value))
        except redis.RedisError as exc:
            raise StorageError(f"Redis SET {key} failed") from exc

    async def delete(self, key: str) -> bool:
        """Delete key."""
        client = await self._ensure_async_client()
        if client is None:
            return False
        try:
            return bool(await client.delete(key))
        except redis.RedisError as exc:
            raise StorageError(f"Redis DEL {key} failed") from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Singleton instance
_redis_service: RedisService | None = None


def get_redis_service() -> RedisService:
    """Get Redis service singleton."""
    global _redis_service
    if _redis_service is None:
        _redis_service = RedisService()
    return _redis_service

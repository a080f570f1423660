"""
Small TTL cache owned by a single component.

Each cache holds computed values keyed by an arbitrary hashable key and
expires them after a fixed time-to-live. Writers are last-writer-wins;
two concurrent misses may both compute, and the later result is kept.

Usage:
    cache: TTLCache[str, Metrics] = TTLCache(ttl_seconds=600)
    metrics = await cache.get_or_compute("current", compute_metrics)
    metrics = await cache.get_or_compute("current", compute_metrics, force_refresh=True)
    cache.invalidate()
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and the moment it was stored."""
    value: V
    stored_at: float  # clock seconds


class TTLCache(Generic[K, V]):
    """In-process cache with a fixed time-to-live per entry."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> V | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            del self._entries[key]
            return None
        return entry.value

    def put(self, key: K, value: V) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    async def get_or_compute(
        self,
        key: K,
        compute: Callable[[], Awaitable[V]],
        force_refresh: bool = False,
    ) -> V:
        """
        Return a fresh cached value or compute and store a new one.

        Args:
            key: Cache key
            compute: Coroutine factory producing the value on a miss
            force_refresh: Skip the cached value for this call; the
                recomputed value replaces it, other keys are untouched

        Returns:
            The cached or newly computed value
        """
        if not force_refresh:
            cached = self.get(key)
            if cached is not None:
                return cached
        value = await compute()
        self.put(key, value)
        return value

    def invalidate(self, key: K | None = None) -> None:
        """Drop one key, or every entry when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

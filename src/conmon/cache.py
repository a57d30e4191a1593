"""Short-TTL in-process cache shared by assessments and governance lookups."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from conmon.config import settings
from conmon.models.finding import Resource

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    """Thread-safe key/value cache whose entries expire after ``ttl_seconds``.

    Reads and inserts take a lock, so batch remediation and interactive
    governance calls may share one instance with a running assessment.
    Loaders run outside the lock; two concurrent misses may both load, and
    the last insert wins.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key] = _Entry(value, self._clock() + self._ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        self.set(key, value)
        return value


class ResourceCache:
    """Enumerated resources per subscription, warmed once per assessment."""

    def __init__(self, inventory, ttl_seconds: float | None = None) -> None:
        self._inventory = inventory
        self._cache: TTLCache[list[Resource]] = TTLCache(
            ttl_seconds if ttl_seconds is not None else settings.resource_cache_ttl_seconds
        )

    @staticmethod
    def _key(subscription_id: str, resource_group: str | None) -> str:
        return f"{subscription_id}/{(resource_group or '*').lower()}"

    async def warm(self, subscription_id: str, resource_group: str | None = None) -> int:
        """Load resources for a scope unless a fresh entry exists; returns the count."""
        resources = await self.get_resources(subscription_id, resource_group)
        logger.info(
            "Resource cache warm for %s (%s): %d resources",
            subscription_id, resource_group or "all groups", len(resources),
        )
        return len(resources)

    async def get_resources(
        self, subscription_id: str, resource_group: str | None = None
    ) -> list[Resource]:
        key = self._key(subscription_id, resource_group)
        return await self._cache.get_or_load(
            key, lambda: self._inventory.list_resources(subscription_id, resource_group)
        )

    async def get_resources_of_type(
        self, subscription_id: str, resource_type: str, resource_group: str | None = None
    ) -> list[Resource]:
        wanted = resource_type.lower()
        resources = await self.get_resources(subscription_id, resource_group)
        return [r for r in resources if r.resource_type.lower() == wanted]

    def invalidate(self, subscription_id: str, resource_group: str | None = None) -> None:
        self._cache.invalidate(self._key(subscription_id, resource_group))

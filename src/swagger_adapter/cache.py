"""Bounded in-memory TTL cache for specs and upstream responses."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .config import Settings


logger = logging.getLogger(__name__)


class _Miss:
    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS: Any = _Miss()

Producer = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class CacheEntry:
    data: Any
    expiry: float


class ResponseCache:
    """TTL map with size-bounded eviction and an optional cleanup task.

    Expired entries are dropped lazily on ``get`` and in bulk by ``cleanup``.
    The cleanup task only runs between ``start()`` and ``dispose()``.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: int = 1000,
        enabled: bool = True,
        cleanup_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.enabled = enabled
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._cleanup_task: Optional[asyncio.Task[None]] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISS

    @staticmethod
    def generate_key(method: str, url: str, params: Optional[Dict[str, Any]] = None) -> str:
        normalized = json.dumps(
            {key: (params or {})[key] for key in sorted(params or {})},
            separators=(",", ":"),
            default=str,
        )
        return f"{method}:{url}:{normalized}"

    @staticmethod
    def is_cacheable(data: Any, status: int) -> bool:
        return status == 200 and data is not None

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        # a non-positive max_size stores nothing
        if not self.enabled or self.max_size <= 0:
            return
        if key not in self._entries and len(self._entries) >= self.max_size:
            self.evict_oldest()
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(data=data, expiry=self._clock() + ttl)

    def get(self, key: str) -> Any:
        if not self.enabled:
            return MISS
        entry = self._entries.get(key)
        if entry is None:
            return MISS
        if entry.expiry <= self._clock():
            del self._entries[key]
            return MISS
        return entry.data

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_fetch(self, key: str, producer: Producer, ttl: Optional[float] = None) -> Any:
        cached = self.get(key)
        if cached is not MISS:
            return cached

        value = producer()
        if inspect.isawaitable(value):
            value = await value

        if value is not None:
            self.set(key, value, ttl)
        return value

    def cleanup(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expiry <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Cache cleanup removed %s expired entries", len(expired))
        return len(expired)

    def evict_oldest(self, count: int = 1) -> None:
        ordered = sorted(self._entries.items(), key=lambda item: item[1].expiry)
        for key, _ in ordered[:count]:
            del self._entries[key]

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        active = sum(1 for entry in self._entries.values() if entry.expiry > now)
        return {
            "size": len(self._entries),
            "activeEntries": active,
            "expiredEntries": len(self._entries) - active,
            "maxSize": self.max_size,
            "enabled": self.enabled,
        }

    def start(self) -> None:
        if not self.cleanup_interval or self._cleanup_task is not None:
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(
            self._cleanup_loop(self.cleanup_interval)
        )

    async def _cleanup_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.cleanup()

    def dispose(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        self.clear()


class CacheSet:
    """The three cache tiers: reference lookups, per-resource reports, everything else."""

    def __init__(self, lookup: ResponseCache, report: ResponseCache, default: ResponseCache) -> None:
        self.lookup = lookup
        self.report = report
        self.default = default

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheSet":
        enabled = settings.cache_enabled
        return cls(
            lookup=ResponseCache(
                default_ttl=30 * 60, max_size=500, enabled=enabled, cleanup_interval=15 * 60
            ),
            report=ResponseCache(
                default_ttl=10 * 60, max_size=200, enabled=enabled, cleanup_interval=5 * 60
            ),
            default=ResponseCache(
                default_ttl=settings.cache_default_ttl_seconds,
                max_size=1000,
                enabled=enabled,
                cleanup_interval=5 * 60,
            ),
        )

    def select(self, kind: str) -> ResponseCache:
        if kind == "lookup":
            return self.lookup
        if kind == "report":
            return self.report
        return self.default

    def all(self) -> list[ResponseCache]:
        return [self.lookup, self.report, self.default]

    def start(self) -> None:
        for cache in self.all():
            cache.start()

    def dispose(self) -> None:
        for cache in self.all():
            cache.dispose()

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar("T")

DEFAULT_TTL = 5 * 60.0
PROFILE_TTL = 10 * 60.0

_MISSING = object()


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float


class TTLCache:
    """
    In-memory TTL cache used to memoize API responses.

    Eviction is lazy: an expired entry is dropped by the read that finds it,
    there is no background sweep.
    """

    def __init__(self, default_ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.time) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        self._store[key] = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    async def get_or_set(self, key: str, producer: Callable[[], Awaitable[T]], ttl: Optional[float] = None) -> T:
        """Return the cached value or await `producer()` once and cache its result."""
        cached = self._lookup(key)
        if cached is not _MISSING:
            return cached
        data = await producer()
        self.set(key, data, ttl)
        return data

    def _lookup(self, key: str) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return _MISSING
        if self._clock() - entry.timestamp >= entry.ttl:
            self._store.pop(key, None)
            return _MISSING
        return entry.data

    def __contains__(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def __len__(self) -> int:
        return len(self._store)


class CacheKeys:
    """Key builders: resource tag + scoping identifiers."""

    @staticmethod
    def profile(user_id: str) -> str:
        return f"profile:{user_id}"

    @staticmethod
    def projects(user_id: str, filters: Optional[Dict[str, Any]] = None) -> str:
        return f"projects:{user_id}:{json.dumps(filters or {}, sort_keys=True, separators=(',', ':'))}"

    @staticmethod
    def proposals(user_id: str) -> str:
        return f"proposals:{user_id}"

    @staticmethod
    def contracts(user_id: str) -> str:
        return f"contracts:{user_id}"

    @staticmethod
    def messages(user_id: str) -> str:
        return f"messages:{user_id}"

    @staticmethod
    def reviews(user_id: str) -> str:
        return f"reviews:{user_id}"

    @staticmethod
    def notifications(user_id: str) -> str:
        return f"notifications:{user_id}"

    @staticmethod
    def categories() -> str:
        return "categories"

    @staticmethod
    def skills() -> str:
        return "skills"

    @staticmethod
    def analytics(user_id: str, timeframe: str) -> str:
        return f"analytics:{user_id}:{timeframe}"


# Process-wide instances
cache = TTLCache()
cache_keys = CacheKeys()

__all__ = ["DEFAULT_TTL", "PROFILE_TTL", "CacheEntry", "CacheKeys", "TTLCache", "cache", "cache_keys"]

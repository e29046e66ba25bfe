from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from hireloop.protocol.errors import RequestCancelled
from hireloop.storage.cache import DEFAULT_TTL, PROFILE_TTL, TTLCache, cache as default_cache, cache_keys

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISS = object()

PROJECTS_TTL = 3 * 60.0
CATEGORIES_TTL = 30 * 60.0


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Fetch attempt %s failed: %s; retrying", retry_state.attempt_number, exc)


class CachedFetcher(Generic[T]):
    """
    Cache-first fetch with retries.

    A hit short-circuits the producer. A miss awaits the producer with up to
    `retry_attempts` extra attempts, waiting `retry_delay * n` before the n-th
    retry, and caches the result under `cache_key`.
    """

    def __init__(
        self,
        producer: Callable[[], Awaitable[T]],
        cache_key: Optional[str] = None,
        cache_ttl: float = DEFAULT_TTL,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        on_success: Optional[Callable[[T], Any]] = None,
        on_error: Optional[Callable[[BaseException], Any]] = None,
        enabled: bool = True,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self.producer = producer
        self.cache_key = cache_key
        self.cache_ttl = cache_ttl
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.on_success = on_success
        self.on_error = on_error
        self.enabled = enabled
        self.cache = cache if cache is not None else default_cache
        self.data: Optional[T] = None
        self.error: Optional[BaseException] = None
        self.loading = False

    async def fetch(self) -> Optional[T]:
        if not self.enabled:
            return self.data

        if self.cache_key:
            cached = self.cache.get(self.cache_key, _MISS)
            if cached is not _MISS:
                self._succeed(cached)
                return cached

        self.loading = True
        self.error = None
        try:
            result = await self._produce()
        except RequestCancelled:
            logger.debug("Fetch for %s superseded", self.cache_key or "<uncached>")
            raise
        except Exception as exc:
            logger.warning("Fetch for %s failed: %s", self.cache_key or "<uncached>", exc)
            self.error = exc
            if self.on_error:
                self.on_error(exc)
            return None
        finally:
            self.loading = False

        if self.cache_key:
            self.cache.set(self.cache_key, result, self.cache_ttl)
        self._succeed(result)
        return result

    async def refetch(self) -> Optional[T]:
        if self.cache_key:
            self.cache.delete(self.cache_key)
        return await self.fetch()

    def mutate(self, updater: Callable[[Optional[T]], Optional[T]]) -> Optional[T]:
        self.data = updater(self.data)
        if self.cache_key and self.data is not None:
            self.cache.set(self.cache_key, self.data, self.cache_ttl)
        return self.data

    async def _produce(self) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts + 1),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry_if_not_exception_type(RequestCancelled),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                return await self.producer()
        raise AssertionError("unreachable")

    def _succeed(self, data: T) -> None:
        self.data = data
        self.error = None
        if self.on_success:
            self.on_success(data)


def profile_fetcher(producer: Callable[[], Awaitable[T]], user_id: str, **kwargs: Any) -> CachedFetcher[T]:
    return CachedFetcher(producer, cache_key=cache_keys.profile(user_id), cache_ttl=PROFILE_TTL, **kwargs)


def projects_fetcher(
    producer: Callable[[], Awaitable[T]], user_id: str, filters: Optional[Dict[str, Any]] = None, **kwargs: Any
) -> CachedFetcher[T]:
    return CachedFetcher(producer, cache_key=cache_keys.projects(user_id, filters), cache_ttl=PROJECTS_TTL, **kwargs)


def categories_fetcher(producer: Callable[[], Awaitable[T]], **kwargs: Any) -> CachedFetcher[T]:
    return CachedFetcher(producer, cache_key=cache_keys.categories(), cache_ttl=CATEGORIES_TTL, **kwargs)


__all__ = [
    "CATEGORIES_TTL",
    "PROFILE_TTL",
    "PROJECTS_TTL",
    "CachedFetcher",
    "categories_fetcher",
    "profile_fetcher",
    "projects_fetcher",
]

"""
Cache-Aside accessor

The application, not the cache, loads data:
1. Check cache first (skipped when the backend reports itself unavailable)
2. On hit, return the decoded value
3. On miss, fetch from the authoritative store, at most once per key at a time
4. Write to cache with a TTL for future reads (best effort)

Cache problems never fail a read, they only make it slower. Store problems
are raised to the caller and to every caller coalesced onto the same fetch.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from .backends import CacheBackend
from .codec import KeyCodec
from .config import CACHE_TTL, Settings
from .errors import (
    CacheDecodeError,
    CachePopulateError,
    CacheUnavailable,
    FetchErrorKind,
    NotFound,
    StoreFetchError,
    Timeout,
)
from .inflight import InFlightRegistry

logger = logging.getLogger(__name__)

Duration = Union[float, int, timedelta]
FetchFunction = Callable[[], Awaitable[Any]]


def _seconds(value: Duration) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class CacheStats(BaseModel):
    hits: int
    misses: int
    coalesced: int
    store_fetches: int
    store_errors: int
    decode_errors: int
    populate_errors: int
    cache_unavailable: int
    hit_rate: float


class CacheAsideAccessor:
    def __init__(
        self,
        cache: CacheBackend,
        codec: Optional[KeyCodec] = None,
        *,
        default_ttl: Duration = CACHE_TTL,
        timeout: Duration = 2.0,
        cache_enabled: bool = True,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.cache = cache
        self.codec = codec or KeyCodec()
        self.default_ttl = _seconds(default_ttl)
        self.timeout = _seconds(timeout)
        self.cache_enabled = cache_enabled
        self.registry = registry or InFlightRegistry()
        if self.default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        self._stats = dict.fromkeys(
            (
                "hits",
                "misses",
                "coalesced",
                "store_fetches",
                "store_errors",
                "decode_errors",
                "populate_errors",
                "cache_unavailable",
            ),
            0,
        )

    @classmethod
    def from_settings(
        cls,
        cache: CacheBackend,
        settings: Settings,
        codec: Optional[KeyCodec] = None,
    ) -> "CacheAsideAccessor":
        return cls(
            cache,
            codec or KeyCodec(namespace=settings.key_namespace),
            default_ttl=settings.cache_ttl,
            timeout=settings.operation_timeout,
            cache_enabled=settings.cache_enabled,
        )

    async def fetch(
        self,
        key: str,
        fetch_fn: FetchFunction,
        ttl: Optional[Duration] = None,
        timeout: Optional[Duration] = None,
    ) -> Any:
        """
        Return the value for key, loading it with fetch_fn on a miss.

        Raises StoreFetchError if the value had to be fetched and the fetch
        failed or exceeded timeout. Nothing is cached in that case.
        """
        ttl_seconds = self.default_ttl if ttl is None else _seconds(ttl)
        timeout_seconds = self.timeout if timeout is None else _seconds(timeout)
        if ttl_seconds <= 0:
            raise ValueError(f"ttl must be positive, got {ttl_seconds}")
        if timeout_seconds <= 0:
            raise ValueError(f"timeout must be positive, got {timeout_seconds}")

        available = await self._cache_available()
        if available:
            try:
                payload = await self.cache.get(key)
            except CacheUnavailable as e:
                logger.warning(f"Cache read for {key} failed, falling back to store: {e}")
                self._stats["cache_unavailable"] += 1
                available = False
                payload = None

            if payload is not None:
                try:
                    value = self.codec.decode(payload)
                except CacheDecodeError as e:
                    logger.warning(f"Discarding corrupt cache entry {key}: {e}")
                    self._stats["decode_errors"] += 1
                else:
                    self._stats["hits"] += 1
                    logger.debug(f"Cache HIT {key}")
                    return value

        self._stats["misses"] += 1
        logger.debug(f"Cache MISS {key}")

        async def load():
            return await self._load(key, fetch_fn, ttl_seconds, timeout_seconds, available)

        value, joined = await self.registry.run(key, load, timeout=timeout_seconds)
        if joined:
            self._stats["coalesced"] += 1
        return value

    async def _cache_available(self) -> bool:
        if not self.cache_enabled:
            return False
        try:
            available = await self.cache.is_available()
        except CacheUnavailable as e:
            logger.warning(f"Cache health check failed: {e}")
            available = False

        if not available:
            self._stats["cache_unavailable"] += 1
        return available

    async def _load(
        self,
        key: str,
        fetch_fn: FetchFunction,
        ttl: float,
        timeout: float,
        populate: bool,
    ) -> Any:
        self._stats["store_fetches"] += 1
        try:
            value = await asyncio.wait_for(fetch_fn(), timeout)
        except asyncio.TimeoutError:
            self._stats["store_errors"] += 1
            logger.error(f"Store fetch for {key} timed out after {timeout}s")
            raise StoreFetchError(key, FetchErrorKind.TIMEOUT) from Timeout(f"store fetch exceeded {timeout}s")
        except NotFound as e:
            self._stats["store_errors"] += 1
            logger.info(f"Store has no value for {key}")
            raise StoreFetchError(key, FetchErrorKind.NOT_FOUND, str(e)) from e
        except StoreFetchError:
            self._stats["store_errors"] += 1
            raise
        except Exception as e:
            self._stats["store_errors"] += 1
            logger.error(f"Store fetch for {key} failed: {e}")
            raise StoreFetchError(key, FetchErrorKind.STORE_ERROR, str(e)) from e

        if populate:
            try:
                await self._populate(key, value, ttl)
            except CachePopulateError as e:
                self._stats["populate_errors"] += 1
                logger.warning(f"Could not populate cache for {key}: {e}")
        return value

    async def _populate(self, key: str, value: Any, ttl: float) -> None:
        try:
            payload = self.codec.encode(value)
        except (TypeError, ValueError) as e:
            raise CachePopulateError(f"value is not encodable: {e}") from e

        try:
            await self.cache.set(key, payload, ttl)
        except CacheUnavailable as e:
            raise CachePopulateError(str(e)) from e

    def stats(self) -> CacheStats:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / total if total > 0 else 0.0
        return CacheStats(**self._stats, hit_rate=round(hit_rate, 3))

    def reset_stats(self) -> None:
        for name in self._stats:
            self._stats[name] = 0

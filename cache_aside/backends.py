"""
Cache backends.

A backend only has to store bytes with an expiration and tell the accessor
whether it is healthy. Every call must be bounded in time: a hung cache is
reported as CacheUnavailable instead of hanging the read path.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from .errors import CacheUnavailable, Timeout

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CacheBackend(ABC):
    """Key/value store with set-with-expiration and get-with-miss semantics."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Return False when the backend should be skipped entirely."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """
        Return the stored payload, or None on a miss.

        Raises CacheUnavailable when the backend errors or times out.
        """

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: float) -> None:
        """
        Store value under key for ttl seconds.

        Raises CacheUnavailable when the backend errors or times out.
        """


class RedisCacheBackend(CacheBackend):
    """
    Cache backend over a redis.asyncio client.

    Health is probed with PING at most once per health_check_interval. A
    failed get/set marks the backend unhealthy until the next probe so that a
    struggling Redis is not hammered by every request.
    """

    def __init__(
        self,
        client: redis.Redis,
        timeout: float = 0.5,
        health_check_interval: float = 5.0,
        clock: Clock = time.monotonic,
    ):
        self.client = client
        self.timeout = timeout
        self.health_check_interval = health_check_interval
        self._clock = clock
        self._healthy: Optional[bool] = None
        self._checked_at = 0.0

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCacheBackend":
        timeout = kwargs.get("timeout", 0.5)
        client = redis.from_url(
            url,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client, **kwargs)

    def _mark(self, healthy: bool) -> None:
        self._healthy = healthy
        self._checked_at = self._clock()

    async def is_available(self) -> bool:
        fresh = self._clock() - self._checked_at < self.health_check_interval
        if self._healthy is not None and fresh:
            return self._healthy

        try:
            await asyncio.wait_for(self.client.ping(), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Redis health check timed out after {self.timeout}s")
            self._mark(False)
        except (RedisError, OSError) as e:
            logger.warning(f"Redis health check failed: {e}")
            self._mark(False)
        else:
            if self._healthy is False:
                logger.info("Redis is reachable again")
            self._mark(True)
        return self._healthy

    async def get(self, key: str) -> Optional[bytes]:
        try:
            value = await asyncio.wait_for(self.client.get(key), self.timeout)
        except asyncio.TimeoutError:
            self._mark(False)
            raise CacheUnavailable(f"GET {key} timed out") from Timeout(f"exceeded {self.timeout}s")
        except (RedisError, OSError) as e:
            self._mark(False)
            raise CacheUnavailable(f"GET {key} failed: {e}") from e

        if isinstance(value, str):
            # client created with decode_responses=True
            value = value.encode("utf-8")
        return value

    async def set(self, key: str, value: bytes, ttl: float) -> None:
        ttl_ms = max(1, int(ttl * 1000))
        try:
            await asyncio.wait_for(self.client.set(key, value, px=ttl_ms), self.timeout)
        except asyncio.TimeoutError:
            self._mark(False)
            raise CacheUnavailable(f"SET {key} timed out") from Timeout(f"exceeded {self.timeout}s")
        except (RedisError, OSError) as e:
            self._mark(False)
            raise CacheUnavailable(f"SET {key} failed: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryCacheBackend(CacheBackend):
    """
    Process-local backend with lazy expiry against an injectable clock.

    Used for tests and for running the accessor without Redis.
    """

    def __init__(self, clock: Clock = time.monotonic, available: bool = True):
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self.available = available

    async def is_available(self) -> bool:
        return self.available

    async def get(self, key: str) -> Optional[bytes]:
        if not self.available:
            raise CacheUnavailable("in-memory cache disabled")

        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl: float) -> None:
        if not self.available:
            raise CacheUnavailable("in-memory cache disabled")
        self._entries[key] = (value, self._clock() + ttl)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

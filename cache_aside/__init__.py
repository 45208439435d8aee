"""Cache-aside reads with per-key fetch coalescing."""

from .accessor import CacheAsideAccessor, CacheStats
from .backends import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from .codec import KeyCodec
from .config import Settings
from .errors import (
    CacheAsideError,
    CacheDecodeError,
    CachePopulateError,
    CacheUnavailable,
    FetchErrorKind,
    NotFound,
    StoreError,
    StoreFetchError,
    Timeout,
)
from .inflight import InFlightRegistry
from .store import AuthoritativeStore, PostgresStore

__all__ = [
    "AuthoritativeStore",
    "CacheAsideAccessor",
    "CacheAsideError",
    "CacheBackend",
    "CacheDecodeError",
    "CachePopulateError",
    "CacheStats",
    "CacheUnavailable",
    "FetchErrorKind",
    "InFlightRegistry",
    "InMemoryCacheBackend",
    "KeyCodec",
    "NotFound",
    "PostgresStore",
    "RedisCacheBackend",
    "Settings",
    "StoreError",
    "StoreFetchError",
    "Timeout",
]

"""
Error taxonomy for the cache-aside accessor.

Only StoreFetchError escapes CacheAsideAccessor.fetch(). Everything on the
cache side degrades to a miss:

- CacheUnavailable: health check failed, timed out, or the backend errored
- CacheDecodeError: payload present but not parsable
- CachePopulateError: set() after a successful fetch failed (logged only)
"""

from enum import Enum
from typing import Optional


class CacheAsideError(Exception):
    """Base class for every error raised by this package."""


class CacheUnavailable(CacheAsideError):
    pass


class CacheDecodeError(CacheAsideError):
    pass


class CachePopulateError(CacheAsideError):
    pass


class Timeout(CacheAsideError):
    """A collaborator call exceeded its deadline."""


class NotFound(CacheAsideError):
    """Raised by an authoritative store when the requested row does not exist."""


class StoreError(CacheAsideError):
    """Raised by an authoritative store for any other failure."""


class FetchErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    STORE_ERROR = "store_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class StoreFetchError(CacheAsideError):
    """
    The authoritative fetch for a key failed.

    Every caller that was waiting on the same in-flight fetch receives the
    same instance.
    """

    def __init__(self, key: str, kind: FetchErrorKind, message: Optional[str] = None):
        self.key = key
        self.kind = kind
        super().__init__(message or f"fetch for {key!r} failed: {kind.value}")

    @property
    def not_found(self) -> bool:
        return self.kind is FetchErrorKind.NOT_FOUND

    @property
    def timed_out(self) -> bool:
        return self.kind is FetchErrorKind.TIMEOUT

"""
In-flight fetch registry.

Coalesces concurrent loads of the same key: the first caller registers a
future and runs the load, later callers attach to that future. The entry
lives exactly as long as the load.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .errors import FetchErrorKind, StoreFetchError, Timeout


class InFlightRegistry:
    def __init__(self):
        self._calls: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, key: str) -> bool:
        return key in self._calls

    async def run(
        self,
        key: str,
        load: Callable[[], Awaitable[Any]],
        timeout: Optional[float] = None,
    ) -> Tuple[Any, bool]:
        """
        Run load() for key unless a load for key is already running.

        Returns (value, joined) where joined is True when this caller attached
        to somebody else's load. Waiters see exactly the owner's outcome,
        unless their own timeout expires first: that waiter alone then gets a
        TIMEOUT StoreFetchError and the load keeps running for everyone else.
        """
        async with self._lock:
            future = self._calls.get(key)
            owner = future is None
            if owner:
                future = asyncio.get_running_loop().create_future()
                self._calls[key] = future

        if not owner:
            # shield: a cancelled or timed-out waiter must not cancel the shared load
            try:
                return await asyncio.wait_for(asyncio.shield(future), timeout), True
            except asyncio.TimeoutError:
                if future.done():
                    # the shared load itself raised TimeoutError
                    raise
                raise StoreFetchError(key, FetchErrorKind.TIMEOUT) from Timeout(
                    f"waited {timeout}s for in-flight fetch"
                )

        try:
            value = await load()
        except asyncio.CancelledError:
            self._settle(key, future, error=StoreFetchError(key, FetchErrorKind.CANCELLED))
            raise
        except Exception as e:
            self._settle(key, future, error=e)
            raise
        else:
            self._settle(key, future, value=value)
            return value, False
        finally:
            if not future.done():
                # KeyboardInterrupt, SystemExit and other BaseExceptions
                self._settle(key, future, error=StoreFetchError(key, FetchErrorKind.CANCELLED))

    def _settle(self, key: str, future: asyncio.Future, value: Any = None, error: BaseException = None) -> None:
        # no await between lookup and delete, so this cannot interleave with run()
        if self._calls.get(key) is future:
            del self._calls[key]

        if future.done():
            return
        if error is None:
            future.set_result(value)
        else:
            future.set_exception(error)
            # mark retrieved so a load with no waiters does not warn at GC
            future.exception()

"""
One-shot completion signal used while a stream is starting.
"""

from __future__ import annotations

import asyncio
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Deferred(Generic[T]):
    """
    Future that settles exactly once, to a value or to an error.

    Any number of waiters may call :meth:`wait` before or after settlement
    and all of them observe the same outcome.  Settling a second time is a
    no-op and returns ``False``.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def resolve(self, value: T = None) -> bool:  # type: ignore[assignment]
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(error)
        # Mark the exception as retrieved: nobody is obliged to wait.
        self._future.exception()
        return True

    async def wait(self) -> T:
        # Shield so a cancelled waiter cannot cancel the shared future.
        return await asyncio.shield(self._future)

    def __await__(self):
        return self.wait().__await__()


__all__ = ["Deferred"]

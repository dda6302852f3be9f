"""
Scope binding: one stream per logical consumer scope.

A :class:`StreamScope` constructs its stream once, withholds the value and
controller until the stream is running, hands out cached deep-compared
projections of the value and stops the stream exactly once on teardown.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Callable, Dict, Generic, Optional, Set, TypeVar

from .config import StreamOptions
from .diff import clone, is_different
from .errors import NotRunning, StartFailed
from .stream import LifecycleState, StreamInstance, create_stream

LOG = logging.getLogger(__name__)

P = TypeVar("P")
API = TypeVar("API")

Selector = Callable[[Any], Any]

_MISSING = object()
_CLOSED = object()

# Projections kept per scope; the least recently used selector is evicted first.
PROJECTION_CACHE_SIZE = 32


def _project(selector: Optional[Selector], value: Any) -> Any:
    return selector(value) if selector is not None else value


class StreamScope(Generic[P, API]):
    def __init__(
        self,
        initializer: Callable[..., Any],
        seed: Optional[P] = None,
        context: Any = None,
        *,
        options: Optional[StreamOptions] = None,
        queue_size: int = 64,
    ) -> None:
        self.initializer = initializer
        self.seed = seed
        self.context = context
        self.options = options
        self.queue_size = max(1, int(queue_size))

        self._stream: Optional[StreamInstance[P, Any]] = None
        self._closed = False
        self._projections: Dict[Optional[Selector], Any] = {}
        self._watch_queues: Set[asyncio.Queue] = set()

    # ------------------------------------------------------------------ lifecycle

    async def open(self) -> "StreamScope[P, API]":
        if self._stream is not None or self._closed:
            raise RuntimeError("scope can only be opened once")

        stream = create_stream(self.initializer, self.seed, self.context, options=self.options)
        self._stream = stream
        if stream.wait_until_started is not None:
            await stream.wait_until_started()
        LOG.debug("Scope ready with stream %s", stream.id)
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        for queue in list(self._watch_queues):
            self._offer(queue, _CLOSED)

        stream = self._stream
        if stream is None:
            return
        waiter = stream.wait_until_started
        if waiter is not None and stream.state() is LifecycleState.STARTING:
            # open() was interrupted; let the initializer settle first.
            try:
                await waiter()
            except StartFailed:
                LOG.debug("Stream %s failed while its scope was closing", stream.id)
        if stream.state() is not LifecycleState.STOPPED:
            stream.stop()

    async def __aenter__(self) -> "StreamScope[P, API]":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------ reads

    def _running_stream(self) -> Optional[StreamInstance[P, Any]]:
        stream = self._stream
        if self._closed or stream is None or stream.state() is not LifecycleState.RUNNING:
            return None
        return stream

    @property
    def ready(self) -> bool:
        return self._running_stream() is not None

    @property
    def stream(self) -> StreamInstance[P, Any]:
        stream = self._running_stream()
        if stream is None:
            raise NotRunning("scope is not ready")
        return stream

    def state(self) -> LifecycleState:
        if self._stream is None:
            return LifecycleState.STOPPED
        return self._stream.state()

    def select(self, selector: Optional[Selector] = None) -> Any:
        """
        Return a deep copy of the (projected) value.

        The previously returned object is handed out again for as long as the
        projection stays structurally equal, so identity checks can be used
        to skip re-rendering.  Only the most recently used
        ``PROJECTION_CACHE_SIZE`` selectors are remembered, so pass the same
        selector object to benefit from the cache.
        """

        projected = clone(_project(selector, self.stream.value()))
        cached = self._projections.pop(selector, _MISSING)
        if cached is not _MISSING and not is_different(cached, projected):
            projected = cached
        elif len(self._projections) >= PROJECTION_CACHE_SIZE:
            self._projections.pop(next(iter(self._projections)))
        self._projections[selector] = projected
        return projected

    def controller(self) -> API:
        return self.stream.controller()

    async def invoke(self, name: str, *args: Any, **kwargs: Any) -> Any:
        controller = self.controller()
        if not controller or name not in controller:
            raise KeyError(name)
        result = controller[name](*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    # ------------------------------------------------------------------ watch

    def _offer(self, queue: asyncio.Queue, item: Any) -> None:
        if queue.full():
            # Only the newest value matters to a watcher.
            queue.get_nowait()
        queue.put_nowait(item)

    async def watch(self, selector: Optional[Selector] = None) -> AsyncIterator[Any]:
        """
        Yield the current projection, then each structurally different one.

        Ends when the scope closes or the stream stops.
        """

        stream = self.stream
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)

        def deliver(item: Any) -> None:
            try:
                loop.call_soon_threadsafe(self._offer, queue, item)
            except RuntimeError:
                LOG.debug("Watcher loop closed; dropping notification.", exc_info=True)

        last = clone(_project(selector, stream.value()))
        unsubscribe = stream.subscribe(deliver)
        remove_stop_hook = stream.on_stop(lambda: deliver(_CLOSED))
        self._watch_queues.add(queue)
        try:
            yield last
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                projected = _project(selector, item)
                if not is_different(last, projected):
                    continue
                last = clone(projected)
                yield last
        finally:
            unsubscribe()
            remove_stop_hook()
            self._watch_queues.discard(queue)


__all__ = ["PROJECTION_CACHE_SIZE", "Selector", "StreamScope"]

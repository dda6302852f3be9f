"""
Reactive value container.

A stream owns one mutable slot of application state.  The slot is seeded by
an *initializer* which receives a :class:`MutationHandle` and returns (or
resolves to) a :class:`StartResult` carrying the starting value, an optional
cleanup routine and a controller: the bag of named operations external
callers use to request changes.

Lifecycle::

    stopped --construct--> starting --settle ok--> running --stop()--> stopped
                  |              \\--settle fails--> error  --stop()--> stopped
                  \\--sync result-------------------> running

Subscribers are only notified when a mutation is structurally different from
the last published snapshot.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    Generic,
    Optional,
    TypeVar,
    Union,
)

from .config import DEFAULT_OPTIONS, StopPolicy, StreamOptions
from .deferred import Deferred
from .diff import clone, is_different
from .errors import (
    AlreadyStopped,
    CleanupFailed,
    MutationRejected,
    NotRunning,
    StartFailed,
    StreamInErrorState,
)

LOG = logging.getLogger(__name__)

P = TypeVar("P")
API = TypeVar("API", bound=Optional[Mapping[str, Callable[..., Any]]])

Listener = Callable[[Any], None]
Cleanup = Callable[[], None]


class LifecycleState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


@dataclass(frozen=True)
class StartResult(Generic[P, API]):
    """What an initializer returns: the authoritative starting value and its controller."""

    initial_value: P
    controller: API = None  # type: ignore[assignment]
    cleanup: Optional[Cleanup] = None


# ---------------------------------------------------------------- state variants


@dataclass(frozen=True)
class Stopped:
    lifecycle: ClassVar[LifecycleState] = LifecycleState.STOPPED


@dataclass
class Starting:
    lifecycle: ClassVar[LifecycleState] = LifecycleState.STARTING

    signal: Deferred[None]
    task: "asyncio.Future[Any]"
    stop_requested: bool = False


@dataclass
class Running:
    lifecycle: ClassVar[LifecycleState] = LifecycleState.RUNNING

    value: Any
    snapshot: Any
    controller: Any
    cleanup: Optional[Cleanup]
    version: int = 0


@dataclass(frozen=True)
class Failed:
    lifecycle: ClassVar[LifecycleState] = LifecycleState.ERROR

    error: StartFailed


StreamState = Union[Stopped, Starting, Running, Failed]

_STOPPED = Stopped()


def _coerce_result(outcome: Any) -> StartResult:
    if isinstance(outcome, StartResult):
        result = outcome
    elif isinstance(outcome, Mapping):
        if "initial_value" in outcome:
            initial_value = outcome["initial_value"]
        elif "initialValue" in outcome:
            initial_value = outcome["initialValue"]
        else:
            raise TypeError("initializer result is missing 'initial_value'")
        result = StartResult(
            initial_value=initial_value,
            controller=outcome.get("controller"),
            cleanup=outcome.get("cleanup"),
        )
    else:
        raise TypeError(
            f"initializer must return StartResult or a mapping, got {type(outcome).__name__}"
        )

    if result.cleanup is not None and not callable(result.cleanup):
        raise TypeError("cleanup must be callable")
    return result


class MutationHandle(Generic[P]):
    """
    The get/set/end interface handed to an initializer.

    Only the initializer's closure (and the controller it builds) should
    hold this object.
    """

    __slots__ = ("_stream",)

    def __init__(self, stream: "StreamInstance[P, Any]") -> None:
        self._stream = stream

    def get(self) -> P:
        return self._stream._get()

    def set(self, next_value: Union[P, Callable[[P], P]]) -> bool:
        """
        Publish ``next_value`` (or ``next_value(previous)`` when callable).

        Returns ``True`` when subscribers were notified.
        """

        return self._stream._set(next_value)

    def end(self) -> bool:
        return self._stream._end()


class StreamInstance(Generic[P, API]):
    """
    One stream: constructed with an initializer, stopped exactly once.

    ``wait_until_started`` is ``None`` when the initializer completed
    synchronously; otherwise it is an async callable that returns once the
    stream left ``starting`` (raising :class:`StartFailed` on failure).
    """

    def __init__(
        self,
        initializer: Callable[..., Any],
        seed: Optional[P] = None,
        context: Any = None,
        *,
        options: Optional[StreamOptions] = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.options = options or DEFAULT_OPTIONS
        self.ignored_mutations = 0
        self.wait_until_started: Optional[Callable[[], Awaitable[None]]] = None

        self._lock = threading.RLock()
        self._state: StreamState = _STOPPED
        self._observer_counter = 0
        self._observers: Dict[int, Listener] = {}
        self._stop_hooks: Dict[int, Callable[[], None]] = {}
        self.handle: MutationHandle[P] = MutationHandle(self)

        try:
            outcome = initializer(self.handle, seed, context)
        except Exception as exc:
            LOG.error("Stream %s initializer raised %r", self.id, exc)
            raise StartFailed(f"initializer raised {exc!r}", cause=exc) from exc

        if inspect.isawaitable(outcome):
            self._begin_async_start(outcome)
            return

        try:
            result = _coerce_result(outcome)
        except TypeError as exc:
            raise StartFailed(str(exc), cause=exc) from exc
        with self._lock:
            self._state = self._running_from(result)
        LOG.debug("Stream %s started synchronously", self.id)

    # ------------------------------------------------------------------ helpers

    def __repr__(self) -> str:
        return f"<StreamInstance {self.id[:8]} {self._state.lifecycle.value}>"

    @staticmethod
    def _running_from(result: StartResult) -> Running:
        return Running(
            value=result.initial_value,
            snapshot=clone(result.initial_value),
            controller=result.controller,
            cleanup=result.cleanup,
        )

    def _begin_async_start(self, outcome: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            if inspect.iscoroutine(outcome):
                outcome.close()
            raise StartFailed(
                "asynchronous initializer requires a running event loop", cause=exc
            ) from exc

        task = asyncio.ensure_future(outcome)
        signal: Deferred[None] = Deferred(loop)
        with self._lock:
            self._state = Starting(signal=signal, task=task)
        self.wait_until_started = signal.wait
        task.add_done_callback(self._settle_start)
        LOG.debug("Stream %s starting", self.id)

    def _settled_state(self, task: "asyncio.Future[Any]") -> Union[Running, Failed]:
        if task.cancelled():
            return Failed(StartFailed("initializer was cancelled"))
        exc = task.exception()
        if exc is not None:
            return Failed(StartFailed(f"initializer failed: {exc!r}", cause=exc))
        try:
            return self._running_from(_coerce_result(task.result()))
        except TypeError as exc:
            return Failed(StartFailed(str(exc), cause=exc))

    def _settle_start(self, task: "asyncio.Future[Any]") -> None:
        settled = self._settled_state(task)
        with self._lock:
            starting = self._state
            if not isinstance(starting, Starting):
                LOG.error("Stream %s settled while %s; ignoring", self.id, starting.lifecycle.value)
                return
            self._state = settled

        if isinstance(settled, Failed):
            LOG.error("Stream %s failed to start: %s", self.id, settled.error)
            starting.signal.reject(settled.error)
        else:
            LOG.debug("Stream %s running", self.id)
            starting.signal.resolve(None)

        if starting.stop_requested:
            LOG.debug("Stream %s applying deferred stop", self.id)
            try:
                self.stop()
            except CleanupFailed:
                LOG.exception("Deferred stop of stream %s failed during cleanup", self.id)

    def _require_running(self, what: str) -> Running:
        state = self._state
        if isinstance(state, Running):
            return state
        if isinstance(state, Failed):
            raise StreamInErrorState(
                f"{what} unavailable: stream failed to start", cause=state.error
            ) from state.error
        raise NotRunning(f"{what} unavailable while stream is {state.lifecycle.value}")

    def _notify(self, snapshot: Any) -> None:
        for token, listener in list(self._observers.items()):
            # Listeners removed earlier in this fan-out are skipped.
            if token not in self._observers:
                continue
            try:
                listener(snapshot)
            except Exception:
                LOG.exception("Stream %s listener %s failed.", self.id, token)

    # ------------------------------------------------------------------ mutation handle

    def _get(self) -> P:
        with self._lock:
            state = self._state
            if isinstance(state, Running):
                return state.value
            if isinstance(state, Failed):
                raise StreamInErrorState(
                    "get() on a stream that failed to start", cause=state.error
                ) from state.error
            raise MutationRejected(f"get() while stream is {state.lifecycle.value}")

    def _set(self, next_value: Any) -> bool:
        with self._lock:
            state = self._state
            if not isinstance(state, Running):
                self._reject_mutation(state)
                return False

            if callable(next_value):
                next_value = next_value(state.value)
            if not is_different(state.snapshot, next_value):
                return False

            state.value = next_value
            state.snapshot = clone(next_value)
            state.version += 1
            if self._observers:
                self._notify(clone(state.snapshot))
            return True

    def _reject_mutation(self, state: StreamState) -> None:
        self.ignored_mutations += 1
        rejected = MutationRejected(f"set() while stream is {state.lifecycle.value}")
        if self.options.strict:
            raise rejected
        LOG.warning("Stream %s ignored set(): stream is %s", self.id, state.lifecycle.value)
        callback = self.options.on_ignored_mutation
        if callback is not None:
            callback(rejected)

    def _end(self) -> bool:
        if isinstance(self._state, Stopped):
            LOG.warning("Stream %s end() called on a stopped stream", self.id)
            return False
        return self.stop()

    # ------------------------------------------------------------------ public API

    def state(self) -> LifecycleState:
        return self._state.lifecycle

    @property
    def failure(self) -> Optional[StartFailed]:
        state = self._state
        return state.error if isinstance(state, Failed) else None

    def value(self) -> P:
        with self._lock:
            return self._require_running("value").value

    def controller(self) -> API:
        with self._lock:
            return self._require_running("controller").controller

    def version(self) -> int:
        with self._lock:
            return self._require_running("version").version

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        if not callable(listener):
            raise TypeError("listener must be callable")
        with self._lock:
            self._observer_counter += 1
            token = self._observer_counter
            self._observers[token] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._observers.pop(token, None)

        return unsubscribe

    def on_stop(self, hook: Callable[[], None]) -> Callable[[], None]:
        """Call ``hook()`` once when the stream transitions to ``stopped``."""

        if not callable(hook):
            raise TypeError("hook must be callable")
        with self._lock:
            self._observer_counter += 1
            token = self._observer_counter
            self._stop_hooks[token] = hook

        def remove() -> None:
            with self._lock:
                self._stop_hooks.pop(token, None)

        return remove

    def stop(self) -> bool:
        """
        Stop the stream and run its cleanup routine exactly once.

        Returns ``True`` when the stream stopped now, ``False`` when the stop
        was deferred until a pending initializer settles.
        """

        with self._lock:
            state = self._state
            if isinstance(state, Stopped):
                raise AlreadyStopped("stream is already stopped")
            if isinstance(state, Starting):
                if self.options.stop_policy is StopPolicy.REJECT:
                    raise NotRunning("cannot stop a stream that is still starting")
                if state.stop_requested:
                    raise AlreadyStopped("stop already requested")
                state.stop_requested = True
                LOG.debug("Stream %s stop deferred until start settles", self.id)
                return False

            cleanup = state.cleanup if isinstance(state, Running) else None
            self._state = _STOPPED
            hooks = list(self._stop_hooks.values())
            self._stop_hooks.clear()

        LOG.debug("Stream %s stopped", self.id)
        for hook in hooks:
            try:
                hook()
            except Exception:
                LOG.exception("Stream %s stop hook failed.", self.id)
        if cleanup is not None:
            try:
                cleanup()
            except Exception as exc:
                LOG.exception("Stream %s cleanup failed.", self.id)
                raise CleanupFailed(f"cleanup raised {exc!r}", cause=exc) from exc
        return True


def create_stream(
    initializer: Callable[..., Any],
    seed: Optional[P] = None,
    context: Any = None,
    *,
    options: Optional[StreamOptions] = None,
) -> StreamInstance[P, Any]:
    """Construct a stream, invoking ``initializer(handle, seed, context)`` immediately."""

    return StreamInstance(initializer, seed, context, options=options)


__all__ = [
    "Failed",
    "LifecycleState",
    "MutationHandle",
    "Running",
    "StartResult",
    "Starting",
    "Stopped",
    "StreamInstance",
    "StreamState",
    "create_stream",
]

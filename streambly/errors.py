"""
Failure kinds surfaced by the stream engine.

The set is closed: every error raised by :mod:`streambly.stream` is one of
the classes below, so callers can branch on ``error.kind`` exhaustively.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    START_FAILED = "start_failed"
    MUTATION_REJECTED = "mutation_rejected"
    CLEANUP_FAILED = "cleanup_failed"
    ALREADY_STOPPED = "already_stopped"
    NOT_RUNNING = "not_running"
    STREAM_IN_ERROR_STATE = "stream_in_error_state"


class StreamError(RuntimeError):
    """Base class for stream engine errors."""

    kind: ErrorKind

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message or self.kind.value)
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": str(self),
            "cause": repr(self.cause) if self.cause is not None else None,
        }


class StartFailed(StreamError):
    """Raised when the initializer throws or its awaitable result fails."""

    kind = ErrorKind.START_FAILED


class NotRunning(StreamError):
    """Raised when a read requires the ``running`` state."""

    kind = ErrorKind.NOT_RUNNING


class MutationRejected(NotRunning):
    """Raised (or reported) for ``get``/``set`` outside the ``running`` state."""

    kind = ErrorKind.MUTATION_REJECTED


class CleanupFailed(StreamError):
    """Raised from ``stop()`` when the cleanup routine failed; the stream is stopped anyway."""

    kind = ErrorKind.CLEANUP_FAILED


class AlreadyStopped(StreamError):
    kind = ErrorKind.ALREADY_STOPPED


class StreamInErrorState(StreamError):
    """Raised for reads after a failed start. ``cause`` holds the captured :class:`StartFailed`."""

    kind = ErrorKind.STREAM_IN_ERROR_STATE


__all__ = [
    "AlreadyStopped",
    "CleanupFailed",
    "ErrorKind",
    "MutationRejected",
    "NotRunning",
    "StartFailed",
    "StreamError",
    "StreamInErrorState",
]

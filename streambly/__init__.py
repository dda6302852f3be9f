"""
Streambly: reactive value containers.

A stream holds one slot of application state produced by a synchronous or
asynchronous initializer, notifies subscribers only on structural changes,
and runs its cleanup routine exactly once when stopped.
"""

from __future__ import annotations

from .builder import create_streamable, streamable
from .config import ServerSettings, StopPolicy, StreamOptions, load_settings
from .deferred import Deferred
from .diff import clone, is_different
from .errors import (
    AlreadyStopped,
    CleanupFailed,
    ErrorKind,
    MutationRejected,
    NotRunning,
    StartFailed,
    StreamError,
    StreamInErrorState,
)
from .scope import StreamScope
from .stream import LifecycleState, MutationHandle, StartResult, StreamInstance, create_stream

__all__ = [
    "AlreadyStopped",
    "CleanupFailed",
    "Deferred",
    "ErrorKind",
    "LifecycleState",
    "MutationHandle",
    "MutationRejected",
    "NotRunning",
    "ServerSettings",
    "StartFailed",
    "StartResult",
    "StopPolicy",
    "StreamError",
    "StreamInErrorState",
    "StreamInstance",
    "StreamOptions",
    "StreamScope",
    "clone",
    "create_stream",
    "create_streamable",
    "is_different",
    "load_settings",
    "streamable",
]

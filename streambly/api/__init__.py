"""
HTTP and WebSocket surface for streams.
"""

from __future__ import annotations

from .server import SessionManager, StreamDefinition, create_app

__all__ = ["SessionManager", "StreamDefinition", "create_app"]

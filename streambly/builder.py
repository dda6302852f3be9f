"""
Fluent declaration helper for initializers.

``streamable(Todos).api(TodoAPI).context(Settings).impls(fn)`` fixes the
value, controller and context types of ``fn`` for type checkers and returns
``fn`` unchanged at runtime.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Optional, Type, TypeVar

P = TypeVar("P")
API = TypeVar("API")
C = TypeVar("C")
F = TypeVar("F", bound=Callable[..., Any])


class StreamableBuilder(Generic[P, API, C]):
    __slots__ = ("value_type", "api_type", "context_type")

    def __init__(
        self,
        value_type: Optional[Type[Any]] = None,
        api_type: Optional[Type[Any]] = None,
        context_type: Optional[Type[Any]] = None,
    ) -> None:
        self.value_type = value_type
        self.api_type = api_type
        self.context_type = context_type

    def api(self, api_type: Optional[Type[Any]] = None) -> "StreamableBuilder[P, Any, C]":
        return StreamableBuilder(self.value_type, api_type, self.context_type)

    def context(self, context_type: Optional[Type[Any]] = None) -> "StreamableBuilder[P, API, Any]":
        return StreamableBuilder(self.value_type, self.api_type, context_type)

    def impls(self, initializer: F) -> F:
        return initializer


def streamable(value_type: Optional[Type[Any]] = None) -> StreamableBuilder[Any, None, None]:
    return StreamableBuilder(value_type)


def create_streamable(initializer: F) -> F:
    """Identity helper, usable as a decorator."""

    return initializer


__all__ = ["StreamableBuilder", "create_streamable", "streamable"]

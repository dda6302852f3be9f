"""
Demo streams served by ``python -m streambly.main``.
"""

from __future__ import annotations

from typing import Dict

from ..api.server import StreamDefinition
from .counter import CounterContext, counter, initial_counter
from .todo import todo_app

__all__ = ["CounterContext", "counter", "demo_catalog", "initial_counter", "todo_app"]


def demo_catalog() -> Dict[str, StreamDefinition]:
    return {
        "counter": StreamDefinition(counter, seed_factory=initial_counter),
        "ticker": StreamDefinition(
            counter,
            seed_factory=initial_counter,
            context=CounterContext(auto_interval=1.0),
        ),
        "todo": StreamDefinition(todo_app, seed_factory=lambda: {"todos": []}),
    }

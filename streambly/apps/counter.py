"""
Counter stream: a manual counter plus an optional auto-incrementing ticker.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, Optional, TypedDict

from ..builder import streamable
from ..diff import clone
from ..stream import MutationHandle, StartResult


class CounterApp(TypedDict):
    auto_count: int
    math: int


CounterAPI = Dict[str, Callable[[], None]]


@dataclass
class CounterContext:
    auto_interval: Optional[float] = None
    start_delay: Optional[float] = None


def initial_counter() -> CounterApp:
    return {"auto_count": 0, "math": 0}


def _bump(key: str) -> Callable[[CounterApp], CounterApp]:
    def update(prev: CounterApp) -> CounterApp:
        return {**prev, key: prev[key] + 1}

    return update


def _start(handle: MutationHandle[CounterApp], seed: CounterApp, ctx: CounterContext) -> StartResult:
    ticker: Optional[asyncio.Task] = None
    if ctx.auto_interval:
        interval = float(ctx.auto_interval)

        async def _tick() -> None:
            while True:
                await asyncio.sleep(interval)
                handle.set(_bump("auto_count"))

        ticker = asyncio.get_running_loop().create_task(_tick())

    def minus() -> None:
        handle.set(lambda prev: {**prev, "math": prev["math"] - 1})

    def cleanup() -> None:
        if ticker is not None:
            ticker.cancel()

    controller: CounterAPI = {"inc": lambda: handle.set(_bump("math")), "minus": minus}
    return StartResult(initial_value=seed, controller=controller, cleanup=cleanup)


@streamable(dict).api(dict).context(CounterContext).impls
def counter(handle: MutationHandle[CounterApp], seed: Optional[CounterApp], context: Optional[CounterContext]):
    ctx = context or CounterContext()
    initial = clone(seed) if seed is not None else initial_counter()

    if ctx.start_delay:
        delay = float(ctx.start_delay)

        async def _deferred_start() -> StartResult:
            await asyncio.sleep(delay)
            return _start(handle, initial, ctx)

        return _deferred_start()

    return _start(handle, initial, ctx)

"""Tests covering the scope binding used by consumer layers."""

from __future__ import annotations

import asyncio

import pytest

from streambly import LifecycleState, NotRunning, StartFailed, StartResult, StreamScope
from streambly.scope import PROJECTION_CACHE_SIZE


def make_counter(cleanups: list | None = None, *, delay: bool = False):
    def build(handle, seed):
        def cleanup() -> None:
            if cleanups is not None:
                cleanups.append(1)

        return StartResult(
            initial_value=seed,
            controller={
                "inc": lambda: handle.set(lambda prev: {**prev, "count": prev["count"] + 1}),
                "rename": lambda name: handle.set(lambda prev: {**prev, "name": name}),
                "load": _load(handle),
                "finish": handle.end,
            },
            cleanup=cleanup,
        )

    def initializer(handle, seed, _context):
        if delay:

            async def start() -> StartResult:
                await asyncio.sleep(0)
                return build(handle, seed)

            return start()
        return build(handle, seed)

    return initializer


def _load(handle):
    async def load(count: int) -> int:
        await asyncio.sleep(0)
        handle.set(lambda prev: {**prev, "count": count})
        return count

    return load


def test_scope_waits_for_async_start_and_stops_once() -> None:
    async def scenario() -> None:
        cleanups: list = []
        scope = StreamScope(make_counter(cleanups, delay=True), {"count": 0, "name": "a"})
        assert not scope.ready
        with pytest.raises(NotRunning):
            scope.select()

        async with scope:
            assert scope.ready
            assert scope.state() is LifecycleState.RUNNING
            assert scope.select() == {"count": 0, "name": "a"}

        assert not scope.ready
        assert scope.state() is LifecycleState.STOPPED
        await scope.close()
        assert cleanups == [1]

    asyncio.run(scenario())


def test_scope_cannot_be_reopened() -> None:
    async def scenario() -> None:
        scope = StreamScope(make_counter(), {"count": 0, "name": "a"})
        await scope.open()
        with pytest.raises(RuntimeError):
            await scope.open()
        await scope.close()

    asyncio.run(scenario())


def test_scope_open_raises_when_start_fails() -> None:
    async def scenario() -> None:
        async def failing(_handle, _seed, _context):
            await asyncio.sleep(0)
            raise ConnectionError("no backend")

        scope = StreamScope(failing, None)
        with pytest.raises(StartFailed):
            await scope.open()
        assert scope.state() is LifecycleState.ERROR
        assert not scope.ready

        await scope.close()
        assert scope.state() is LifecycleState.STOPPED

    asyncio.run(scenario())


def test_select_returns_cached_projection_until_changed() -> None:
    async def scenario() -> None:
        async with StreamScope(make_counter(), {"count": 0, "name": "a"}) as scope:
            def by_name(value):
                return {"name": value["name"]}

            first = scope.select(by_name)
            await scope.invoke("inc")
            assert scope.select(by_name) is first

            await scope.invoke("rename", "b")
            second = scope.select(by_name)
            assert second is not first
            assert second == {"name": "b"}

            whole = scope.select()
            whole["count"] = 100
            assert scope.stream.value()["count"] == 1

    asyncio.run(scenario())


def test_invoke_awaits_async_operations_and_rejects_unknown_names() -> None:
    async def scenario() -> None:
        async with StreamScope(make_counter(), {"count": 0, "name": "a"}) as scope:
            assert await scope.invoke("load", 7) == 7
            assert scope.select()["count"] == 7

            with pytest.raises(KeyError):
                await scope.invoke("missing")

    asyncio.run(scenario())


def test_watch_yields_only_structural_changes() -> None:
    async def scenario() -> None:
        scope = StreamScope(make_counter(), {"count": 0, "name": "a"})
        await scope.open()
        seen = []

        async def consume() -> None:
            async for value in scope.watch(lambda value: value["count"]):
                seen.append(value)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)

        await scope.invoke("rename", "b")
        await scope.invoke("inc")
        await scope.invoke("inc")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        await scope.close()
        await asyncio.wait_for(consumer, timeout=1)

        assert seen == [0, 1, 2]

    asyncio.run(scenario())


def test_watch_receives_notifications_from_other_threads() -> None:
    async def scenario() -> None:
        async with StreamScope(make_counter(), {"count": 0, "name": "a"}) as scope:
            watcher = scope.watch()
            assert (await watcher.__anext__())["count"] == 0

            await asyncio.to_thread(scope.controller()["inc"])
            update = await asyncio.wait_for(watcher.__anext__(), timeout=1)
            assert update["count"] == 1
            await watcher.aclose()

    asyncio.run(scenario())


def test_watch_ends_when_stream_ends_itself() -> None:
    async def scenario() -> None:
        cleanups: list = []
        scope = StreamScope(make_counter(cleanups), {"count": 0, "name": "a"})
        await scope.open()
        seen = []

        async def consume() -> None:
            async for value in scope.watch(lambda value: value["count"]):
                seen.append(value)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)
        await scope.invoke("inc")
        await scope.invoke("finish")

        await asyncio.wait_for(consumer, timeout=1)
        assert seen == [0, 1]
        assert cleanups == [1]
        assert scope.state() is LifecycleState.STOPPED
        assert not scope.ready
        with pytest.raises(NotRunning):
            scope.stream

        await scope.close()
        assert cleanups == [1]

    asyncio.run(scenario())


def test_select_cache_is_bounded_and_keeps_recent_selectors() -> None:
    async def scenario() -> None:
        async with StreamScope(make_counter(), {"count": 0, "name": "a"}) as scope:
            def by_name(value):
                return {"name": value["name"]}

            first = scope.select(by_name)
            for _ in range(PROJECTION_CACHE_SIZE * 3):
                scope.select(lambda value: {"count": value["count"]})
                assert scope.select(by_name) is first

            assert len(scope._projections) <= PROJECTION_CACHE_SIZE

    asyncio.run(scenario())

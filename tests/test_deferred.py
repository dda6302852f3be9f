from __future__ import annotations

import asyncio

import pytest

from streambly.deferred import Deferred


def test_waiters_before_and_after_resolution_see_same_value() -> None:
    async def scenario() -> None:
        signal: Deferred[str] = Deferred()
        early = asyncio.gather(signal.wait(), signal.wait())
        await asyncio.sleep(0)

        assert signal.resolve("ready") is True
        assert signal.resolve("again") is False
        assert await early == ["ready", "ready"]
        assert await signal == "ready"
        assert signal.done

    asyncio.run(scenario())


def test_rejection_is_seen_by_every_waiter() -> None:
    async def scenario() -> None:
        signal: Deferred[None] = Deferred()
        waiter = asyncio.ensure_future(signal.wait())
        await asyncio.sleep(0)

        error = RuntimeError("start failed")
        assert signal.reject(error) is True
        assert signal.resolve(None) is False

        with pytest.raises(RuntimeError):
            await waiter
        with pytest.raises(RuntimeError):
            await signal.wait()

    asyncio.run(scenario())


def test_cancelled_waiter_does_not_cancel_signal() -> None:
    async def scenario() -> None:
        signal: Deferred[int] = Deferred()
        waiter = asyncio.ensure_future(signal.wait())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert not signal.done
        signal.resolve(3)
        assert await signal.wait() == 3

    asyncio.run(scenario())

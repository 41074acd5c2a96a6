"""
Tests for the fire-and-forget dispatcher.
"""

import asyncio

from caselli.services.background import BackgroundDispatcher


async def test_tracks_until_done():
    dispatcher = BackgroundDispatcher()
    gate = asyncio.Event()

    async def job():
        await gate.wait()
        return "ok"

    task = dispatcher.spawn(job(), name="job")
    assert dispatcher.pending == 1
    assert task.get_name() == "job"

    gate.set()
    await dispatcher.drain()

    assert dispatcher.pending == 0
    assert task.result() == "ok"


async def test_failures_do_not_propagate():
    dispatcher = BackgroundDispatcher()

    async def boom():
        raise RuntimeError("lost")

    task = dispatcher.spawn(boom())
    await dispatcher.drain()

    assert dispatcher.pending == 0
    assert isinstance(task.exception(), RuntimeError)


async def test_drain_cancels_stragglers():
    dispatcher = BackgroundDispatcher()

    task = dispatcher.spawn(asyncio.sleep(30))
    await dispatcher.drain(timeout=0.01)

    assert task.cancelled()
    assert dispatcher.pending == 0

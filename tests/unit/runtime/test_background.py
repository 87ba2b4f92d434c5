# tests/unit/runtime/test_background.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import asyncio
from unittest.mock import MagicMock

import pytest

from slotwise.runtime.background import BackgroundTasks


@pytest.mark.asyncio
async def test_spawned_work_runs_detached_and_can_be_awaited():
    sink = MagicMock()
    tasks = BackgroundTasks(sink)
    done = []

    async def work():
        await asyncio.sleep(0)
        done.append(1)

    tasks.spawn(work, {"operation": "test"})
    assert done == []

    await tasks.wait()
    assert done == [1]
    assert tasks.pending == 0
    sink.assert_not_called()


@pytest.mark.asyncio
async def test_failures_go_to_sink_with_context():
    sink = MagicMock()
    tasks = BackgroundTasks(sink)

    async def fail():
        raise ValueError("bad")

    tasks.spawn(fail, {"operation": "boom"})
    await tasks.wait()

    sink.assert_called_once()
    error, context = sink.call_args[0]
    assert isinstance(error, ValueError)
    assert context == {"operation": "boom"}


def test_spawn_without_loop_defers_until_flush():
    sink = MagicMock()
    tasks = BackgroundTasks(sink)
    done = []

    async def work():
        done.append("ran")

    tasks.spawn(work, {})
    assert tasks.pending == 1
    assert done == []

    asyncio.run(tasks.wait())
    assert done == ["ran"]
    assert tasks.pending == 0


@pytest.mark.asyncio
async def test_wait_covers_work_spawned_by_work():
    tasks = BackgroundTasks(MagicMock())
    order = []

    async def inner():
        order.append("inner")

    async def outer():
        order.append("outer")
        tasks.spawn(inner, {})

    tasks.spawn(outer, {})
    await tasks.wait()

    assert order == ["outer", "inner"]


@pytest.mark.asyncio
async def test_cancel_all_drops_pending_work():
    tasks = BackgroundTasks(MagicMock())
    gate = asyncio.Event()

    async def blocked():
        await gate.wait()

    tasks.spawn(blocked, {})
    await asyncio.sleep(0)
    tasks.cancel_all()
    await asyncio.sleep(0)

    assert tasks.pending == 0

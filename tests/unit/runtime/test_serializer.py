# tests/unit/runtime/test_serializer.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import asyncio

import pytest

from slotwise.runtime.serializer import OperationSerializer


def _step(log, name, pause=0):
    async def run():
        log.append(f"{name}:start")
        for _ in range(pause):
            await asyncio.sleep(0)
        log.append(f"{name}:end")
        return name

    return run


@pytest.mark.asyncio
async def test_same_id_operations_do_not_interleave():
    serializer = OperationSerializer()
    log = []

    results = await asyncio.gather(
        serializer.serialize("e1", _step(log, "a", pause=3)),
        serializer.serialize("e1", _step(log, "b", pause=1)),
    )

    assert results == ["a", "b"]
    assert log == ["a:start", "a:end", "b:start", "b:end"]


@pytest.mark.asyncio
async def test_different_ids_interleave():
    serializer = OperationSerializer()
    log = []

    await asyncio.gather(
        serializer.serialize("e1", _step(log, "a", pause=3)),
        serializer.serialize("e2", _step(log, "b", pause=1)),
    )

    assert log.index("b:start") < log.index("a:end")


@pytest.mark.asyncio
async def test_failure_does_not_block_next_operation():
    serializer = OperationSerializer()
    log = []

    async def fail():
        log.append("fail")
        raise ValueError("nope")

    outcome = await asyncio.gather(
        serializer.serialize("e1", fail),
        serializer.serialize("e1", _step(log, "b")),
        return_exceptions=True,
    )

    assert isinstance(outcome[0], ValueError)
    assert outcome[1] == "b"
    assert log == ["fail", "b:start", "b:end"]


@pytest.mark.asyncio
async def test_slots_are_dropped_when_idle():
    serializer = OperationSerializer()
    gate = asyncio.Event()

    async def wait_gate():
        await gate.wait()

    task = asyncio.ensure_future(serializer.serialize("e1", wait_gate))
    await asyncio.sleep(0)
    assert serializer.is_busy("e1")
    assert serializer.pending_count() == 1

    gate.set()
    await task
    assert not serializer.is_busy("e1")
    assert serializer.pending_count() == 0


@pytest.mark.asyncio
async def test_many_ephemeral_ids_leave_no_state():
    serializer = OperationSerializer()

    await asyncio.gather(*(serializer.serialize(f"id-{i}", _step([], str(i))) for i in range(50)))

    assert serializer.pending_count() == 0

# slotwise/runtime/serializer.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, TypeVar

T = TypeVar("T")


class _Slot:
    """
    Lock for one entity id plus the number of operations holding or awaiting it.
    """

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class OperationSerializer:
    """
    Per-entity mutual exclusion for async operations.

    Operations submitted for the same id run one after another in submission
    order, whether or not earlier ones failed. Operations for different ids
    do not wait on each other. A slot is dropped as soon as nothing holds or
    awaits it, so churn over short-lived ids does not accumulate state.
    """

    def __init__(self) -> None:
        self._slots: Dict[str, _Slot] = {}

    async def serialize(self, entity_id: str, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` once every earlier operation for ``entity_id`` has settled.

        :param entity_id: Key the operation is serialized on.
        :param operation: Zero-argument coroutine factory.
        :return: Whatever the operation returns; its exception propagates.
        """
        slot = self._slots.get(entity_id)
        if slot is None:
            slot = self._slots[entity_id] = _Slot()
        slot.users += 1
        try:
            async with slot.lock:
                return await operation()
        finally:
            slot.users -= 1
            if slot.users == 0 and self._slots.get(entity_id) is slot:
                del self._slots[entity_id]

    def is_busy(self, entity_id: str) -> bool:
        return entity_id in self._slots

    def pending_count(self) -> int:
        return len(self._slots)

    def clear(self) -> None:
        """
        Forget all slots. Operations already waiting keep their own lock
        reference and finish normally.
        """
        self._slots.clear()

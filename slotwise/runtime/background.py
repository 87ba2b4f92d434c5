# slotwise/runtime/background.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Set, Tuple

from slotwise.interfaces.protocols import ErrorSink

logger = logging.getLogger(__name__)

_Job = Tuple[Callable[[], Awaitable[Any]], Dict[str, Any]]


class BackgroundTasks:
    """
    Tracks fire-and-forget work spawned by the runtime, such as lifecycle
    stages triggered from synchronous registration calls.

    Failures never reach the code that spawned the work; they are handed to
    the error sink together with the context supplied at spawn time. Work
    spawned while no event loop is running is deferred until ``flush`` or
    ``wait`` is called from inside a loop.
    """

    def __init__(self, error_sink: ErrorSink) -> None:
        self._error_sink = error_sink
        self._tasks: Set[asyncio.Task] = set()
        self._deferred: List[_Job] = []

    def spawn(self, factory: Callable[[], Awaitable[Any]], context: Dict[str, Any]) -> None:
        """
        Schedule ``factory()`` to run detached.

        :param factory: Zero-argument coroutine factory.
        :param context: Passed to the error sink if the work fails.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, deferring background job %s", context)
            self._deferred.append((factory, context))
            return
        self._start(loop, factory, context)

    def flush(self) -> None:
        """
        Start deferred jobs on the running loop, in the order they were spawned.
        """
        if not self._deferred:
            return
        loop = asyncio.get_running_loop()
        jobs, self._deferred = self._deferred, []
        for factory, context in jobs:
            self._start(loop, factory, context)

    async def wait(self) -> None:
        """
        Wait until every tracked job, including jobs spawned by jobs, has settled.
        """
        self.flush()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            self.flush()

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._deferred.clear()

    @property
    def pending(self) -> int:
        return len(self._tasks) + len(self._deferred)

    def _start(self, loop: asyncio.AbstractEventLoop, factory: Callable[[], Awaitable[Any]], context: Dict[str, Any]) -> None:
        task = loop.create_task(self._run(factory, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, factory: Callable[[], Awaitable[Any]], context: Dict[str, Any]) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error_sink(e, context)

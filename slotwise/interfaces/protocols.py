# slotwise/interfaces/protocols.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from slotwise.core.types import ActionsChain, ChainResult, SharedProperty
    from slotwise.extensions.bridge import ChildBridge


@runtime_checkable
class MountLifecycle(Protocol):
    """
    Lifecycle object produced by a loader handler for one fragment.

    Runtime Invariants:
    - ``mount`` is called at most once per mount cycle, always followed by
      ``unmount`` with the same boundary before the next ``mount``.
    """

    async def mount(self, boundary: Any, bridge: "ChildBridge") -> None: ...

    async def unmount(self, boundary: Any) -> None: ...


@runtime_checkable
class ActionHandler(Protocol):
    """
    Receives actions routed by the mediator to a domain or extension.

    Error Handling:
    - Raising marks the action as failed; the mediator then follows the
      chain's fallback branch, if any.
    """

    async def handle_action(self, action_type: str, payload: Optional[Dict[str, Any]]) -> None: ...


ChainExecutor = Callable[["ActionsChain"], Awaitable["ChainResult"]]
ErrorSink = Callable[[BaseException, Dict[str, Any]], None]
PropertyCallback = Callable[["SharedProperty"], None]

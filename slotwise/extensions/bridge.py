# slotwise/extensions/bridge.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
"""
Host/fragment bridge pair.

A mounted fragment only ever sees its ``ChildBridge``; the host keeps the
matching ``ParentBridge``. The two halves are linked once by ``connect`` and
afterwards talk through the callables handed over there, never through each
other's attributes.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from slotwise.core.constants import ALL_PROPERTIES
from slotwise.core.errors import BridgeDisposedError, NoActionsChainHandlerError
from slotwise.core.types import Action, ActionsChain, ChainResult, SharedProperty
from slotwise.interfaces.protocols import ActionHandler, PropertyCallback

logger = logging.getLogger(__name__)

ChainHandler = Callable[[ActionsChain], Awaitable[Any]]
ChainExecutor = Callable[[ActionsChain], Awaitable[ChainResult]]
DomainHandlerRegistrar = Callable[[str, ActionHandler], None]
DomainHandlerRemover = Callable[[str], None]


class ParentBridge:
    """
    Host-side half of a bridge.

    :param extension_id: Extension the bridge was created for.
    :param domain_id: Domain the extension is mounted in.
    """

    def __init__(self, extension_id: str, domain_id: str) -> None:
        self.extension_id = extension_id
        self.domain_id = domain_id
        self.instance_id = f"{extension_id}:{uuid.uuid4().hex[:12]}"
        self._disposed = False
        self._deliver_to_child: Optional[ChainHandler] = None
        self._push_property: Optional[Callable[[str, Any], None]] = None
        self._dispose_child: Optional[Callable[[], None]] = None
        self._child_action_callback: Optional[ChainExecutor] = None
        self._property_subscribers: Dict[str, PropertyCallback] = {}

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def send_actions_chain(self, chain: ActionsChain) -> Any:
        """
        Deliver ``chain`` to the child's handler and wait for it to settle.

        :raises BridgeDisposedError: If the bridge has been disposed.
        :raises NoActionsChainHandlerError: If the child registered no handler.
        """
        if self._disposed:
            raise BridgeDisposedError(self.instance_id)
        if self._deliver_to_child is None:
            raise NoActionsChainHandlerError(self.instance_id)
        return await self._deliver_to_child(chain)

    def on_child_action(self, callback: ChainExecutor) -> None:
        """
        Set the callable that executes chains the child sends to the host.
        """
        if self._disposed:
            raise BridgeDisposedError(self.instance_id)
        self._child_action_callback = callback

    async def handle_child_action(self, chain: ActionsChain) -> ChainResult:
        if self._disposed:
            raise BridgeDisposedError(self.instance_id)
        if self._child_action_callback is None:
            raise NoActionsChainHandlerError(self.instance_id)
        return await self._child_action_callback(chain)

    def receive_property_update(self, property_id: str, value: Any) -> None:
        """
        Forward a shared-property change to the child. Ignored once disposed.
        """
        if self._disposed or self._push_property is None:
            return
        self._push_property(property_id, value)

    def register_property_subscriber(self, property_id: str, callback: PropertyCallback) -> None:
        self._property_subscribers[property_id] = callback

    def get_property_subscribers(self) -> Dict[str, PropertyCallback]:
        return dict(self._property_subscribers)

    def dispose(self) -> None:
        """
        Tear down both halves. Safe to call more than once.
        """
        if self._disposed:
            return
        self._disposed = True
        dispose_child = self._dispose_child
        self._deliver_to_child = None
        self._push_property = None
        self._dispose_child = None
        self._child_action_callback = None
        self._property_subscribers.clear()
        if dispose_child is not None:
            dispose_child()

    def _attach_child(
        self,
        deliver: ChainHandler,
        push_property: Callable[[str, Any], None],
        dispose_child: Callable[[], None],
    ) -> None:
        self._deliver_to_child = deliver
        self._push_property = push_property
        self._dispose_child = dispose_child


class ChildBridge:
    """
    Fragment-side half of a bridge: shared-property reads and subscriptions,
    outbound actions to the host, inbound actions from the host.

    :param domain_id: Domain the fragment is mounted in.
    :param entry_type_id: Entry the fragment was loaded for.
    :param extension_id: Extension the fragment belongs to.
    """

    def __init__(self, domain_id: str, entry_type_id: str, extension_id: str) -> None:
        self.domain_id = domain_id
        self.entry_type_id = entry_type_id
        self.extension_id = extension_id
        self.instance_id = f"{extension_id}:{uuid.uuid4().hex[:12]}"
        self._disposed = False
        self._properties: Dict[str, SharedProperty] = {}
        self._subscribers: Dict[str, Set[PropertyCallback]] = {}
        self._chain_handler: Optional[ChainHandler] = None
        self._send_to_parent: Optional[ChainExecutor] = None
        self._executor: Optional[ChainExecutor] = None
        self._register_domain_handler: Optional[DomainHandlerRegistrar] = None
        self._unregister_domain_handler: Optional[DomainHandlerRemover] = None
        self._forward_to_child: Optional[ChainHandler] = None
        self._child_domains: Set[str] = set()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get_property(self, property_id: str) -> Optional[SharedProperty]:
        self._ensure_alive()
        return self._properties.get(property_id)

    def subscribe_to_property(self, property_id: str, callback: PropertyCallback) -> Callable[[], None]:
        """
        Call ``callback`` with the new ``SharedProperty`` whenever ``property_id``
        changes.

        :return: A callable that removes the subscription.
        """
        self._ensure_alive()
        subscribers = self._subscribers.setdefault(property_id, set())
        subscribers.add(callback)

        def unsubscribe() -> None:
            current = self._subscribers.get(property_id)
            if current is None:
                return
            current.discard(callback)
            if not current:
                del self._subscribers[property_id]

        return unsubscribe

    def subscribe_to_all_properties(self, callback: PropertyCallback) -> Callable[[], None]:
        return self.subscribe_to_property(ALL_PROPERTIES, callback)

    def receive_property_update(self, property_id: str, value: Any) -> None:
        """
        Store a new value and notify subscribers, specific ones first. A failing
        subscriber is logged and skipped.
        """
        if self._disposed:
            return
        prop = SharedProperty(property_id, value)
        self._properties[property_id] = prop
        for key in (property_id, ALL_PROPERTIES):
            for callback in list(self._subscribers.get(key, ())):
                try:
                    callback(prop)
                except Exception as e:
                    logger.warning("Property subscriber for '%s' on %s failed: %s", property_id, self.instance_id, e)

    async def send_actions_chain(self, chain: ActionsChain) -> ChainResult:
        """
        Send ``chain`` to the host mediator through the parent bridge.
        """
        self._ensure_alive()
        if self._send_to_parent is None:
            raise NoActionsChainHandlerError(self.instance_id)
        return await self._send_to_parent(chain)

    async def execute_actions_chain(self, chain: ActionsChain) -> ChainResult:
        """
        Execute ``chain`` with the host registry's executor, falling back to
        ``send_actions_chain`` when no executor was injected.
        """
        self._ensure_alive()
        if self._executor is None:
            return await self.send_actions_chain(chain)
        return await self._executor(chain)

    def on_actions_chain(self, handler: ChainHandler) -> Callable[[], None]:
        """
        Register the handler for chains the host sends to this fragment.
        Replaces any previous handler.

        :return: A callable that removes ``handler`` if it is still current.
        """
        self._ensure_alive()
        if self._chain_handler is not None:
            logger.warning("Replacing actions chain handler on %s", self.instance_id)
        self._chain_handler = handler

        def unsubscribe() -> None:
            if self._chain_handler is handler:
                self._chain_handler = None

        return unsubscribe

    def register_child_domain(self, domain_id: str) -> None:
        """
        Route chains targeting ``domain_id`` in the host through this bridge to
        the fragment's handler. Used by fragments hosting domains of their own.
        """
        self._ensure_alive()
        if self._register_domain_handler is None or self._forward_to_child is None:
            raise NoActionsChainHandlerError(self.instance_id)
        self._register_domain_handler(domain_id, ChildDomainForwardingHandler(self._forward_to_child, domain_id))
        self._child_domains.add(domain_id)

    def unregister_child_domain(self, domain_id: str) -> None:
        self._ensure_alive()
        if domain_id not in self._child_domains:
            return
        self._child_domains.discard(domain_id)
        if self._unregister_domain_handler is not None:
            self._unregister_domain_handler(domain_id)

    def set_executor(self, executor: ChainExecutor) -> None:
        self._executor = executor

    def set_domain_handler_callbacks(
        self, register: DomainHandlerRegistrar, unregister: DomainHandlerRemover
    ) -> None:
        self._register_domain_handler = register
        self._unregister_domain_handler = unregister

    def dispose(self) -> None:
        """
        Drop subscriptions and handlers and remove any forwarded child domains.
        Safe to call more than once.
        """
        if self._disposed:
            return
        self._disposed = True
        if self._unregister_domain_handler is not None:
            for domain_id in list(self._child_domains):
                self._unregister_domain_handler(domain_id)
        self._child_domains.clear()
        self._subscribers.clear()
        self._properties.clear()
        self._chain_handler = None
        self._send_to_parent = None
        self._executor = None
        self._forward_to_child = None

    async def _handle_inbound(self, chain: ActionsChain) -> Any:
        self._ensure_alive()
        if self._chain_handler is None:
            raise NoActionsChainHandlerError(self.instance_id)
        return await self._chain_handler(chain)

    def _attach_parent(self, send: ChainExecutor, forward: ChainHandler) -> None:
        self._forward_to_child = forward
        self._send_to_parent = send

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise BridgeDisposedError(self.instance_id)


def connect(parent: ParentBridge, child: ChildBridge) -> None:
    """
    Link the two halves of a bridge. Each side receives callables into the
    other, nothing more.
    """
    parent._attach_child(child._handle_inbound, child.receive_property_update, child.dispose)
    child._attach_parent(parent.handle_child_action, parent.send_actions_chain)


class ChildDomainForwardingHandler:
    """
    Domain action handler installed in the host mediator for a domain that
    lives inside a fragment. Each action is wrapped in a single-action chain
    and sent over the parent bridge with ``send_chain``.
    """

    def __init__(self, send_chain: ChainHandler, domain_id: str) -> None:
        self._send_chain = send_chain
        self._domain_id = domain_id

    async def handle_action(self, action_type: str, payload: Optional[Dict[str, Any]]) -> None:
        chain = ActionsChain(action=Action(type=action_type, target=self._domain_id, payload=payload))
        await self._send_chain(chain)

# slotwise/extensions/bridge_factory.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import Callable, Mapping, Tuple

from slotwise.core.types import Domain, SharedProperty
from slotwise.extensions.bridge import (
    ChainExecutor,
    ChildBridge,
    DomainHandlerRegistrar,
    DomainHandlerRemover,
    ParentBridge,
    connect,
)
from slotwise.interfaces.protocols import PropertyCallback

logger = logging.getLogger(__name__)

SubscriberChange = Callable[[str, PropertyCallback], None]


class BridgeFactory:
    """
    Builds a connected bridge pair for one mount and wires it to the domain's
    shared properties. Domain subscriber sets are never touched directly; the
    owner of the domain state passes in ``subscribe``/``unsubscribe`` callables.
    """

    def create_bridge(
        self,
        domain: Domain,
        extension_id: str,
        entry_type_id: str,
        properties: Mapping[str, SharedProperty],
        subscribe: SubscriberChange,
        execute_chain: ChainExecutor,
        register_domain_handler: DomainHandlerRegistrar,
        unregister_domain_handler: DomainHandlerRemover,
    ) -> Tuple[ParentBridge, ChildBridge]:
        """
        :param domain: Domain the extension is being mounted in.
        :param properties: Current shared-property values of the domain.
        :param subscribe: Adds a callback to the domain's subscribers for a property.
        :param execute_chain: Host executor exposed to the child.
        :return: ``(parent, child)``, already connected.
        """
        parent = ParentBridge(extension_id, domain.id)
        child = ChildBridge(domain.id, entry_type_id, extension_id)
        connect(parent, child)
        child.set_executor(execute_chain)
        child.set_domain_handler_callbacks(register_domain_handler, unregister_domain_handler)

        for property_id in domain.shared_properties:
            current = properties.get(property_id)
            if current is not None:
                child.receive_property_update(property_id, current.value)

            def forward(prop: SharedProperty, _parent: ParentBridge = parent) -> None:
                _parent.receive_property_update(prop.id, prop.value)

            subscribe(property_id, forward)
            parent.register_property_subscriber(property_id, forward)

        logger.debug("Created bridge %s for extension '%s'", parent.instance_id, extension_id)
        return parent, child

    def dispose_bridge(self, parent: ParentBridge, unsubscribe: SubscriberChange) -> None:
        """
        Detach the bridge's domain subscribers, then dispose both halves.
        """
        for property_id, callback in parent.get_property_subscribers().items():
            unsubscribe(property_id, callback)
        parent.dispose()
        logger.debug("Disposed bridge %s", parent.instance_id)

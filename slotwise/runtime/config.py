# slotwise/runtime/config.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional

from slotwise.core.constants import CORE_TYPE_IDS, DEFAULT_CHAIN_TIMEOUT
from slotwise.core.errors import ConfigurationError
from slotwise.core.packages import extract_package
from slotwise.interfaces.plugin import TypeSystemPlugin
from slotwise.interfaces.protocols import ErrorSink

if TYPE_CHECKING:
    from slotwise.extensions.bridge_factory import BridgeFactory
    from slotwise.extensions.loader import IsolationBoundaryFactory, LoaderHandler
    from slotwise.runtime.mediator import ActionsChainsMediator


@dataclass
class RegistryConfig:
    """
    Construction options for ``Registry``.

    :param type_system: Required plugin for schema validation and type queries.
    :param on_error: Receives failures of fire-and-forget work and unhandled
        chain failures. Defaults to logging them.
    :param debug: Set the ``slotwise`` logger to DEBUG.
    :param loader_handlers: Loaders registered at construction.
    :param mediator: Custom mediator; built from this config when omitted.
    :param isolation: Isolation boundary factory for mount targets.
    :param bridge_factory: Custom bridge factory.
    :param chain_timeout: Default whole-chain timeout in seconds.
    :param package_resolver: Derives a package id from an extension id.
    :param verify_core_schemas: Require the plugin to resolve the built-in
        base schemas at construction.
    """

    type_system: Optional[TypeSystemPlugin] = None
    on_error: Optional[ErrorSink] = None
    debug: bool = False
    loader_handlers: List["LoaderHandler"] = field(default_factory=list)
    mediator: Optional["ActionsChainsMediator"] = None
    isolation: Optional["IsolationBoundaryFactory"] = None
    bridge_factory: Optional["BridgeFactory"] = None
    chain_timeout: float = DEFAULT_CHAIN_TIMEOUT
    package_resolver: Callable[[str], str] = extract_package
    verify_core_schemas: bool = False

    def validate(self) -> None:
        """
        :raises ConfigurationError: If the configuration cannot be used.
        """
        if self.type_system is None:
            raise ConfigurationError("RegistryConfig.type_system is required")
        if not isinstance(self.type_system, TypeSystemPlugin):
            raise ConfigurationError(
                "RegistryConfig.type_system does not implement the type system plugin interface",
                {"type": type(self.type_system).__name__},
            )
        if self.chain_timeout <= 0:
            raise ConfigurationError("RegistryConfig.chain_timeout must be positive", {"chain_timeout": self.chain_timeout})
        if self.verify_core_schemas:
            missing = [type_id for type_id in CORE_TYPE_IDS if self.type_system.get_schema(type_id) is None]
            if missing:
                raise ConfigurationError("Type system is missing core schemas", {"missing": missing})

# slotwise/runtime/registry.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional

from slotwise.core.errors import ChainExecutionError, ExtensionNotRegisteredError, RegistryDisposedError
from slotwise.core.types import (
    ActionsChain,
    ChainExecutionOptions,
    ChainResult,
    Domain,
    Entry,
    Extension,
    LoadState,
    MountState,
)
from slotwise.extensions.bridge import ParentBridge
from slotwise.extensions.bridge_factory import BridgeFactory
from slotwise.extensions.loader import ContainerProvider, DefaultIsolationBoundaryFactory, LoaderHandler
from slotwise.interfaces.protocols import ActionHandler, MountLifecycle, PropertyCallback
from slotwise.runtime.background import BackgroundTasks
from slotwise.runtime.config import RegistryConfig
from slotwise.runtime.events import EventEmitter, Listener
from slotwise.runtime.extension_manager import ExtensionManager
from slotwise.runtime.lifecycle_actions import ExtensionLifecycleActionHandler
from slotwise.runtime.lifecycle_manager import LifecycleManager
from slotwise.runtime.mediator import ActionsChainsMediator
from slotwise.runtime.mount_manager import MountManager
from slotwise.runtime.serializer import OperationSerializer


class ExtensionStatus(NamedTuple):
    extension_id: str
    load_state: LoadState
    mount_state: MountState
    error: Optional[BaseException]


class Registry:
    """
    Facade composing the extension manager, mediator, lifecycle manager,
    mount manager and operation serializer behind one API.

    Registering a domain installs its extension lifecycle action handler in
    the mediator, so load/mount/unmount can be driven by actions chains.
    Register, unregister, load, mount and unmount calls for the same id are
    serialized; calls for different ids are not.
    """

    def __init__(self, config: RegistryConfig) -> None:
        config.validate()
        self._config = config
        self._logger = logging.getLogger(__name__)
        if config.debug:
            logging.getLogger("slotwise").setLevel(logging.DEBUG)

        self._type_system = config.type_system
        self._disposed = False
        self._loader_handlers: List[LoaderHandler] = []
        self._events = EventEmitter()
        self._background = BackgroundTasks(self._report_error)
        self._serializer = OperationSerializer()

        self._extensions = ExtensionManager(
            self._type_system,
            self._events,
            self._background.spawn,
            self._get_loader_handlers,
            config.package_resolver,
        )
        self._mediator = config.mediator or ActionsChainsMediator(
            self._type_system, self._extensions.get_domain, config.chain_timeout
        )
        self._bridge_factory = config.bridge_factory or BridgeFactory()
        self._lifecycle = LifecycleManager(self._extensions, self._execute_hook_chain, self._report_error)
        self._mounts = MountManager(
            self._extensions,
            self._mediator,
            self._bridge_factory,
            config.isolation or DefaultIsolationBoundaryFactory(),
            self._get_loader_handlers,
            self.execute_actions_chain,
            self._lifecycle.trigger_lifecycle_stage,
            self._background.spawn,
            self._events,
        )
        self._extensions.bind(
            self._lifecycle.trigger_lifecycle_stage,
            self._lifecycle.trigger_domain_own_lifecycle_stage,
            self._mounts.unmount_extension,
        )
        for handler in config.loader_handlers:
            self.register_handler(handler)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_entry(self, entry: Entry) -> None:
        """
        Make ``entry`` resolvable by id when extensions referencing it are registered.
        """
        self._ensure_alive()
        self._type_system.register_schema(entry.to_dict())

    def register_domain(self, domain: Domain, container_provider: Optional[ContainerProvider] = None) -> None:
        """
        Register ``domain`` and install its lifecycle action handler.

        :param container_provider: Supplies mount targets when extensions are
            mounted through actions.
        :raises DomainValidationError: If the domain is rejected.
        """
        self._ensure_alive()
        self._extensions.register_domain(domain, container_provider)
        handler = ExtensionLifecycleActionHandler(
            domain.id,
            domain.semantics,
            container_provider,
            self.load_extension,
            self.mount_extension,
            self.unmount_extension,
            self._extensions.get_mounted_extension,
        )
        self._mediator.register_domain_handler(domain.id, handler)

    async def unregister_domain(self, domain_id: str) -> None:
        """
        Unregister the domain and, first, every extension in it. Unknown ids
        are ignored.
        """
        self._ensure_alive()
        self._background.flush()

        async def cascade() -> None:
            for extension in self._extensions.get_extensions_for_domain(domain_id):
                await self.unregister_extension(extension.id)
            await self._extensions.unregister_domain(domain_id)
            self._mediator.unregister_domain_handler(domain_id, force=True)

        await self._serializer.serialize(domain_id, cascade)

    async def register_extension(self, extension: Extension) -> None:
        """
        :raises ExtensionValidationError: Schema rejection or malformed id.
        :raises DomainNotRegisteredError: If the extension's domain is unknown.
        :raises ContractValidationError: If the entry/domain contract is violated.
        :raises ExtensionTypeError: If the domain's type constraint fails.
        :raises EntryTypeNotHandledError: If loaders exist but none handles the entry.
        """
        self._ensure_alive()
        self._background.flush()
        await self._serializer.serialize(extension.id, lambda: self._extensions.register_extension(extension))

    async def unregister_extension(self, extension_id: str) -> None:
        """
        Unmount (if mounted), run ``destroyed`` and drop the extension.
        Unknown ids are ignored.

        ``destroyed`` hooks run while this extension id is still locked, so a
        hook chain that loads, mounts or unmounts the same extension waits on
        itself until the domain's action timeout expires.
        """
        self._ensure_alive()
        self._background.flush()

        async def unregister() -> None:
            await self._extensions.unregister_extension(extension_id)
            self._mediator.unregister_extension_handler(extension_id, force=True)

        await self._serializer.serialize(extension_id, unregister)

    def register_handler(self, handler: LoaderHandler) -> None:
        """
        Add a loader. Loaders are consulted by descending priority, ties in
        registration order.
        """
        self._ensure_alive()
        self._loader_handlers.append(handler)
        self._loader_handlers.sort(key=lambda h: -h.priority)

    # -------------------------------------------------------------------------
    # Load / mount
    # -------------------------------------------------------------------------

    async def load_extension(self, extension_id: str) -> MountLifecycle:
        self._ensure_alive()
        self._background.flush()
        return await self._serializer.serialize(extension_id, lambda: self._mounts.load_extension(extension_id))

    async def preload_extension(self, extension_id: str) -> None:
        await self.load_extension(extension_id)

    async def mount_extension(self, extension_id: str, container: Any) -> ParentBridge:
        self._ensure_alive()
        self._background.flush()
        return await self._serializer.serialize(
            extension_id, lambda: self._mounts.mount_extension(extension_id, container)
        )

    async def unmount_extension(self, extension_id: str) -> None:
        self._ensure_alive()
        self._background.flush()
        await self._serializer.serialize(extension_id, lambda: self._mounts.unmount_extension(extension_id))

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def execute_actions_chain(
        self, chain: ActionsChain, options: Optional[ChainExecutionOptions] = None
    ) -> ChainResult:
        """
        Execute ``chain`` through the mediator. Never raises, not even after
        disposal; a chain that ends in an unrecovered failure is also reported
        to the error handler.
        """
        if self._disposed:
            result = ChainResult(completed=False, path=[], error=RegistryDisposedError().message)
            self._report_chain_failure(chain, result)
            return result
        self._background.flush()
        result = await self._mediator.execute_actions_chain(chain, options)
        if not result.completed:
            self._report_chain_failure(chain, result)
        return result

    def register_extension_action_handler(self, extension_id: str, handler: ActionHandler) -> None:
        """
        Route actions targeting ``extension_id`` to ``handler``.

        :raises ExtensionNotRegisteredError: If the extension is unknown.
        """
        self._ensure_alive()
        state = self._extensions.get_extension_state(extension_id)
        if state is None:
            raise ExtensionNotRegisteredError(extension_id)
        self._mediator.register_extension_handler(extension_id, state.extension.domain, state.entry.id, handler)

    def unregister_extension_action_handler(self, extension_id: str) -> None:
        """
        :raises HandlerBusyError: If actions for the extension are in flight.
        """
        self._ensure_alive()
        self._mediator.unregister_extension_handler(extension_id)

    def register_domain_action_handler(self, domain_id: str, handler: ActionHandler) -> None:
        """
        Replace the handler actions targeting ``domain_id`` are routed to.
        """
        self._ensure_alive()
        self._mediator.register_domain_handler(domain_id, handler)

    def unregister_domain_action_handler(self, domain_id: str) -> None:
        self._ensure_alive()
        self._mediator.unregister_domain_handler(domain_id)

    # -------------------------------------------------------------------------
    # Shared properties
    # -------------------------------------------------------------------------

    def update_domain_property(self, domain_id: str, property_id: str, value: Any) -> None:
        self._ensure_alive()
        self._extensions.update_domain_property(domain_id, property_id, value)

    def update_domain_properties(self, domain_id: str, values: Mapping[str, Any]) -> None:
        self._ensure_alive()
        self._extensions.update_domain_properties(domain_id, values)

    def get_domain_property(self, domain_id: str, property_id: str) -> Any:
        self._ensure_alive()
        return self._extensions.get_domain_property(domain_id, property_id)

    def subscribe_to_property(
        self, domain_id: str, property_id: str, callback: PropertyCallback
    ) -> Callable[[], None]:
        """
        Subscribe to one shared property of a domain, or to all of them with ``"*"``.

        :return: A callable that removes the subscription.
        """
        self._ensure_alive()
        self._extensions.add_property_subscriber(domain_id, property_id, callback)
        return lambda: self._extensions.remove_property_subscriber(domain_id, property_id, callback)

    # -------------------------------------------------------------------------
    # Lifecycle stages
    # -------------------------------------------------------------------------

    async def trigger_lifecycle_stage(self, extension_id: str, stage_id: str) -> None:
        self._ensure_alive()
        await self._lifecycle.trigger_lifecycle_stage(extension_id, stage_id)

    async def trigger_domain_lifecycle_stage(self, domain_id: str, stage_id: str) -> None:
        self._ensure_alive()
        await self._lifecycle.trigger_domain_lifecycle_stage(domain_id, stage_id)

    async def trigger_domain_own_lifecycle_stage(self, domain_id: str, stage_id: str) -> None:
        self._ensure_alive()
        await self._lifecycle.trigger_domain_own_lifecycle_stage(domain_id, stage_id)

    async def wait_for_lifecycle_triggers(self) -> None:
        """
        Wait until every fire-and-forget lifecycle stage started so far,
        including those started while no event loop was running, has settled.
        """
        await self._background.wait()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_domain(self, domain_id: str) -> Optional[Domain]:
        return self._extensions.get_domain(domain_id)

    def get_domains(self) -> List[Domain]:
        return self._extensions.get_domains()

    def get_extension(self, extension_id: str) -> Optional[Extension]:
        return self._extensions.get_extension(extension_id)

    def get_extensions_for_domain(self, domain_id: str) -> List[Extension]:
        return self._extensions.get_extensions_for_domain(domain_id)

    def get_registered_packages(self) -> List[str]:
        return self._extensions.get_registered_packages()

    def get_extensions_for_package(self, package: str) -> List[Extension]:
        return self._extensions.get_extensions_for_package(package)

    def get_mounted_extension(self, domain_id: str) -> Optional[str]:
        return self._extensions.get_mounted_extension(domain_id)

    def get_parent_bridge(self, extension_id: str) -> Optional[ParentBridge]:
        state = self._extensions.get_extension_state(extension_id)
        return state.parent_bridge if state is not None else None

    def get_extension_state(self, extension_id: str) -> Optional[ExtensionStatus]:
        state = self._extensions.get_extension_state(extension_id)
        if state is None:
            return None
        return ExtensionStatus(extension_id, state.load_state, state.mount_state, state.error)

    @property
    def mediator(self) -> ActionsChainsMediator:
        return self._mediator

    @property
    def disposed(self) -> bool:
        return self._disposed

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        return self._events.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self._events.off(event, listener)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def dispose(self) -> None:
        """
        Dispose every bridge and drop all state. Safe to call more than once.
        Fragments are not asked to unmount.
        """
        if self._disposed:
            return
        self._disposed = True
        self._mounts.dispose_bridges()
        self._background.cancel_all()
        self._mediator.clear()
        self._extensions.dispose()
        self._serializer.clear()
        self._events.clear()
        self._loader_handlers.clear()
        self._logger.debug("Registry disposed")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _get_loader_handlers(self) -> List[LoaderHandler]:
        return list(self._loader_handlers)

    async def _execute_hook_chain(self, chain: ActionsChain) -> ChainResult:
        return await self.execute_actions_chain(chain)

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise RegistryDisposedError()

    def _report_chain_failure(self, chain: ActionsChain, result: ChainResult) -> None:
        context: Dict[str, Any] = {
            "operation": "execute_actions_chain",
            "action_type": chain.action.type,
            "target": chain.action.target,
            "path": list(result.path),
            "timed_out": result.timed_out,
        }
        error = ChainExecutionError(
            result.error or "Actions chain did not complete", chain.action.type, chain.action.target
        )
        self._report_error(error, context)

    def _report_error(self, error: BaseException, context: Dict[str, Any]) -> None:
        if self._config.on_error is not None:
            try:
                self._config.on_error(error, context)
                return
            except Exception as sink_error:
                self._logger.error("Error handler failed: %s", sink_error, exc_info=True)
        self._logger.error("Error during operation '%s': %s", context.get("operation"), error)
        self._logger.error("Error details: %s", context)

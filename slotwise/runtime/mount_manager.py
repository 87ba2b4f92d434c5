# slotwise/runtime/mount_manager.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

from slotwise.core.constants import STAGE_ACTIVATED, STAGE_DEACTIVATED
from slotwise.core.errors import (
    ConfigurationError,
    EntryTypeNotHandledError,
    ExtensionNotRegisteredError,
    LoadError,
    MountError,
    SlotwiseError,
)
from slotwise.core.types import LoadState, MountState
from slotwise.extensions.bridge import ParentBridge
from slotwise.extensions.bridge_factory import BridgeFactory
from slotwise.extensions.loader import IsolationBoundaryFactory, LoaderHandler
from slotwise.interfaces.protocols import ChainExecutor, MountLifecycle
from slotwise.runtime.extension_manager import ExtensionManager, ExtensionState
from slotwise.runtime.events import EventEmitter, RegistryEvent
from slotwise.runtime.mediator import ActionsChainsMediator

logger = logging.getLogger(__name__)

Spawn = Callable[[Callable[[], Awaitable[Any]], Dict[str, Any]], None]
StageTrigger = Callable[[str, str], Awaitable[None]]


class MountManager:
    """
    Drives the per-extension load -> mount -> unmount state machine.

    Load state: IDLE -> LOADING -> LOADED | ERROR. Mount state:
    UNMOUNTED -> MOUNTING -> MOUNTED | ERROR, and MOUNTED -> UNMOUNTED. A
    loaded lifecycle stays cached across unmounts. Callers serialize
    operations per extension id; this class assumes it is never re-entered
    for the same id.
    """

    def __init__(
        self,
        extensions: ExtensionManager,
        mediator: ActionsChainsMediator,
        bridge_factory: BridgeFactory,
        isolation: IsolationBoundaryFactory,
        get_loader_handlers: Callable[[], List[LoaderHandler]],
        execute_chain: ChainExecutor,
        trigger_stage: StageTrigger,
        spawn: Spawn,
        events: EventEmitter,
    ) -> None:
        self._extensions = extensions
        self._mediator = mediator
        self._bridge_factory = bridge_factory
        self._isolation = isolation
        self._get_loader_handlers = get_loader_handlers
        self._execute_chain = execute_chain
        self._trigger_stage = trigger_stage
        self._spawn = spawn
        self._events = events

    async def load_extension(self, extension_id: str) -> MountLifecycle:
        """
        Load the extension's fragment with the highest-priority loader that
        can handle its entry. A second call returns the cached lifecycle.

        :raises ExtensionNotRegisteredError: If the extension is unknown.
        :raises ConfigurationError: If no loader is registered at all.
        :raises EntryTypeNotHandledError: If loaders exist but none handles the entry.
        :raises LoadError: If the loader fails.
        """
        state = self._require(extension_id)
        if state.load_state is LoadState.LOADED and state.lifecycle is not None:
            return state.lifecycle

        state.load_state = LoadState.LOADING
        try:
            loader = self._select_loader(state.entry.id)
            logger.debug("Loading '%s' with %s", extension_id, type(loader).__name__)
            lifecycle = await loader.load(state.entry)
        except SlotwiseError as e:
            state.load_state = LoadState.ERROR
            state.error = e
            raise
        except Exception as e:
            state.load_state = LoadState.ERROR
            state.error = e
            raise LoadError(extension_id, state.entry.id, e) from e

        state.lifecycle = lifecycle
        state.load_state = LoadState.LOADED
        state.error = None
        self._events.emit(RegistryEvent.EXTENSION_LOADED, {"extension_id": extension_id})
        return lifecycle

    async def mount_extension(self, extension_id: str, container: Any) -> ParentBridge:
        """
        Mount the extension into ``container``, loading it first if needed.
        Mounting an already mounted extension returns its current bridge.

        :return: The host side of the fresh bridge.
        :raises MountError: If the fragment's ``mount`` fails.
        """
        state = self._require(extension_id)
        if state.mount_state is MountState.MOUNTED and state.parent_bridge is not None:
            return state.parent_bridge

        lifecycle = await self.load_extension(extension_id)
        domain_id = state.extension.domain
        domain_state = self._extensions.get_domain_state(domain_id)
        if domain_state is None:
            raise ExtensionNotRegisteredError(extension_id)

        state.mount_state = MountState.MOUNTING
        parent: Optional[ParentBridge] = None
        try:
            boundary = self._isolation.create_isolation_boundary(container)
            parent, child = self._bridge_factory.create_bridge(
                domain_state.domain,
                extension_id,
                state.entry.id,
                domain_state.properties,
                partial(self._extensions.add_property_subscriber, domain_id),
                self._execute_chain,
                self._mediator.register_domain_handler,
                partial(self._mediator.unregister_domain_handler, force=True),
            )
            parent.on_child_action(self._execute_chain)
            await lifecycle.mount(boundary, child)
        except Exception as e:
            if parent is not None:
                self._bridge_factory.dispose_bridge(parent, partial(self._extensions.remove_property_subscriber, domain_id))
            state.mount_state = MountState.ERROR
            state.error = e
            if isinstance(e, SlotwiseError):
                raise
            raise MountError(extension_id, e) from e

        state.parent_bridge = parent
        state.boundary = boundary
        state.container = container
        state.mount_state = MountState.MOUNTED
        state.error = None
        self._extensions.set_mounted_extension(domain_id, extension_id)
        logger.debug("Mounted '%s' in domain '%s'", extension_id, domain_id)
        self._fire(extension_id, STAGE_ACTIVATED)
        self._events.emit(RegistryEvent.EXTENSION_MOUNTED, {"extension_id": extension_id, "domain_id": domain_id})
        return parent

    async def unmount_extension(self, extension_id: str) -> None:
        """
        Unmount the extension. Unknown or not mounted extensions are ignored.
        The bridge is always torn down; a failing ``unmount`` leaves the mount
        state at ERROR and is re-raised.
        """
        state = self._extensions.get_extension_state(extension_id)
        if state is None or state.mount_state is not MountState.MOUNTED:
            return
        domain_id = state.extension.domain
        failure: Optional[BaseException] = None
        try:
            if state.lifecycle is not None:
                await state.lifecycle.unmount(state.boundary)
        except Exception as e:
            failure = e
        finally:
            self._teardown(state)

        if failure is not None:
            state.mount_state = MountState.ERROR
            state.error = failure
            raise failure
        logger.debug("Unmounted '%s' from domain '%s'", extension_id, domain_id)
        self._fire(extension_id, STAGE_DEACTIVATED)
        self._events.emit(RegistryEvent.EXTENSION_UNMOUNTED, {"extension_id": extension_id, "domain_id": domain_id})

    def dispose_bridges(self) -> None:
        """
        Dispose every live bridge without calling fragment ``unmount``.
        """
        for state in self._extensions.get_extension_states():
            if state.parent_bridge is not None:
                self._teardown(state)

    def _teardown(self, state: ExtensionState) -> None:
        domain_id = state.extension.domain
        if state.parent_bridge is not None:
            self._bridge_factory.dispose_bridge(
                state.parent_bridge, partial(self._extensions.remove_property_subscriber, domain_id)
            )
        state.parent_bridge = None
        state.boundary = None
        state.container = None
        state.mount_state = MountState.UNMOUNTED
        self._extensions.clear_mounted_extension(domain_id, state.extension.id)

    def _select_loader(self, entry_type_id: str) -> LoaderHandler:
        handlers = self._get_loader_handlers()
        if not handlers:
            raise ConfigurationError(
                f"No loader handler registered to load entry '{entry_type_id}'; register one with register_handler",
                {"entry_type_id": entry_type_id},
            )
        for handler in handlers:
            if handler.can_handle(entry_type_id):
                return handler
        raise EntryTypeNotHandledError(entry_type_id, len(handlers))

    def _require(self, extension_id: str) -> ExtensionState:
        state = self._extensions.get_extension_state(extension_id)
        if state is None:
            raise ExtensionNotRegisteredError(extension_id)
        return state

    def _fire(self, extension_id: str, stage_id: str) -> None:
        async def run() -> None:
            # Skipped when the extension was unregistered before the job started
            if self._extensions.get_extension_state(extension_id) is not None:
                await self._trigger_stage(extension_id, stage_id)

        self._spawn(
            run,
            {"operation": "lifecycle_stage", "extension_id": extension_id, "stage_id": stage_id},
        )

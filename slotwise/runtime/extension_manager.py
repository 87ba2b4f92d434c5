# slotwise/runtime/extension_manager.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from slotwise.core.constants import ALL_PROPERTIES, STAGE_DESTROYED, STAGE_INIT
from slotwise.core.errors import (
    DomainNotRegisteredError,
    DomainValidationError,
    EntryNotFoundError,
    EntryTypeNotHandledError,
    ExtensionValidationError,
    UndeclaredPropertyError,
)
from slotwise.core.packages import PackageIndex, extract_package
from slotwise.core.types import (
    Domain,
    Entry,
    Extension,
    LoadState,
    MountState,
    SharedProperty,
)
from slotwise.core.validation import (
    ContractValidator,
    type_resolution_issue,
    validate_extension_type,
    validate_lifecycle_hooks,
    validate_ui_meta,
)
from slotwise.extensions.bridge import ParentBridge
from slotwise.extensions.loader import ContainerProvider, LoaderHandler
from slotwise.interfaces.plugin import TypeSystemPlugin
from slotwise.interfaces.protocols import MountLifecycle, PropertyCallback
from slotwise.runtime.events import EventEmitter, RegistryEvent

logger = logging.getLogger(__name__)

StageTrigger = Callable[[str, str], Awaitable[None]]
Spawn = Callable[[Callable[[], Awaitable[Any]], Dict[str, Any]], None]


@dataclass
class ExtensionState:
    """
    Runtime state of one registered extension. Outlives mount/unmount cycles;
    a loaded lifecycle stays cached until the extension is unregistered.
    """

    extension: Extension
    entry: Entry
    package: str
    load_state: LoadState = LoadState.IDLE
    mount_state: MountState = MountState.UNMOUNTED
    lifecycle: Optional[MountLifecycle] = None
    parent_bridge: Optional[ParentBridge] = None
    boundary: Any = None
    container: Any = None
    error: Optional[BaseException] = None


@dataclass
class DomainState:
    domain: Domain
    container_provider: Optional[ContainerProvider] = None
    properties: Dict[str, SharedProperty] = field(default_factory=dict)
    extensions: List[str] = field(default_factory=list)
    subscribers: Dict[str, List[PropertyCallback]] = field(default_factory=dict)
    mounted_extension: Optional[str] = None


class ExtensionManager:
    """
    Owns registration state for domains and extensions: validation on the way
    in, shared-property storage and subscriber sets, package tracking, and the
    cascade on the way out.

    :param type_system: Plugin all structural validation is delegated to.
    :param events: Emitter registry notifications are published on.
    :param spawn: Starts fire-and-forget work (``init`` stages).
    :param get_loader_handlers: Returns the currently registered loaders.
    :param package_resolver: Derives a package id from an extension id.
    """

    def __init__(
        self,
        type_system: TypeSystemPlugin,
        events: EventEmitter,
        spawn: Spawn,
        get_loader_handlers: Callable[[], List[LoaderHandler]],
        package_resolver: Callable[[str], str] = extract_package,
    ) -> None:
        self._type_system = type_system
        self._events = events
        self._spawn = spawn
        self._get_loader_handlers = get_loader_handlers
        self._package_resolver = package_resolver
        self._contract_validator = ContractValidator()
        self._domains: Dict[str, DomainState] = {}
        self._extensions: Dict[str, ExtensionState] = {}
        self._packages = PackageIndex()
        # Wired by the registry once the collaborators exist
        self._trigger_stage: Optional[StageTrigger] = None
        self._trigger_domain_stage: Optional[StageTrigger] = None
        self._unmount: Optional[Callable[[str], Awaitable[None]]] = None

    def bind(
        self,
        trigger_stage: StageTrigger,
        trigger_domain_stage: StageTrigger,
        unmount: Callable[[str], Awaitable[None]],
    ) -> None:
        """
        :param trigger_stage: Runs an extension's hooks for a stage.
        :param trigger_domain_stage: Runs a domain's own hooks for a stage.
        :param unmount: Unmounts an extension directly, bypassing serialization.
        """
        self._trigger_stage = trigger_stage
        self._trigger_domain_stage = trigger_domain_stage
        self._unmount = unmount

    # -------------------------------------------------------------------------
    # Domains
    # -------------------------------------------------------------------------

    def register_domain(self, domain: Domain, container_provider: Optional[ContainerProvider] = None) -> None:
        """
        Validate and store ``domain``, then fire its ``init`` stage.

        :raises DomainValidationError: On a duplicate id or schema rejection.
        :raises UnsupportedLifecycleStageError: If a hook uses an undeclared stage.
        """
        if domain.id in self._domains:
            raise DomainValidationError(f"Domain '{domain.id}' is already registered", domain.id)
        try:
            self._type_system.register(domain.to_dict())
            result = self._type_system.validate_instance(domain.id)
        except Exception as e:
            raise DomainValidationError(
                f"Domain '{domain.id}' could not be validated", domain.id, [type_resolution_issue(e)]
            ) from e
        if not result.valid:
            raise DomainValidationError(f"Domain '{domain.id}' failed schema validation", domain.id, result.errors)
        validate_lifecycle_hooks(domain.id, domain.lifecycle, domain.lifecycle_stages)

        self._domains[domain.id] = DomainState(domain=domain, container_provider=container_provider)
        logger.debug("Registered domain '%s'", domain.id)
        self._fire_stage(self._trigger_domain_stage, domain.id, STAGE_INIT, "domain")
        self._events.emit(RegistryEvent.DOMAIN_REGISTERED, {"domain_id": domain.id})

    async def unregister_domain(self, domain_id: str) -> None:
        """
        Unregister every extension of the domain in registration order, run the
        domain's own ``destroyed`` stage, then drop it. Unknown ids are ignored.
        """
        state = self._domains.get(domain_id)
        if state is None:
            return
        for extension_id in list(state.extensions):
            await self.unregister_extension(extension_id)
        if self._trigger_domain_stage is not None:
            await self._trigger_domain_stage(domain_id, STAGE_DESTROYED)
        self._domains.pop(domain_id, None)
        logger.debug("Unregistered domain '%s'", domain_id)
        self._events.emit(RegistryEvent.DOMAIN_UNREGISTERED, {"domain_id": domain_id})

    # -------------------------------------------------------------------------
    # Extensions
    # -------------------------------------------------------------------------

    async def register_extension(self, extension: Extension) -> None:
        """
        Validate ``extension`` against its schema, its domain's contract and
        type constraint, then store it and fire its ``init`` stage.

        :raises ExtensionValidationError: Schema rejection, duplicate id or
            malformed id.
        :raises DomainNotRegisteredError: If the domain is unknown.
        :raises EntryNotFoundError: If the entry cannot be resolved.
        :raises ContractValidationError: With one entry per violated rule.
        :raises ExtensionTypeError: If the domain's type constraint fails.
        :raises UnsupportedLifecycleStageError: If a hook uses an undeclared stage.
        :raises EntryTypeNotHandledError: If loaders exist but none handles the entry.
        """
        if extension.id in self._extensions:
            raise ExtensionValidationError(f"Extension '{extension.id}' is already registered", extension.id)
        self._validate_extension_schema(extension)
        package = self._package_resolver(extension.id)

        domain_state = self._domains.get(extension.domain)
        if domain_state is None:
            raise DomainNotRegisteredError(extension.domain)
        domain = domain_state.domain

        entry = self._resolve_entry(extension.entry)
        self._contract_validator.assert_valid(entry, domain)
        validate_extension_type(self._type_system, domain, extension)
        validate_ui_meta(self._type_system, domain, extension)
        validate_lifecycle_hooks(extension.id, extension.lifecycle, domain.extensions_lifecycle_stages)

        handlers = self._get_loader_handlers()
        if handlers and not any(h.can_handle(entry.id) for h in handlers):
            raise EntryTypeNotHandledError(entry.id, len(handlers))

        self._extensions[extension.id] = ExtensionState(extension=extension, entry=entry, package=package)
        domain_state.extensions.append(extension.id)
        self._packages.add(package, extension.id)
        logger.debug("Registered extension '%s' in domain '%s'", extension.id, domain.id)
        self._fire_stage(self._trigger_stage, extension.id, STAGE_INIT, "extension")
        self._events.emit(
            RegistryEvent.EXTENSION_REGISTERED, {"extension_id": extension.id, "domain_id": domain.id}
        )

    async def unregister_extension(self, extension_id: str) -> None:
        """
        Unmount if mounted, run ``destroyed``, then drop all state. Unknown ids
        are ignored.
        """
        state = self._extensions.get(extension_id)
        if state is None:
            return
        if state.mount_state is MountState.MOUNTED and self._unmount is not None:
            await self._unmount(extension_id)
        if self._trigger_stage is not None:
            await self._trigger_stage(extension_id, STAGE_DESTROYED)

        domain_id = state.extension.domain
        domain_state = self._domains.get(domain_id)
        if domain_state is not None:
            if extension_id in domain_state.extensions:
                domain_state.extensions.remove(extension_id)
            if domain_state.mounted_extension == extension_id:
                domain_state.mounted_extension = None
        self._packages.remove(state.package, extension_id)
        self._extensions.pop(extension_id, None)
        logger.debug("Unregistered extension '%s'", extension_id)
        self._events.emit(RegistryEvent.EXTENSION_UNREGISTERED, {"extension_id": extension_id, "domain_id": domain_id})

    # -------------------------------------------------------------------------
    # Shared properties
    # -------------------------------------------------------------------------

    def update_domain_property(self, domain_id: str, property_id: str, value: Any) -> None:
        """
        Store ``value`` and notify the property's subscribers, then wildcard
        subscribers.

        :raises DomainNotRegisteredError: If the domain is unknown.
        :raises UndeclaredPropertyError: If the domain does not declare the property.
        """
        state = self._require_declared(domain_id, [property_id])
        self._write_property(state, property_id, value)

    def update_domain_properties(self, domain_id: str, values: Mapping[str, Any]) -> None:
        """
        Write several properties. Every key is checked before any is written.
        """
        state = self._require_declared(domain_id, list(values))
        for property_id, value in values.items():
            self._write_property(state, property_id, value)

    def get_domain_property(self, domain_id: str, property_id: str) -> Any:
        state = self._require_declared(domain_id, [property_id])
        prop = state.properties.get(property_id)
        return prop.value if prop is not None else None

    def add_property_subscriber(self, domain_id: str, property_id: str, callback: PropertyCallback) -> None:
        state = self._require_domain(domain_id)
        if property_id != ALL_PROPERTIES and property_id not in state.domain.shared_properties:
            raise UndeclaredPropertyError(domain_id, property_id)
        state.subscribers.setdefault(property_id, []).append(callback)

    def remove_property_subscriber(self, domain_id: str, property_id: str, callback: PropertyCallback) -> None:
        state = self._domains.get(domain_id)
        if state is None:
            return
        callbacks = state.subscribers.get(property_id)
        if not callbacks or callback not in callbacks:
            return
        callbacks.remove(callback)
        if not callbacks:
            del state.subscribers[property_id]

    def property_subscriber_count(self, domain_id: str, property_id: str) -> int:
        state = self._domains.get(domain_id)
        if state is None:
            return 0
        return len(state.subscribers.get(property_id, ()))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_domain(self, domain_id: str) -> Optional[Domain]:
        state = self._domains.get(domain_id)
        return state.domain if state is not None else None

    def get_domain_state(self, domain_id: str) -> Optional[DomainState]:
        return self._domains.get(domain_id)

    def get_domains(self) -> List[Domain]:
        return [state.domain for state in self._domains.values()]

    def get_extension(self, extension_id: str) -> Optional[Extension]:
        state = self._extensions.get(extension_id)
        return state.extension if state is not None else None

    def get_extension_state(self, extension_id: str) -> Optional[ExtensionState]:
        return self._extensions.get(extension_id)

    def get_extension_states(self) -> List[ExtensionState]:
        return list(self._extensions.values())

    def get_extensions_for_domain(self, domain_id: str) -> List[Extension]:
        state = self._domains.get(domain_id)
        if state is None:
            return []
        return [self._extensions[ext_id].extension for ext_id in state.extensions if ext_id in self._extensions]

    def get_registered_packages(self) -> List[str]:
        return self._packages.packages()

    def get_extensions_for_package(self, package: str) -> List[Extension]:
        members = self._packages.members(package)
        return [state.extension for ext_id, state in self._extensions.items() if ext_id in members]

    def get_mounted_extension(self, domain_id: str) -> Optional[str]:
        state = self._domains.get(domain_id)
        return state.mounted_extension if state is not None else None

    def set_mounted_extension(self, domain_id: str, extension_id: Optional[str]) -> None:
        state = self._domains.get(domain_id)
        if state is not None:
            state.mounted_extension = extension_id

    def clear_mounted_extension(self, domain_id: str, extension_id: str) -> None:
        state = self._domains.get(domain_id)
        if state is not None and state.mounted_extension == extension_id:
            state.mounted_extension = None

    def dispose(self) -> None:
        self._extensions.clear()
        self._domains.clear()
        self._packages.clear()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _validate_extension_schema(self, extension: Extension) -> None:
        try:
            self._type_system.register(extension.to_dict())
            result = self._type_system.validate_instance(extension.id)
        except Exception as e:
            raise ExtensionValidationError(
                f"Extension '{extension.id}' could not be validated", extension.id, [type_resolution_issue(e)]
            ) from e
        if not result.valid:
            raise ExtensionValidationError(
                f"Extension '{extension.id}' failed schema validation", extension.id, result.errors
            )

    def _resolve_entry(self, entry_id: str) -> Entry:
        for state in self._extensions.values():
            if state.entry.id == entry_id:
                return state.entry
        try:
            schema = self._type_system.get_schema(entry_id)
        except Exception as e:
            raise EntryNotFoundError(entry_id) from e
        if schema is None:
            raise EntryNotFoundError(entry_id)
        return _coerce_entry(entry_id, schema)

    def _require_domain(self, domain_id: str) -> DomainState:
        state = self._domains.get(domain_id)
        if state is None:
            raise DomainNotRegisteredError(domain_id)
        return state

    def _require_declared(self, domain_id: str, property_ids: List[str]) -> DomainState:
        state = self._require_domain(domain_id)
        declared = state.domain.shared_properties
        for property_id in property_ids:
            if property_id not in declared:
                raise UndeclaredPropertyError(domain_id, property_id)
        return state

    def _write_property(self, state: DomainState, property_id: str, value: Any) -> None:
        prop = SharedProperty(property_id, value)
        state.properties[property_id] = prop
        for key in (property_id, ALL_PROPERTIES):
            for callback in list(state.subscribers.get(key, ())):
                try:
                    callback(prop)
                except Exception as e:
                    logger.error(
                        "Subscriber for property '%s' of domain '%s' failed: %s",
                        property_id,
                        state.domain.id,
                        e,
                        exc_info=True,
                    )

    def _fire_stage(self, trigger: Optional[StageTrigger], entity_id: str, stage_id: str, kind: str) -> None:
        if trigger is None:
            return
        lookup = self._domains if kind == "domain" else self._extensions

        async def run() -> None:
            # Skipped when the entity was unregistered before the job started
            if entity_id in lookup:
                await trigger(entity_id, stage_id)

        self._spawn(
            run,
            {"operation": "lifecycle_stage", f"{kind}_id": entity_id, "stage_id": stage_id},
        )


def _coerce_entry(entry_id: str, schema: Any) -> Entry:
    if isinstance(schema, Entry):
        return schema
    return Entry(
        id=schema.get("id", entry_id),
        required_properties=list(schema.get("required_properties", [])),
        optional_properties=list(schema.get("optional_properties", [])),
        actions=list(schema.get("actions", [])),
        domain_actions=list(schema.get("domain_actions", [])),
    )

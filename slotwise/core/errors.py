# slotwise/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class SlotwiseError(Exception):
    """
    Base exception class for errors raised by the extension registry runtime.

    :param message: Human readable description.
    :param details: Optional structured context (ids, offending values).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SlotwiseError):
    """
    Raised when the registry is constructed with an unusable configuration.
    """


class DomainValidationError(SlotwiseError):
    """
    Raised when a domain record is rejected by the type system.
    """

    def __init__(self, message: str, domain_id: str, errors: Optional[Sequence[Any]] = None) -> None:
        super().__init__(message, {"domain_id": domain_id})
        self.domain_id = domain_id
        self.errors: List[Any] = list(errors or [])


class ExtensionValidationError(SlotwiseError):
    """
    Raised when an extension record is rejected by the type system or is
    otherwise malformed (duplicate id, id without a package segment).
    """

    def __init__(self, message: str, extension_id: str, errors: Optional[Sequence[Any]] = None) -> None:
        super().__init__(message, {"extension_id": extension_id})
        self.extension_id = extension_id
        self.errors: List[Any] = list(errors or [])


class ContractValidationError(SlotwiseError):
    """
    Raised when an entry does not satisfy the contract of the domain it is
    being bound into. Every violated rule contributes one entry to ``errors``.
    """

    def __init__(self, errors: Sequence[Any], entry_id: str, domain_id: str) -> None:
        listing = "; ".join(str(e) for e in errors)
        super().__init__(
            f"Contract validation failed between entry '{entry_id}' and domain '{domain_id}': {listing}",
            {"entry_id": entry_id, "domain_id": domain_id},
        )
        self.errors: List[Any] = list(errors)
        self.entry_id = entry_id
        self.domain_id = domain_id


class ExtensionTypeError(SlotwiseError):
    """
    Raised when an extension's type does not derive from the type required by
    its domain.
    """

    def __init__(self, extension_id: str, required_type_id: str, reason: Optional[str] = None) -> None:
        message = f"Extension '{extension_id}' must derive from '{required_type_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"extension_id": extension_id, "required_type_id": required_type_id})
        self.extension_id = extension_id
        self.required_type_id = required_type_id


class UnsupportedLifecycleStageError(SlotwiseError):
    """
    Raised when a lifecycle hook references a stage its owner does not support.
    """

    def __init__(self, entity_id: str, stage_id: str, supported: Sequence[str]) -> None:
        super().__init__(
            f"'{entity_id}' declares a hook for unsupported lifecycle stage '{stage_id}'",
            {"entity_id": entity_id, "stage_id": stage_id, "supported": list(supported)},
        )
        self.entity_id = entity_id
        self.stage_id = stage_id
        self.supported = list(supported)


class EntryNotFoundError(SlotwiseError):
    """
    Raised when an extension references an entry the type system cannot resolve.
    """

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Entry '{entry_id}' is not registered", {"entry_id": entry_id})
        self.entry_id = entry_id


class EntryTypeNotHandledError(SlotwiseError):
    """
    Raised when loader handlers are registered but none of them can handle an
    entry type.
    """

    def __init__(self, entry_type_id: str, handler_count: int) -> None:
        super().__init__(
            f"No registered handler can handle entry type '{entry_type_id}' ({handler_count} handler(s) registered)",
            {"entry_type_id": entry_type_id, "handler_count": handler_count},
        )
        self.entry_type_id = entry_type_id
        self.handler_count = handler_count


class NotRegisteredError(SlotwiseError):
    """
    Raised when an operation references an id that is not registered.
    """

    kind = "entity"

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"{self.kind.capitalize()} '{entity_id}' is not registered", {f"{self.kind}_id": entity_id})
        self.entity_id = entity_id


class DomainNotRegisteredError(NotRegisteredError):
    kind = "domain"


class ExtensionNotRegisteredError(NotRegisteredError):
    kind = "extension"


class UndeclaredPropertyError(SlotwiseError):
    """
    Raised when a shared property is written that the domain does not declare.
    """

    def __init__(self, domain_id: str, property_id: str) -> None:
        super().__init__(
            f"Property '{property_id}' is not declared in sharedProperties of domain '{domain_id}'",
            {"domain_id": domain_id, "property_id": property_id},
        )
        self.domain_id = domain_id
        self.property_id = property_id


class BridgeDisposedError(SlotwiseError):
    """
    Raised when an operation is attempted on a bridge that has been torn down.
    """

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Bridge '{instance_id}' has been disposed", {"instance_id": instance_id})
        self.instance_id = instance_id


class NoActionsChainHandlerError(SlotwiseError):
    """
    Raised when a chain is sent to a child bridge that has no registered handler.
    """

    def __init__(self, instance_id: str) -> None:
        super().__init__(
            f"Child bridge '{instance_id}' has no actions chain handler registered",
            {"instance_id": instance_id},
        )
        self.instance_id = instance_id


class ChainExecutionError(SlotwiseError):
    """
    Raised (and captured by the mediator) when an action in a chain cannot be
    resolved or executed.
    """

    def __init__(self, message: str, action_type: str, target: str, details: Optional[Dict[str, Any]] = None) -> None:
        merged = {"action_type": action_type, "target": target}
        merged.update(details or {})
        super().__init__(message, merged)
        self.action_type = action_type
        self.target = target


class UnsupportedDomainActionError(ChainExecutionError):
    """
    Raised when a domain-targeted action is not among the domain's accepted actions.
    """

    def __init__(self, action_type: str, domain_id: str) -> None:
        super().__init__(f"Domain '{domain_id}' does not support action '{action_type}'", action_type, domain_id)


class ActionTimeoutError(ChainExecutionError):
    """
    Raised when an action does not settle within its timeout.
    """

    def __init__(self, action_type: str, target: str, timeout: float) -> None:
        super().__init__(
            f"Action '{action_type}' on '{target}' timed out after {timeout}s",
            action_type,
            target,
            {"timeout": timeout},
        )
        self.timeout = timeout


class HandlerBusyError(SlotwiseError):
    """
    Raised when unregistering an action handler that still has actions in flight.
    """

    def __init__(self, target_id: str, pending: int) -> None:
        super().__init__(
            f"Handler for '{target_id}' has {pending} pending action(s)",
            {"target_id": target_id, "pending": pending},
        )
        self.target_id = target_id
        self.pending = pending


class LoadError(SlotwiseError):
    """
    Raised when a loader handler fails to produce a lifecycle for an entry.
    """

    def __init__(self, extension_id: str, entry_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to load extension '{extension_id}' (entry '{entry_id}'): {cause}",
            {"extension_id": extension_id, "entry_id": entry_id, "cause": str(cause)},
        )
        self.extension_id = extension_id
        self.entry_id = entry_id


class MountError(SlotwiseError):
    """
    Raised when a fragment lifecycle fails to mount.
    """

    def __init__(self, extension_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to mount extension '{extension_id}': {cause}",
            {"extension_id": extension_id, "cause": str(cause)},
        )
        self.extension_id = extension_id


class RegistryDisposedError(SlotwiseError):
    """
    Raised when a disposed registry is used.
    """

    def __init__(self) -> None:
        super().__init__("Registry has been disposed")


class MissingPayloadError(SlotwiseError):
    """
    Raised when an extension lifecycle action arrives without the payload
    naming the extension it applies to.
    """

    def __init__(self, action_type: str) -> None:
        super().__init__(
            f"Extension lifecycle action '{action_type}' requires a payload with 'extension_id'",
            {"action_type": action_type, "code": "LIFECYCLE_ACTION_MISSING_PAYLOAD"},
        )
        self.action_type = action_type

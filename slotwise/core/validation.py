# slotwise/core/validation.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, NamedTuple, Optional

from slotwise.core.constants import LIFECYCLE_ACTIONS
from slotwise.core.errors import (
    ContractValidationError,
    ExtensionTypeError,
    ExtensionValidationError,
    UnsupportedLifecycleStageError,
)
from slotwise.core.types import Domain, Entry, Extension, LifecycleHook
from slotwise.interfaces.plugin import ValidationIssue

if TYPE_CHECKING:
    from slotwise.interfaces.plugin import TypeSystemPlugin

MISSING_PROPERTY = "missing_property"
UNSUPPORTED_ACTION = "unsupported_action"
UNHANDLED_DOMAIN_ACTION = "unhandled_domain_action"

TYPE_RESOLUTION_ERROR = "type-resolution-error"


class ContractViolation(NamedTuple):
    type: str
    details: str

    def __str__(self) -> str:
        return f"{self.type}: {self.details}"


class ContractValidationResult(NamedTuple):
    valid: bool
    errors: List[ContractViolation]


class ContractValidator:
    """
    Checks that an entry and a domain agree on their communication contract.

    Three subset rules apply, and every violation is reported rather than the
    first one found:

    1. entry.required_properties must be a subset of domain.shared_properties
    2. entry.actions must be a subset of domain.extensions_actions
    3. domain.actions, minus the built-in load/mount/unmount actions, must be
       a subset of entry.domain_actions
    """

    def __init__(self) -> None:
        self._rules_engine = _ContractRulesEngine()

    def validate(self, entry: Entry, domain: Domain) -> ContractValidationResult:
        """
        Collect all contract violations between ``entry`` and ``domain``.

        :param entry: The fragment contract.
        :param domain: The domain the fragment is bound into.
        :return: A result whose ``errors`` holds one violation per offending id.
        """
        errors = self._rules_engine.check(entry, domain)
        return ContractValidationResult(valid=not errors, errors=errors)

    def assert_valid(self, entry: Entry, domain: Domain) -> None:
        """
        :raises ContractValidationError: If any rule is violated.
        """
        result = self.validate(entry, domain)
        if not result.valid:
            raise ContractValidationError(result.errors, entry.id, domain.id)


class _ContractRulesEngine:
    """
    Internal engine running each contract rule in turn and concatenating their
    findings.
    """

    def __init__(self) -> None:
        self._rules = (
            _DefaultContractRules.required_properties,
            _DefaultContractRules.emitted_actions,
            _DefaultContractRules.handled_domain_actions,
        )

    def check(self, entry: Entry, domain: Domain) -> List[ContractViolation]:
        errors: List[ContractViolation] = []
        for rule in self._rules:
            errors.extend(rule(entry, domain))
        return errors


class _DefaultContractRules:
    @staticmethod
    def required_properties(entry: Entry, domain: Domain) -> List[ContractViolation]:
        shared = set(domain.shared_properties)
        return [
            ContractViolation(
                MISSING_PROPERTY,
                f"Entry requires property '{prop}' not provided by domain",
            )
            for prop in entry.required_properties
            if prop not in shared
        ]

    @staticmethod
    def emitted_actions(entry: Entry, domain: Domain) -> List[ContractViolation]:
        accepted = set(domain.extensions_actions)
        return [
            ContractViolation(
                UNSUPPORTED_ACTION,
                f"Entry emits action '{action}' not accepted by domain",
            )
            for action in entry.actions
            if action not in accepted
        ]

    @staticmethod
    def handled_domain_actions(entry: Entry, domain: Domain) -> List[ContractViolation]:
        handled = set(entry.domain_actions)
        return [
            ContractViolation(
                UNHANDLED_DOMAIN_ACTION,
                f"Action '{action}' is not handled by entry",
            )
            for action in domain.actions
            if action not in LIFECYCLE_ACTIONS and action not in handled
        ]


def validate_extension_type(plugin: "TypeSystemPlugin", domain: Domain, extension: Extension) -> None:
    """
    Check the extension's type ancestry against the domain's type constraint.
    Domains without ``extensions_type_id`` accept any extension.

    :raises ExtensionTypeError: If the extension does not derive from the
        required type, or the ancestry query itself fails.
    """
    if not domain.extensions_type_id:
        return
    try:
        matches = plugin.is_type_of(extension.id, domain.extensions_type_id)
    except Exception as e:
        raise ExtensionTypeError(extension.id, domain.extensions_type_id, f"type resolution error: {e}") from e
    if not matches:
        raise ExtensionTypeError(extension.id, domain.extensions_type_id)


def validate_lifecycle_hooks(
    entity_id: str, hooks: Optional[Iterable[LifecycleHook]], supported: Iterable[str]
) -> None:
    """
    :raises UnsupportedLifecycleStageError: On the first hook whose stage is
        not in ``supported``.
    """
    if not hooks:
        return
    allowed = list(supported)
    for hook in hooks:
        if hook.stage not in allowed:
            raise UnsupportedLifecycleStageError(entity_id, hook.stage, allowed)


def validate_ui_meta(plugin: "TypeSystemPlugin", domain: Domain, extension: Extension) -> None:
    """
    Validate ``extension.ui_meta`` against ``domain.ui_meta_schema``, when the
    domain declares one.

    :raises ExtensionValidationError: If metadata is missing or invalid.
    """
    if domain.ui_meta_schema is None:
        return
    if extension.ui_meta is None:
        raise ExtensionValidationError(
            f"Extension '{extension.id}' must provide ui_meta required by domain '{domain.id}'",
            extension.id,
        )
    try:
        result = plugin.validate_value(domain.ui_meta_schema, extension.ui_meta)
    except Exception as e:
        raise ExtensionValidationError(
            f"Extension '{extension.id}' ui_meta could not be validated",
            extension.id,
            [type_resolution_issue(e)],
        ) from e
    if not result.valid:
        raise ExtensionValidationError(
            f"Extension '{extension.id}' ui_meta does not match domain '{domain.id}' schema",
            extension.id,
            result.errors,
        )


def type_resolution_issue(error: BaseException) -> ValidationIssue:
    return ValidationIssue(path="", message=str(error), keyword=TYPE_RESOLUTION_ERROR)

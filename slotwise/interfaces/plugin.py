# slotwise/interfaces/plugin.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Dict, List, NamedTuple, Optional, Protocol, runtime_checkable


class ValidationIssue(NamedTuple):
    path: str
    message: str
    keyword: str = ""


class ValidationResult(NamedTuple):
    valid: bool
    errors: List[ValidationIssue] = []


@runtime_checkable
class TypeSystemPlugin(Protocol):
    """
    Type-system protocol the registry delegates all structural validation to.

    Methods:
        register_schema(schema): Makes a schema resolvable by its id.
        get_schema(type_id): Returns a registered schema or None.
        register(instance): Registers an instance (its ``id`` names its type).
        validate_instance(instance_id): Validates a registered instance.
        is_type_of(type_id, base_type_id): Type-ancestry query.
        validate_value(schema, value): Validates a free-standing value.

    Error Handling:
    - The registry treats any exception raised by these methods as a
      validation failure classified as a type-resolution error.
    """

    def register_schema(self, schema: Dict[str, Any]) -> None: ...

    def get_schema(self, type_id: str) -> Optional[Dict[str, Any]]: ...

    def register(self, instance: Dict[str, Any]) -> None: ...

    def validate_instance(self, instance_id: str) -> ValidationResult: ...

    def is_type_of(self, type_id: str, base_type_id: str) -> bool: ...

    def validate_value(self, schema: Dict[str, Any], value: Any) -> ValidationResult: ...

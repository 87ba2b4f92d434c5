# slotwise/core/packages.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
"""
Package grouping of extensions.

A package is derived from the last ``~``-separated segment of an id: its
first two dot-separated parts. For
``slotwise.core.ext.extension.v1~acme.billing.invoices.v1`` the package is
``acme.billing``.
"""

from typing import Dict, List, Set

from slotwise.core.errors import ExtensionValidationError


def extract_package(type_id: str) -> str:
    """
    Derive the package identifier from a ``<base>~<instance>`` id.

    :raises ExtensionValidationError: If the id has no instance segment or the
        segment has fewer than two dot-separated parts.
    """
    if "~" not in type_id or type_id.endswith("~"):
        raise ExtensionValidationError(
            f"Cannot derive package from '{type_id}': expected '<base>~<instance>'", type_id
        )
    instance = type_id.rsplit("~", 1)[1]
    parts = instance.split(".")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ExtensionValidationError(
            f"Cannot derive package from '{type_id}': instance '{instance}' needs at least two segments",
            type_id,
        )
    return f"{parts[0]}.{parts[1]}"


class PackageIndex:
    """
    Tracks which registered extensions belong to which package. Packages are
    reported in first-registration order and disappear with their last
    extension.
    """

    def __init__(self) -> None:
        self._packages: Dict[str, Set[str]] = {}

    def add(self, package: str, extension_id: str) -> None:
        self._packages.setdefault(package, set()).add(extension_id)

    def remove(self, package: str, extension_id: str) -> None:
        members = self._packages.get(package)
        if members is None:
            return
        members.discard(extension_id)
        if not members:
            del self._packages[package]

    def packages(self) -> List[str]:
        return list(self._packages)

    def members(self, package: str) -> Set[str]:
        return set(self._packages.get(package, ()))

    def clear(self) -> None:
        self._packages.clear()

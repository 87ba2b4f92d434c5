# tests/unit/core/test_packages.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from slotwise.core.errors import ExtensionValidationError
from slotwise.core.packages import PackageIndex, extract_package


@pytest.mark.parametrize(
    "type_id, expected",
    [
        ("slotwise.core.ext.extension.v1~acme.billing.invoices.v1", "acme.billing"),
        ("a.v1~b.v1~acme.demo.screens.helloworld.v1", "acme.demo"),
        ("base~x.y", "x.y"),
    ],
)
def test_extract_package(type_id, expected):
    assert extract_package(type_id) == expected


@pytest.mark.parametrize("type_id", ["no-tilde", "base.v1~", "base~single", "base~.y"])
def test_malformed_ids_are_rejected(type_id):
    with pytest.raises(ExtensionValidationError):
        extract_package(type_id)


def test_package_index_drops_package_with_last_member():
    index = PackageIndex()
    index.add("acme.a", "e1")
    index.add("acme.a", "e2")
    index.add("acme.b", "e3")
    index.add("acme.a", "e1")

    assert index.packages() == ["acme.a", "acme.b"]
    assert index.members("acme.a") == {"e1", "e2"}

    index.remove("acme.a", "e1")
    assert index.packages() == ["acme.a", "acme.b"]
    index.remove("acme.a", "e2")
    assert index.packages() == ["acme.b"]

    index.remove("acme.unknown", "e9")
    index.clear()
    assert index.packages() == []

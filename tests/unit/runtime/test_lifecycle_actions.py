# tests/unit/runtime/test_lifecycle_actions.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from slotwise.core.constants import ACTION_LOAD_EXT, ACTION_MOUNT_EXT, ACTION_UNMOUNT_EXT
from slotwise.core.errors import ConfigurationError, MissingPayloadError
from slotwise.core.types import DomainSemantics
from slotwise.runtime.lifecycle_actions import ExtensionLifecycleActionHandler

# -----------------------------------------------------------------------------
# TEST FIXTURES
# -----------------------------------------------------------------------------


class Slot:
    """Records calls in order and tracks which extension occupies the domain."""

    def __init__(self):
        self.log = []
        self.mounted = None

    async def load(self, extension_id):
        self.log.append(("load", extension_id))

    async def mount(self, extension_id, container):
        self.log.append(("mount", extension_id, container["slot"]))
        self.mounted = extension_id

    async def unmount(self, extension_id):
        self.log.append(("unmount", extension_id))
        if self.mounted == extension_id:
            self.mounted = None

    def get_mounted(self, domain_id):
        return self.mounted


@pytest.fixture
def slot():
    return Slot()


@pytest.fixture
def build(slot, container_provider):
    def _build(semantics, provider=container_provider):
        return ExtensionLifecycleActionHandler(
            "dom", semantics, provider, slot.load, slot.mount, slot.unmount, slot.get_mounted
        )

    return _build


# -----------------------------------------------------------------------------
# SWAP
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_swap_unmounts_current_before_mounting(build, slot, container_provider):
    handler = build(DomainSemantics.SWAP)

    await handler.handle_action(ACTION_MOUNT_EXT, {"extension_id": "a"})
    await handler.handle_action(ACTION_MOUNT_EXT, {"extension_id": "b"})

    assert slot.log == [("mount", "a", "a"), ("unmount", "a"), ("mount", "b", "b")]
    assert container_provider.released == ["a"]
    assert slot.mounted == "b"


@pytest.mark.asyncio
async def test_swap_same_extension_does_not_unmount(build, slot, container_provider):
    handler = build(DomainSemantics.SWAP)

    await handler.handle_action(ACTION_MOUNT_EXT, {"extension_id": "a"})
    await handler.handle_action(ACTION_MOUNT_EXT, {"extension_id": "a"})

    assert ("unmount", "a") not in slot.log
    assert container_provider.released == []


# -----------------------------------------------------------------------------
# TOGGLE
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_toggle_mounts_and_unmounts_independently(build, slot, container_provider):
    handler = build(DomainSemantics.TOGGLE)

    await handler.handle_action(ACTION_MOUNT_EXT, {"extension_id": "a"})
    await handler.handle_action(ACTION_MOUNT_EXT, {"extension_id": "b"})
    await handler.handle_action(ACTION_UNMOUNT_EXT, {"extension_id": "b"})

    assert slot.log == [("mount", "a", "a"), ("mount", "b", "b"), ("unmount", "b")]
    assert container_provider.released == ["b"]


@pytest.mark.asyncio
async def test_load_only_loads(build, slot, container_provider):
    await build(DomainSemantics.TOGGLE).handle_action(ACTION_LOAD_EXT, {"extension_id": "a"})

    assert slot.log == [("load", "a")]
    assert container_provider.containers == {}


# -----------------------------------------------------------------------------
# EDGE CASES
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, {}, {"extension_id": ""}])
async def test_missing_extension_id(build, payload):
    with pytest.raises(MissingPayloadError) as exc_info:
        await build(DomainSemantics.SWAP).handle_action(ACTION_MOUNT_EXT, payload)

    assert exc_info.value.details["code"] == "LIFECYCLE_ACTION_MISSING_PAYLOAD"


@pytest.mark.asyncio
async def test_other_actions_are_ignored(build, slot):
    await build(DomainSemantics.TOGGLE).handle_action("acme.action.v1~acme.shell.refresh.v1", None)

    assert slot.log == []


@pytest.mark.asyncio
async def test_mount_without_container_provider(build, slot):
    handler = build(DomainSemantics.TOGGLE, provider=None)

    with pytest.raises(ConfigurationError):
        await handler.handle_action(ACTION_MOUNT_EXT, {"extension_id": "a"})
    assert slot.log == []

    await handler.handle_action(ACTION_LOAD_EXT, {"extension_id": "a"})
    assert slot.log == [("load", "a")]

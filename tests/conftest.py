# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Set

import pytest
import pytest_asyncio

from slotwise.core.constants import (
    ACTION_LOAD_EXT,
    ACTION_MOUNT_EXT,
    ACTION_UNMOUNT_EXT,
    DOMAIN_TYPE_ID,
    ENTRY_TYPE_ID,
    EXTENSION_TYPE_ID,
)
from slotwise.core.types import Domain, Entry, Extension
from slotwise.extensions.loader import ContainerProvider, LoaderHandler
from slotwise.interfaces.plugin import ValidationIssue, ValidationResult
from slotwise.runtime.config import RegistryConfig
from slotwise.runtime.registry import Registry

# -----------------------------------------------------------------------------
# IDS
# -----------------------------------------------------------------------------

SIDEBAR = f"{DOMAIN_TYPE_ID}acme.shell.sidebar.v1"
SCREEN = f"{DOMAIN_TYPE_ID}acme.shell.screen.v1"
WIDGET_ENTRY = f"{ENTRY_TYPE_ID}acme.widgets.widget.v1"
THEME = "slotwise.core.comm.shared_property.v1~acme.shell.theme.v1"
LANGUAGE = "slotwise.core.comm.shared_property.v1~acme.shell.language.v1"
REFRESH = "slotwise.core.comm.action.v1~acme.shell.refresh.v1"
NOTIFY = "slotwise.core.comm.action.v1~acme.shell.notify.v1"


def ext_id(name: str, package: str = "acme.sidebar") -> str:
    return f"{EXTENSION_TYPE_ID}{package}.{name}.v1"


# -----------------------------------------------------------------------------
# FAKES
# -----------------------------------------------------------------------------


class FakeTypeSystem:
    """
    In-memory type system: every registered instance is valid unless its id
    was marked invalid, and type ancestry is id-prefix based.
    """

    def __init__(self) -> None:
        self.schemas: Dict[str, Dict[str, Any]] = {}
        self.instances: Dict[str, Dict[str, Any]] = {}
        self.invalid: Set[str] = set()
        self.broken: Set[str] = set()

    def register_schema(self, schema: Dict[str, Any]) -> None:
        self.schemas[schema["id"]] = schema

    def get_schema(self, type_id: str) -> Optional[Dict[str, Any]]:
        return self.schemas.get(type_id)

    def register(self, instance: Dict[str, Any]) -> None:
        self.instances[instance["id"]] = instance

    def validate_instance(self, instance_id: str) -> ValidationResult:
        if instance_id in self.broken:
            raise RuntimeError(f"cannot resolve {instance_id}")
        if instance_id in self.invalid:
            return ValidationResult(False, [ValidationIssue("/", "rejected by schema", "type")])
        return ValidationResult(True, [])

    def is_type_of(self, type_id: str, base_type_id: str) -> bool:
        if type_id in self.broken:
            raise RuntimeError(f"cannot resolve {type_id}")
        return type_id.startswith(base_type_id)

    def validate_value(self, schema: Dict[str, Any], value: Any) -> ValidationResult:
        missing = [key for key in schema.get("required", []) if key not in value]
        return ValidationResult(not missing, [ValidationIssue(f"/{key}", "required", "required") for key in missing])


class FakeLifecycle:
    def __init__(self, extension_id: str, log: List[str], fail_mount: bool = False) -> None:
        self.extension_id = extension_id
        self.log = log
        self.fail_mount = fail_mount
        self.bridges: List[Any] = []
        self.boundaries: List[Any] = []

    async def mount(self, boundary: Any, bridge: Any) -> None:
        self.log.append(f"mount:start:{self.extension_id}")
        await asyncio.sleep(0)
        if self.fail_mount:
            raise RuntimeError("mount exploded")
        self.bridges.append(bridge)
        self.boundaries.append(boundary)
        self.log.append(f"mount:end:{self.extension_id}")

    async def unmount(self, boundary: Any) -> None:
        self.log.append(f"unmount:{self.extension_id}")


class RecordingLoader(LoaderHandler):
    """
    Loader producing FakeLifecycle objects and recording every call in ``log``.
    """

    def __init__(self, handled_base_type_id: str = ENTRY_TYPE_ID, priority: int = 0, log: Optional[List[str]] = None):
        super().__init__(handled_base_type_id, priority)
        self.log = log if log is not None else []
        self.load_calls: List[str] = []
        self.lifecycles: Dict[str, FakeLifecycle] = {}
        self.fail_load = False
        self.fail_mount = False

    async def load(self, entry: Entry) -> FakeLifecycle:
        self.load_calls.append(entry.id)
        self.log.append(f"load:{entry.id}")
        await asyncio.sleep(0)
        if self.fail_load:
            raise RuntimeError("bundle unavailable")
        lifecycle = FakeLifecycle(entry.id, self.log, fail_mount=self.fail_mount)
        self.lifecycles[entry.id] = lifecycle
        return lifecycle


class FakeContainerProvider(ContainerProvider):
    def __init__(self) -> None:
        self.containers: Dict[str, Dict[str, str]] = {}
        self.released: List[str] = []

    def get_container(self, extension_id: str) -> Dict[str, str]:
        return self.containers.setdefault(extension_id, {"slot": extension_id})

    def release_container(self, extension_id: str) -> None:
        self.released.append(extension_id)
        self.containers.pop(extension_id, None)


class RecordingHandler:
    """
    Action handler recording calls; can be told to fail or to block.
    """

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.calls: List[tuple] = []
        self.fail = fail
        self.delay = delay

    async def handle_action(self, action_type: str, payload: Optional[Dict[str, Any]]) -> None:
        self.calls.append((action_type, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"handler rejected {action_type}")


# -----------------------------------------------------------------------------
# FIXTURES
# -----------------------------------------------------------------------------


@pytest.fixture
def type_system() -> FakeTypeSystem:
    return FakeTypeSystem()


@pytest.fixture
def loader() -> RecordingLoader:
    return RecordingLoader()


@pytest.fixture
def errors() -> List[tuple]:
    """Sink collecting everything reported to the registry error handler."""
    return []


@pytest.fixture
def container_provider() -> FakeContainerProvider:
    return FakeContainerProvider()


@pytest_asyncio.fixture
async def registry(type_system, loader, errors):
    reg = Registry(
        RegistryConfig(
            type_system=type_system,
            on_error=lambda error, context: errors.append((error, context)),
            loader_handlers=[loader],
        )
    )
    yield reg
    if not reg.disposed:
        await reg.wait_for_lifecycle_triggers()
        reg.dispose()


@pytest.fixture
def widget_entry() -> Entry:
    return Entry(
        id=WIDGET_ENTRY,
        required_properties=[THEME],
        optional_properties=[LANGUAGE],
        actions=[NOTIFY],
        domain_actions=[ACTION_LOAD_EXT, ACTION_MOUNT_EXT, ACTION_UNMOUNT_EXT, REFRESH],
    )


@pytest.fixture
def make_entry(widget_entry):
    """Factory for widget-compatible entries with their own id, so loaded
    lifecycles can be told apart."""

    def _factory(name: str) -> Entry:
        return Entry(
            id=f"{ENTRY_TYPE_ID}acme.widgets.{name}.v1",
            required_properties=list(widget_entry.required_properties),
            optional_properties=list(widget_entry.optional_properties),
            actions=list(widget_entry.actions),
            domain_actions=list(widget_entry.domain_actions),
        )

    return _factory


@pytest.fixture
def sidebar_domain() -> Domain:
    """Toggle domain: declares the unmount action."""
    return Domain(
        id=SIDEBAR,
        shared_properties=[THEME, LANGUAGE],
        actions=[ACTION_LOAD_EXT, ACTION_MOUNT_EXT, ACTION_UNMOUNT_EXT, REFRESH],
        extensions_actions=[NOTIFY],
        default_action_timeout=1.0,
    )


@pytest.fixture
def screen_domain() -> Domain:
    """Swap domain: no unmount action."""
    return Domain(
        id=SCREEN,
        shared_properties=[THEME],
        actions=[ACTION_LOAD_EXT, ACTION_MOUNT_EXT],
        extensions_actions=[NOTIFY],
        default_action_timeout=1.0,
    )


@pytest.fixture
def make_extension():
    """Factory for extensions of the widget entry, sidebar domain by default."""

    def _factory(
        name: str, domain_id: str = SIDEBAR, package: str = "acme.sidebar", entry: str = WIDGET_ENTRY, **kwargs: Any
    ) -> Extension:
        return Extension(id=ext_id(name, package), domain=domain_id, entry=entry, **kwargs)

    return _factory


@pytest.fixture
def ids() -> SimpleNamespace:
    """Well-known ids used across tests."""
    return SimpleNamespace(
        sidebar=SIDEBAR,
        screen=SCREEN,
        widget_entry=WIDGET_ENTRY,
        theme=THEME,
        language=LANGUAGE,
        refresh=REFRESH,
        notify=NOTIFY,
        load=ACTION_LOAD_EXT,
        mount=ACTION_MOUNT_EXT,
        unmount=ACTION_UNMOUNT_EXT,
        ext=ext_id,
    )


@pytest_asyncio.fixture
async def sidebar(registry, sidebar_domain, widget_entry, container_provider):
    """Registry with the sidebar domain and widget entry registered."""
    registry.register_entry(widget_entry)
    registry.register_domain(sidebar_domain, container_provider)
    return registry


@pytest.fixture
def make_handler():
    """Factory for recording action handlers."""
    return RecordingHandler


@pytest.fixture
def make_loader():
    """Factory for recording loader handlers."""
    return RecordingLoader

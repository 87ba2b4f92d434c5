"""slotwise: extension/domain registry and action-routing runtime

This package composes independently built UI fragments ("extensions") into
named insertion points ("domains") of a host application.

Responsibilities:
    - Domain and extension registration with schema and contract validation
    - Routing of actions chains to domain and extension handlers
    - Lifecycle stage hooks (init, activated, deactivated, destroyed)
    - Load/mount/unmount state machine with pluggable loader handlers
    - Per-entity serialization of async operations
    - Parent/child bridges for shared properties and action forwarding

Interactions:
    - Client code through the Registry facade
    - A type system plugin for all structural validation
    - Loader handlers that acquire fragments
    - Container providers and isolation factories for mount targets
    - Logging system for diagnostics

Cross-cutting Concerns:
    Concurrency:
        - Single asyncio event loop
        - Operations on the same id never interleave
        - Fire-and-forget lifecycle work is tracked and awaitable

    Error Handling:
        - Structured error hierarchy rooted at SlotwiseError
        - Validation errors always reach the caller
        - Background failures go to an injected error handler

    Logging:
        - One logger per module under the ``slotwise`` namespace
        - DEBUG records for registrations, mounts and chain paths
"""

from slotwise.core.constants import (
    ACTION_LOAD_EXT,
    ACTION_MOUNT_EXT,
    ACTION_UNMOUNT_EXT,
    STAGE_ACTIVATED,
    STAGE_DEACTIVATED,
    STAGE_DESTROYED,
    STAGE_INIT,
)
from slotwise.core.errors import SlotwiseError
from slotwise.core.types import (
    Action,
    ActionsChain,
    ChainExecutionOptions,
    ChainResult,
    Domain,
    Entry,
    Extension,
    LifecycleHook,
    LoadState,
    MountState,
    SharedProperty,
)
from slotwise.extensions.bridge import ChildBridge, ParentBridge
from slotwise.extensions.loader import ContainerProvider, LoaderHandler
from slotwise.runtime.config import RegistryConfig
from slotwise.runtime.registry import Registry

__version__ = "0.1.0"

__all__ = [
    "ACTION_LOAD_EXT",
    "ACTION_MOUNT_EXT",
    "ACTION_UNMOUNT_EXT",
    "STAGE_ACTIVATED",
    "STAGE_DEACTIVATED",
    "STAGE_DESTROYED",
    "STAGE_INIT",
    "Action",
    "ActionsChain",
    "ChainExecutionOptions",
    "ChainResult",
    "ChildBridge",
    "ContainerProvider",
    "Domain",
    "Entry",
    "Extension",
    "LifecycleHook",
    "LoadState",
    "LoaderHandler",
    "MountState",
    "ParentBridge",
    "Registry",
    "RegistryConfig",
    "SharedProperty",
    "SlotwiseError",
]

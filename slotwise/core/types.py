# slotwise/core/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional

from slotwise.core.constants import (
    ACTION_LOAD_EXT,
    ACTION_MOUNT_EXT,
    ACTION_UNMOUNT_EXT,
    DEFAULT_ACTION_TIMEOUT,
    DEFAULT_LIFECYCLE_STAGES,
)


class LoadState(Enum):
    IDLE = auto()  # Registered, bundle not requested
    LOADING = auto()  # Loader handler in progress
    LOADED = auto()  # Lifecycle cached
    ERROR = auto()  # Last load attempt failed


class MountState(Enum):
    UNMOUNTED = auto()
    MOUNTING = auto()
    MOUNTED = auto()
    ERROR = auto()


class DomainSemantics(Enum):
    SWAP = auto()  # Mounting replaces the current occupant
    TOGGLE = auto()  # Extensions mount and unmount independently


class ActionKind(Enum):
    """
    Closed set of action categories a domain's lifecycle-action handler
    distinguishes. Every type id outside the built-in three maps to OTHER.
    """

    LOAD_EXTENSION = auto()
    MOUNT_EXTENSION = auto()
    UNMOUNT_EXTENSION = auto()
    OTHER = auto()

    @classmethod
    def from_type_id(cls, type_id: str) -> "ActionKind":
        return _ACTION_KINDS.get(type_id, cls.OTHER)


_ACTION_KINDS = {
    ACTION_LOAD_EXT: ActionKind.LOAD_EXTENSION,
    ACTION_MOUNT_EXT: ActionKind.MOUNT_EXTENSION,
    ACTION_UNMOUNT_EXT: ActionKind.UNMOUNT_EXTENSION,
}


@dataclass(frozen=True)
class LifecycleStage:
    id: str
    description: str = ""


@dataclass
class Action:
    """
    A routable message.

    :param type: Action type id.
    :param target: Domain or extension id the action is addressed to.
    :param payload: Opaque data handed to the target's handler.
    :param timeout: Per-action timeout in seconds, overriding the domain default.
    """

    type: str
    target: str
    payload: Optional[Dict[str, Any]] = None
    timeout: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ActionsChain:
    """
    An action plus the chain to run when it succeeds (``next``) or fails
    (``fallback``).
    """

    action: Action
    next: Optional["ActionsChain"] = None
    fallback: Optional["ActionsChain"] = None


@dataclass
class LifecycleHook:
    stage: str
    actions_chain: ActionsChain


@dataclass
class SharedProperty:
    id: str
    value: Any = None


@dataclass
class Presentation:
    label: str
    route: Optional[str] = None
    icon: Optional[str] = None
    order: Optional[int] = None


@dataclass
class Entry:
    """
    The communication contract a fragment promises to satisfy.

    :param required_properties: Shared properties the fragment cannot work without.
    :param optional_properties: Shared properties the fragment reads when present.
    :param actions: Action types the fragment may emit to its domain.
    :param domain_actions: Action types the fragment can receive from its domain.
    """

    id: str
    required_properties: List[str] = field(default_factory=list)
    optional_properties: List[str] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    domain_actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Domain:
    """
    A named insertion point extensions are mounted into.

    ``actions`` lists the action types the domain accepts, ``extensions_actions``
    the types its extensions may send to it. Declaring ``ACTION_UNMOUNT_EXT``
    in ``actions`` makes the domain a toggle domain, otherwise mounting swaps.
    """

    id: str
    shared_properties: List[str] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    extensions_actions: List[str] = field(default_factory=list)
    default_action_timeout: float = DEFAULT_ACTION_TIMEOUT
    lifecycle_stages: List[str] = field(default_factory=lambda: list(DEFAULT_LIFECYCLE_STAGES))
    extensions_lifecycle_stages: List[str] = field(default_factory=lambda: list(DEFAULT_LIFECYCLE_STAGES))
    extensions_type_id: Optional[str] = None
    ui_meta_schema: Optional[Dict[str, Any]] = None
    lifecycle: Optional[List[LifecycleHook]] = None

    @property
    def semantics(self) -> DomainSemantics:
        return DomainSemantics.TOGGLE if ACTION_UNMOUNT_EXT in self.actions else DomainSemantics.SWAP

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Extension:
    """
    A binding of an entry into a domain.
    """

    id: str
    domain: str
    entry: str
    lifecycle: Optional[List[LifecycleHook]] = None
    presentation: Optional[Presentation] = None
    ui_meta: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChainResult:
    """
    Outcome of executing an actions chain.

    :param completed: True when the chain ended on a successful action.
    :param path: Action types executed, in order, failed ones included.
    :param error: Message of the last unrecovered failure.
    :param timed_out: True when an action or the whole chain exceeded its timeout.
    :param execution_time: Wall time in seconds.
    """

    completed: bool
    path: List[str] = field(default_factory=list)
    error: Optional[str] = None
    timed_out: bool = False
    execution_time: Optional[float] = None


@dataclass
class ChainExecutionOptions:
    chain_timeout: Optional[float] = None

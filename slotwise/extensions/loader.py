# slotwise/extensions/loader.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from slotwise.core.types import Entry
    from slotwise.interfaces.plugin import TypeSystemPlugin
    from slotwise.interfaces.protocols import MountLifecycle


class LoaderHandler(ABC):
    """
    Strategy that knows how to turn an entry of some type family into a
    mountable lifecycle.

    :param handled_base_type_id: Base type whose descendants this handler loads.
    :param priority: Higher priorities are consulted first.
    :param type_system: When given, ``can_handle`` asks it for type ancestry;
        otherwise entry ids are matched by prefix.
    """

    def __init__(
        self,
        handled_base_type_id: str,
        priority: int = 0,
        type_system: Optional["TypeSystemPlugin"] = None,
    ) -> None:
        self.handled_base_type_id = handled_base_type_id
        self.priority = priority
        self._type_system = type_system

    def can_handle(self, entry_type_id: str) -> bool:
        if self._type_system is not None:
            return bool(self._type_system.is_type_of(entry_type_id, self.handled_base_type_id))
        return entry_type_id.startswith(self.handled_base_type_id)

    @abstractmethod
    async def load(self, entry: "Entry") -> "MountLifecycle":
        """
        Acquire the fragment for ``entry``.

        :return: A lifecycle exposing ``mount(boundary, bridge)`` and ``unmount(boundary)``.
        """
        raise NotImplementedError()


class ContainerProvider(ABC):
    """
    Supplies mount targets for a domain's extensions. The domain's lifecycle
    action handler is the only caller.
    """

    @abstractmethod
    def get_container(self, extension_id: str) -> Any:
        raise NotImplementedError()

    @abstractmethod
    def release_container(self, extension_id: str) -> None:
        raise NotImplementedError()


@dataclass
class IsolationBoundary:
    """
    Opaque isolation scope attached to one mount target.
    """

    container: Any
    attributes: Dict[str, Any] = field(default_factory=dict)


class IsolationBoundaryFactory(ABC):
    @abstractmethod
    def create_isolation_boundary(self, container: Any) -> Any:
        """
        Return the boundary for ``container``, creating it on first use.
        Calling this again for the same container returns the same boundary.
        """
        raise NotImplementedError()


class DefaultIsolationBoundaryFactory(IsolationBoundaryFactory):
    """
    Keeps one ``IsolationBoundary`` per container object, keyed by identity.
    """

    def __init__(self) -> None:
        self._boundaries: Dict[int, Tuple[Any, IsolationBoundary]] = {}

    def create_isolation_boundary(self, container: Any) -> IsolationBoundary:
        existing = self._boundaries.get(id(container))
        if existing is not None and existing[0] is container:
            return existing[1]
        boundary = IsolationBoundary(container)
        self._boundaries[id(container)] = (container, boundary)
        return boundary

    def release(self, container: Any) -> None:
        existing = self._boundaries.get(id(container))
        if existing is not None and existing[0] is container:
            del self._boundaries[id(container)]

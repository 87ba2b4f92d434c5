# slotwise/runtime/lifecycle_actions.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from slotwise.core.errors import ConfigurationError, MissingPayloadError
from slotwise.core.types import ActionKind, DomainSemantics
from slotwise.extensions.loader import ContainerProvider

logger = logging.getLogger(__name__)


class ExtensionLifecycleActionHandler:
    """
    Domain action handler installed for every registered domain. Handles the
    load/mount/unmount extension actions and ignores every other action type,
    which the mediator has already checked against the domain's actions.

    Mount behaviour depends on the domain's semantics: a swap domain unmounts
    its current occupant before mounting a different extension, a toggle domain
    mounts and unmounts extensions independently. This handler is the only
    caller of the domain's container provider.

    :param domain_id: Domain the handler is installed for.
    :param semantics: Swap or toggle.
    :param container_provider: Source of mount targets, may be None for
        domains that are never mounted into through actions.
    :param load: Loads an extension (serialized per id by the caller).
    :param mount: Mounts an extension into a container (serialized).
    :param unmount: Unmounts an extension (serialized).
    :param get_mounted: Returns the domain's currently mounted extension.
    """

    def __init__(
        self,
        domain_id: str,
        semantics: DomainSemantics,
        container_provider: Optional[ContainerProvider],
        load: Callable[[str], Awaitable[Any]],
        mount: Callable[[str, Any], Awaitable[Any]],
        unmount: Callable[[str], Awaitable[None]],
        get_mounted: Callable[[str], Optional[str]],
    ) -> None:
        self._domain_id = domain_id
        self._semantics = semantics
        self._container_provider = container_provider
        self._load = load
        self._mount = mount
        self._unmount = unmount
        self._get_mounted = get_mounted
        self._dispatch: Dict[ActionKind, Callable[[str], Awaitable[None]]] = {
            ActionKind.LOAD_EXTENSION: self._handle_load,
            ActionKind.MOUNT_EXTENSION: self._handle_mount,
            ActionKind.UNMOUNT_EXTENSION: self._handle_unmount,
        }

    @property
    def semantics(self) -> DomainSemantics:
        return self._semantics

    async def handle_action(self, action_type: str, payload: Optional[Dict[str, Any]]) -> None:
        """
        :raises MissingPayloadError: If a lifecycle action has no ``extension_id``.
        """
        operation = self._dispatch.get(ActionKind.from_type_id(action_type))
        if operation is None:
            return
        if not payload or not payload.get("extension_id"):
            raise MissingPayloadError(action_type)
        await operation(payload["extension_id"])

    async def _handle_load(self, extension_id: str) -> None:
        await self._load(extension_id)

    async def _handle_mount(self, extension_id: str) -> None:
        if self._semantics is DomainSemantics.SWAP:
            current = self._get_mounted(self._domain_id)
            if current is not None and current != extension_id:
                logger.debug("Swapping '%s' for '%s' in domain '%s'", current, extension_id, self._domain_id)
                await self._unmount(current)
                self._provider().release_container(current)
        container = self._provider().get_container(extension_id)
        await self._mount(extension_id, container)

    async def _handle_unmount(self, extension_id: str) -> None:
        await self._unmount(extension_id)
        self._provider().release_container(extension_id)

    def _provider(self) -> ContainerProvider:
        if self._container_provider is None:
            raise ConfigurationError(
                f"Domain '{self._domain_id}' has no container provider", {"domain_id": self._domain_id}
            )
        return self._container_provider

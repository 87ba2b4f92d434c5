# slotwise/runtime/lifecycle_manager.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from slotwise.core.errors import DomainNotRegisteredError, ExtensionNotRegisteredError
from slotwise.core.types import LifecycleHook
from slotwise.interfaces.protocols import ChainExecutor, ErrorSink
from slotwise.runtime.extension_manager import ExtensionManager

logger = logging.getLogger(__name__)


class LifecycleManager:
    """
    Runs the lifecycle hooks declared for a stage. Hooks of one stage run in
    declaration order, each chain settling before the next starts. A hook that
    raises is reported to the error sink and the remaining hooks still run.
    """

    def __init__(self, extensions: ExtensionManager, execute_chain: ChainExecutor, error_sink: ErrorSink) -> None:
        self._extensions = extensions
        self._execute_chain = execute_chain
        self._error_sink = error_sink

    async def trigger_lifecycle_stage(self, extension_id: str, stage_id: str) -> None:
        """
        :raises ExtensionNotRegisteredError: If the extension is unknown.
        """
        state = self._extensions.get_extension_state(extension_id)
        if state is None:
            raise ExtensionNotRegisteredError(extension_id)
        await self._run_hooks(state.extension.lifecycle, stage_id, {"extension_id": extension_id})

    async def trigger_domain_lifecycle_stage(self, domain_id: str, stage_id: str) -> None:
        """
        Trigger ``stage_id`` on every extension of the domain, in registration order.

        :raises DomainNotRegisteredError: If the domain is unknown.
        """
        state = self._extensions.get_domain_state(domain_id)
        if state is None:
            raise DomainNotRegisteredError(domain_id)
        for extension_id in list(state.extensions):
            if self._extensions.get_extension_state(extension_id) is None:
                continue
            await self.trigger_lifecycle_stage(extension_id, stage_id)

    async def trigger_domain_own_lifecycle_stage(self, domain_id: str, stage_id: str) -> None:
        """
        Trigger ``stage_id`` on the domain's own hooks, not its extensions'.

        :raises DomainNotRegisteredError: If the domain is unknown.
        """
        domain = self._extensions.get_domain(domain_id)
        if domain is None:
            raise DomainNotRegisteredError(domain_id)
        await self._run_hooks(domain.lifecycle, stage_id, {"domain_id": domain_id})

    async def _run_hooks(self, hooks: Optional[Iterable[LifecycleHook]], stage_id: str, owner: Dict[str, Any]) -> None:
        matching = [hook for hook in hooks or () if hook.stage == stage_id]
        if not matching:
            return
        logger.debug("Running %d hook(s) for stage '%s' on %s", len(matching), stage_id, owner)
        for index, hook in enumerate(matching):
            try:
                await self._execute_chain(hook.actions_chain)
            except Exception as e:
                context = {"operation": "lifecycle_hook", "stage_id": stage_id, "hook_index": index}
                context.update(owner)
                self._error_sink(e, context)

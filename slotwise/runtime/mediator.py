# slotwise/runtime/mediator.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from slotwise.core.constants import DEFAULT_CHAIN_TIMEOUT
from slotwise.core.errors import (
    ActionTimeoutError,
    ChainExecutionError,
    HandlerBusyError,
    SlotwiseError,
    UnsupportedDomainActionError,
)
from slotwise.core.types import Action, ActionsChain, ChainExecutionOptions, ChainResult, Domain
from slotwise.interfaces.plugin import TypeSystemPlugin
from slotwise.interfaces.protocols import ActionHandler

logger = logging.getLogger(__name__)


@dataclass
class _ExtensionHandlerEntry:
    handler: ActionHandler
    domain_id: str
    entry_id: str


class _ChainFailure(Exception):
    """
    Internal carrier for an action failure that ended a chain.
    """

    def __init__(self, error: BaseException, timed_out: bool) -> None:
        super().__init__(str(error))
        self.error = error
        self.timed_out = timed_out


class ActionsChainsMediator:
    """
    Routes actions to handlers registered for domains and extensions and walks
    chains: ``next`` after a success, ``fallback`` after a failure.

    ``execute_actions_chain`` never raises; the outcome is described by the
    returned ``ChainResult``. Timed-out handler work is not cancelled, only
    treated as failed.

    :param type_system: Used to validate each action before it is routed.
    :param get_domain: Looks up registered domains, for action support checks
        and default timeouts.
    :param chain_timeout: Upper bound in seconds for a whole chain.
    """

    def __init__(
        self,
        type_system: TypeSystemPlugin,
        get_domain: Callable[[str], Optional[Domain]],
        chain_timeout: float = DEFAULT_CHAIN_TIMEOUT,
    ) -> None:
        self._type_system = type_system
        self._get_domain = get_domain
        self.chain_timeout = chain_timeout
        self._domain_handlers: Dict[str, ActionHandler] = {}
        self._extension_handlers: Dict[str, _ExtensionHandlerEntry] = {}
        self._pending: Dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Handler registry
    # -------------------------------------------------------------------------

    def register_domain_handler(self, domain_id: str, handler: ActionHandler) -> None:
        self._domain_handlers[domain_id] = handler

    def unregister_domain_handler(self, domain_id: str, force: bool = False) -> None:
        """
        :raises HandlerBusyError: If actions for the domain are in flight and
            ``force`` is False.
        """
        self._check_idle(domain_id, force)
        self._domain_handlers.pop(domain_id, None)

    def register_extension_handler(
        self, extension_id: str, domain_id: str, entry_id: str, handler: ActionHandler
    ) -> None:
        self._extension_handlers[extension_id] = _ExtensionHandlerEntry(handler, domain_id, entry_id)

    def unregister_extension_handler(self, extension_id: str, force: bool = False) -> None:
        """
        :raises HandlerBusyError: If actions for the extension are in flight
            and ``force`` is False.
        """
        self._check_idle(extension_id, force)
        self._extension_handlers.pop(extension_id, None)

    def has_handler(self, target_id: str) -> bool:
        return target_id in self._domain_handlers or target_id in self._extension_handlers

    def pending_actions(self, target_id: str) -> int:
        return self._pending.get(target_id, 0)

    def clear(self) -> None:
        self._domain_handlers.clear()
        self._extension_handlers.clear()
        self._pending.clear()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def execute_actions_chain(
        self, chain: ActionsChain, options: Optional[ChainExecutionOptions] = None
    ) -> ChainResult:
        """
        Execute ``chain`` and describe the outcome.

        :param chain: Root of the chain.
        :param options: Overrides for the whole-chain timeout.
        :return: ``ChainResult`` with the executed action types in ``path``.
        """
        chain_timeout = self.chain_timeout
        if options is not None and options.chain_timeout is not None:
            chain_timeout = options.chain_timeout
        path: List[str] = []
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(self._execute_chain(chain, path), chain_timeout)
        except asyncio.TimeoutError:
            result = ChainResult(
                completed=False,
                path=list(path),
                error=f"Chain execution timed out after {chain_timeout}s",
                timed_out=True,
            )
        result.execution_time = time.monotonic() - started
        logger.debug("Chain finished completed=%s path=%s", result.completed, result.path)
        return result

    async def _execute_chain(self, chain: ActionsChain, path: List[str]) -> ChainResult:
        current: Optional[ActionsChain] = chain
        failure: Optional[_ChainFailure] = None
        while current is not None:
            path.append(current.action.type)
            try:
                await self._execute_action(current.action)
            except ActionTimeoutError as e:
                failure = _ChainFailure(e, timed_out=True)
                current = current.fallback
            except Exception as e:
                failure = _ChainFailure(e, timed_out=False)
                current = current.fallback
            else:
                failure = None
                current = current.next
        if failure is None:
            return ChainResult(completed=True, path=list(path))
        return ChainResult(
            completed=False,
            path=list(path),
            error=_message(failure.error),
            timed_out=failure.timed_out,
        )

    async def _execute_action(self, action: Action) -> None:
        self._validate_action(action)
        target_domain = self._get_domain(action.target)
        if target_domain is not None and action.type not in target_domain.actions:
            raise UnsupportedDomainActionError(action.type, action.target)

        handler, owner_domain_id = self._resolve(action.target)
        if handler is None:
            raise ChainExecutionError(
                f"No handler registered for target '{action.target}'", action.type, action.target
            )
        timeout = self._resolve_timeout(action, owner_domain_id)

        task = asyncio.ensure_future(handler.handle_action(action.type, action.payload))
        self._track(action.target, task)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            raise ActionTimeoutError(action.type, action.target, timeout) from None

    def _validate_action(self, action: Action) -> None:
        try:
            instance = action.to_dict()
            instance["id"] = action.type
            self._type_system.register(instance)
            result = self._type_system.validate_instance(action.type)
        except Exception as e:
            raise ChainExecutionError(
                f"Action '{action.type}' could not be validated: type resolution error: {e}",
                action.type,
                action.target,
            ) from e
        if not result.valid:
            listing = "; ".join(issue.message for issue in result.errors)
            raise ChainExecutionError(
                f"Action '{action.type}' failed validation: {listing}", action.type, action.target
            )

    def _resolve(self, target_id: str) -> Tuple[Optional[ActionHandler], Optional[str]]:
        handler = self._domain_handlers.get(target_id)
        if handler is not None:
            return handler, target_id
        entry = self._extension_handlers.get(target_id)
        if entry is not None:
            return entry.handler, entry.domain_id
        return None, None

    def _resolve_timeout(self, action: Action, owner_domain_id: Optional[str]) -> Optional[float]:
        if action.timeout is not None:
            return action.timeout
        if owner_domain_id is None:
            return None
        domain = self._get_domain(owner_domain_id)
        return domain.default_action_timeout if domain is not None else None

    def _track(self, target_id: str, task: asyncio.Future) -> None:
        self._pending[target_id] = self._pending.get(target_id, 0) + 1

        def settled(done: asyncio.Future) -> None:
            remaining = self._pending.get(target_id, 0) - 1
            if remaining > 0:
                self._pending[target_id] = remaining
            else:
                self._pending.pop(target_id, None)
            # Outcome may no longer have an awaiter after a timeout
            if not done.cancelled():
                done.exception()

        task.add_done_callback(settled)

    def _check_idle(self, target_id: str, force: bool) -> None:
        pending = self._pending.get(target_id, 0)
        if pending and not force:
            raise HandlerBusyError(target_id, pending)


def _message(error: BaseException) -> str:
    if isinstance(error, SlotwiseError):
        return error.message
    return str(error) or type(error).__name__

# slotwise/runtime/events.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class RegistryEvent(str, Enum):
    DOMAIN_REGISTERED = "domain_registered"
    DOMAIN_UNREGISTERED = "domain_unregistered"
    EXTENSION_REGISTERED = "extension_registered"
    EXTENSION_UNREGISTERED = "extension_unregistered"
    EXTENSION_LOADED = "extension_loaded"
    EXTENSION_MOUNTED = "extension_mounted"
    EXTENSION_UNMOUNTED = "extension_unmounted"


class EventEmitter:
    """
    Synchronous publish/subscribe for registry notifications. A failing
    listener is logged and does not stop the remaining listeners.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Subscribe ``listener`` to ``event``.

        :return: A callable that removes the subscription.
        """
        self._listeners.setdefault(_key(event), []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(_key(event))
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[_key(event)]

    def emit(self, event: str, data: Dict[str, Any]) -> None:
        for listener in list(self._listeners.get(_key(event), ())):
            try:
                listener(data)
            except Exception as e:
                logger.error("Error in listener for event '%s': %s", _key(event), e, exc_info=True)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(_key(event), ()))

    def clear(self) -> None:
        self._listeners.clear()


def _key(event: str) -> str:
    return event.value if isinstance(event, RegistryEvent) else event

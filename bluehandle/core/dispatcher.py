"""Translation of remote change events into cache writes and notifications."""

from __future__ import annotations

import logging
from typing import Any

from bluehandle.core.cache import PropertyCache
from bluehandle.core.errors import MalformedEventError
from bluehandle.core.properties import key_name
from bluehandle.core.signals import Callback, Signal

LOGGER = logging.getLogger(__name__)


class PropertyChangeDispatcher:
    """Applies ``(name, value)`` events to one handle's cache.

    Events are fire-and-forget: unknown names and malformed values are dropped
    and logged, never raised. Writes are unconditional, so the cache ends up
    holding whatever arrived last.
    """

    def __init__(self, cache: PropertyCache, owner: str = "") -> None:
        self.cache = cache
        self.owner = owner
        self.property_changed = Signal(f"{owner}.property_changed")
        self._signals = {name: Signal(f"{owner}.{name}") for name in cache.table.slots}

    def signal(self, name: str) -> Signal:
        try:
            return self._signals[key_name(name)]
        except KeyError:
            raise KeyError(f"Unknown property '{name}' for {self.cache.table.keys.__name__}") from None

    def observe(self, name: str, callback: Callback) -> Callback:
        return self.signal(name).connect(callback)

    def dispatch(self, name: str, value: Any) -> None:
        name = key_name(name)
        slot = self.cache.table.get(name)
        if slot is None:
            LOGGER.debug("Ignoring change of unknown property %s on %s", name, self.owner)
            return
        try:
            converted = slot.convert(value)
        except MalformedEventError as exc:
            LOGGER.warning("Dropping malformed %s event on %s: %s", name, self.owner, exc)
            return

        self.cache.store_event(name, converted)
        self._signals[name].emit(converted)
        self.property_changed.emit(name, converted)

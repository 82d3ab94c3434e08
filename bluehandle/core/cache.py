"""Thread-safe property cache for a single handle."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

from bluehandle.core.errors import MalformedEventError
from bluehandle.core.properties import PropertyTable, key_name

LOGGER = logging.getLogger(__name__)


class PropertyCache:
    """Last-known property values plus the bookkeeping for last-write-wins.

    Every event write bumps a sequence number and records it against the slot.
    A snapshot taken at sequence ``n`` only overwrites slots whose last event
    is not newer than ``n``, so an event that lands while a fetch is in
    flight is never clobbered by the older snapshot.
    """

    def __init__(self, table: PropertyTable, initial: Mapping[str, Any] | None = None) -> None:
        self.table = table
        self.lock = threading.RLock()
        self._values = table.defaults()
        self._seq = 0
        self._written_at: dict[str, int] = {}
        self.fetched = False
        for name, value in (initial or {}).items():
            self._values[name] = value

    def get(self, name: str) -> Any:
        name = key_name(name)
        with self.lock:
            return self._values[name]

    def mark(self) -> int:
        with self.lock:
            return self._seq

    def store_event(self, name: str, value: Any) -> None:
        name = key_name(name)
        with self.lock:
            self._seq += 1
            self._values[name] = value
            self._written_at[name] = self._seq

    def apply_snapshot(self, snapshot: Mapping[str, Any], *, since: int) -> None:
        with self.lock:
            for name in self.table.remote_only:
                if self._written_at.get(name, 0) > since:
                    continue
                slot = self.table.slots[name]
                if name not in snapshot:
                    self._values[name] = slot.default
                    continue
                try:
                    self._values[name] = slot.convert(snapshot[name])
                except MalformedEventError as exc:
                    LOGGER.warning("Ignoring fetched %s: %s", name, exc)
            self.fetched = True

    def snapshot(self) -> dict[str, Any]:
        with self.lock:
            return dict(self._values)

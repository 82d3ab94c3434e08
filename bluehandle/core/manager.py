"""Explicitly constructed context that owns adapters and the transport."""

from __future__ import annotations

import logging
import threading
from typing import Any

from bluehandle.core.adapter import Adapter
from bluehandle.core.config import Config, load_config
from bluehandle.core.errors import BluehandleError
from bluehandle.core.model import ObjectInfo, ObjectKind
from bluehandle.core.properties import AdapterProperty
from bluehandle.core.signals import Signal
from bluehandle.transports.base import Subscription, Transport

LOGGER = logging.getLogger(__name__)


def _adapter_fields(properties: dict[str, Any]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for key, argument in ((AdapterProperty.ADDRESS.value, "address"), (AdapterProperty.NAME.value, "name")):
        value = properties.get(key)
        if isinstance(value, str):
            fields[argument] = value
    return fields


class Manager:
    """Entry point to the daemon's adapters.

    Build one per process (or per test) and call ``release()`` when done, or
    use it as a context manager. Releasing is safe while adapter and device
    handles are still referenced elsewhere: they stay readable from cache but
    every remote operation on them becomes a no-op.
    """

    def __init__(self, transport: Transport, *, preferred_adapter: str | None = None) -> None:
        self.transport = transport
        self.preferred_adapter = preferred_adapter
        self.adapter_added = Signal("adapter_added")
        self.adapter_removed = Signal("adapter_removed")
        self.default_adapter_changed = Signal("default_adapter_changed")
        self.all_adapters_removed = Signal("all_adapters_removed")
        self._adapters: dict[str, Adapter] = {}
        self._default: str | None = None
        self._watch: Subscription | None = None
        self._released = False
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: Config | None = None) -> Manager:
        from bluehandle.transports.bluez import BlueZTransport

        config = config or load_config()
        transport = BlueZTransport(
            bus=config.bus,
            service=config.service,
            timeout_s=config.call_timeout_s,
        )
        return cls(transport, preferred_adapter=config.adapter)

    def __enter__(self) -> Manager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    @property
    def released(self) -> bool:
        return self._released

    def lookup_child(self, identity: str) -> str | None:
        if self._released:
            return None
        return self.transport.lookup(None, identity)

    def create_child(self, identity: str) -> str | None:
        if self._released:
            return None
        return self.transport.create(None, identity)

    def adapter(self, identity: str, **fields: str) -> Adapter:
        """Return the handle named or addressed by ``identity``, creating it unbound if new."""
        with self._lock:
            adapter = self._find_adapter(identity)
            if adapter is None:
                adapter = Adapter(identity, self, **fields)
                if self._released:
                    adapter._release()
                else:
                    self._adapters[identity] = adapter
            return adapter

    def list_adapters(self) -> list[Adapter]:
        if self._released:
            return []
        self._ensure_watching()
        try:
            listed = self.transport.list_adapters()
        except BluehandleError as exc:
            LOGGER.warning("Listing adapters failed: %s", exc)
            listed = []
        with self._lock:
            for info in listed:
                self.adapter(info.identity, **_adapter_fields(info.properties))
            if self._default not in self._adapters:
                self._default = self._pick_default()
            return [self._adapters[key] for key in sorted(self._adapters)]

    def default_adapter(self) -> Adapter | None:
        if self._default is None:
            self.list_adapters()
        with self._lock:
            if self._default is None:
                return None
            return self._adapters.get(self._default)

    def release(self) -> None:
        """Drop every adapter and device binding and close the transport."""
        with self._lock:
            if self._released:
                return
            self._released = True
            adapters = list(self._adapters.values())
            self._adapters.clear()
            self._default = None
            watch, self._watch = self._watch, None
        if watch is not None:
            watch.cancel()
        for adapter in adapters:
            adapter._release()
        try:
            self.transport.close()
        except BluehandleError as exc:
            LOGGER.warning("Closing transport failed: %s", exc)

    def _find_adapter(self, hint: str) -> Adapter | None:
        adapter = self._adapters.get(hint)
        if adapter is not None:
            return adapter
        for candidate in self._adapters.values():
            if candidate.address and candidate.address.upper() == hint.upper():
                return candidate
        return None

    def _pick_default(self) -> str | None:
        if self.preferred_adapter:
            for identity, adapter in self._adapters.items():
                if self.preferred_adapter in (identity, adapter.address):
                    return identity
        return min(self._adapters) if self._adapters else None

    def _ensure_watching(self) -> None:
        if self._watch is not None or self._released:
            return
        try:
            watch = self.transport.watch_objects(self._on_object_added, self._on_object_removed)
        except BluehandleError as exc:
            LOGGER.warning("Watching daemon objects failed: %s", exc)
            return
        with self._lock:
            if self._watch is None and not self._released:
                self._watch, watch = watch, None
        if watch is not None:
            watch.cancel()

    def _on_object_added(self, info: ObjectInfo) -> None:
        if info.kind is ObjectKind.DEVICE:
            adapter = self._adapter_for_ref(info.parent_ref)
            if adapter is not None:
                adapter.handle_object_added(info)
            return

        with self._lock:
            if self._released or info.identity in self._adapters:
                return
            adapter = self.adapter(info.identity, **_adapter_fields(info.properties))
            default_changed = self._default is None
            if default_changed:
                self._default = self._pick_default()
        self.adapter_added.emit(adapter)
        if default_changed:
            self.default_adapter_changed.emit(self._adapters.get(self._default))

    def _on_object_removed(self, info: ObjectInfo) -> None:
        if info.kind is ObjectKind.DEVICE:
            adapter = self._adapter_for_ref(info.parent_ref)
            if adapter is not None:
                adapter.handle_object_removed(info)
            return

        with self._lock:
            adapter = self._adapters.pop(info.identity, None)
            if adapter is None:
                return
            was_default = self._default == info.identity
            if was_default:
                self._default = self._pick_default()
            new_default = self._adapters.get(self._default) if self._default else None
            empty = not self._adapters
        adapter._release()
        self.adapter_removed.emit(adapter)
        if was_default:
            self.default_adapter_changed.emit(new_default)
        if empty:
            self.all_adapters_removed.emit()

    def _adapter_for_ref(self, ref: str | None) -> Adapter | None:
        if ref is None:
            return None
        with self._lock:
            for adapter in self._adapters.values():
                if adapter.ref == ref or ref.rsplit("/", 1)[-1] == adapter.identity:
                    return adapter
        return None

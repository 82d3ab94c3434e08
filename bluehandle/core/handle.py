"""Lazily bound remote object with a cached, change-notified property set."""

from __future__ import annotations

import logging
import weakref
from collections.abc import Mapping
from typing import Any, ClassVar, Protocol

from bluehandle.core.cache import PropertyCache
from bluehandle.core.dispatcher import PropertyChangeDispatcher
from bluehandle.core.errors import BluehandleError
from bluehandle.core.model import CallStatus
from bluehandle.core.properties import PropertyTable
from bluehandle.core.signals import Callback, Signal
from bluehandle.transports.base import Subscription, Transport

LOGGER = logging.getLogger(__name__)


class HandleParent(Protocol):
    """What a handle needs from the container that owns it."""

    transport: Transport

    def lookup_child(self, identity: str) -> str | None:
        ...

    def create_child(self, identity: str) -> str | None:
        ...


class RemoteHandle:
    """Local stand-in for one remote object, valid before it is bound.

    The handle binds on demand: the first remote-only read, write or
    pass-through operation resolves the remote object through the parent
    (lookup first, then creation) and subscribes to its change events. Remote
    failures never escape; reads fall back to cached values and writes report
    a ``CallStatus``.

    The parent is held weakly. Once the parent is gone or has released the
    handle, every remote operation is a no-op.
    """

    property_table: ClassVar[PropertyTable]

    def __init__(self, identity: str, parent: HandleParent, initial: Mapping[str, Any] | None = None) -> None:
        self._identity = identity
        self._parent = weakref.ref(parent)
        self._transport = parent.transport
        self._cache = PropertyCache(self.property_table, initial)
        self._dispatcher = PropertyChangeDispatcher(self._cache, owner=identity)
        self._ref: str | None = None
        self._subscription: Subscription | None = None
        self._bind_failed = False
        self._fetch_failed = False
        self._released = False

    def __repr__(self) -> str:
        state = "bound" if self._ref else "released" if self._released else "unbound"
        return f"<{type(self).__name__} {self._identity} {state}>"

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def ref(self) -> str | None:
        """Remote object reference, or ``None`` while unbound."""
        return self._ref

    @property
    def is_bound(self) -> bool:
        return self._ref is not None

    @property
    def is_released(self) -> bool:
        return self._released

    @property
    def properties_fetched(self) -> bool:
        return self._cache.fetched

    @property
    def property_changed(self) -> Signal:
        """Fires ``(name, value)`` for every recognised change event."""
        return self._dispatcher.property_changed

    def on_change(self, key: str, callback: Callback) -> Callback:
        """Call ``callback(value)`` whenever property ``key`` changes remotely."""
        return self._dispatcher.observe(key, callback)

    def ensure_bound(self) -> bool:
        """Bind to the remote object if needed; return whether it is bound."""
        self._fetch_failed = False
        if self._ref is not None:
            return True
        if self._released:
            return False
        parent = self._parent()
        if parent is None:
            LOGGER.info("Cannot bind %s: owner is gone", self._identity)
            return False

        ref = self._resolve(parent)
        if ref is None:
            self._bind_failed = True
            LOGGER.info("Binding unavailable for %s", self._identity)
            return False

        try:
            subscription = self._transport.subscribe(ref, self._dispatcher.dispatch)
        except BluehandleError as exc:
            self._bind_failed = True
            LOGGER.warning("Could not subscribe to %s (%s): %s", self._identity, ref, exc)
            return False

        with self._cache.lock:
            if self._ref is None and not self._released:
                self._ref = ref
                self._subscription = subscription
                self._bind_failed = False
                subscription = None
        if subscription is not None:
            subscription.cancel()
        if self._ref is not None:
            LOGGER.debug("Bound %s to %s", self._identity, self._ref)
        return self._ref is not None

    def fetch_remote_only_properties(self) -> bool:
        """Fill the remote-only cache slots from one property snapshot."""
        if not self.ensure_bound():
            return False
        ref = self._ref
        if ref is None:
            return False
        since = self._cache.mark()
        try:
            snapshot = self._transport.get_properties(ref)
        except BluehandleError as exc:
            LOGGER.warning("Fetching properties of %s failed: %s", self._identity, exc)
            self._fetch_failed = True
            return False
        self._cache.apply_snapshot(snapshot, since=since)
        self._fetch_failed = False
        return True

    def _resolve(self, parent: HandleParent) -> str | None:
        for step in (parent.lookup_child, parent.create_child):
            try:
                ref = step(self._identity)
            except BluehandleError as exc:
                LOGGER.warning("%s for %s failed: %s", step.__name__, self._identity, exc)
                continue
            if ref:
                return ref
        return None

    def _forget_failures(self) -> None:
        """Let the next implicit read bind and fetch again."""
        self._bind_failed = False
        self._fetch_failed = False

    def _cached(self, key: str) -> Any:
        return self._cache.get(key)

    def _fetched(self, key: str) -> Any:
        if not (self._cache.fetched or self._bind_failed or self._fetch_failed):
            self.fetch_remote_only_properties()
        return self._cache.get(key)

    def _write(self, key: str, value: Any) -> CallStatus:
        # The cache is left alone; the change event is the only writer.
        if not self.ensure_bound():
            return CallStatus.UNBOUND
        try:
            self._transport.set_property(self._ref, key, value)
        except BluehandleError as exc:
            LOGGER.warning("Setting %s on %s failed: %s", key, self._identity, exc)
            return CallStatus.FAILED
        return CallStatus.OK

    def _invoke(self, operation: str, *args: Any, bind: bool = True) -> tuple[CallStatus, Any]:
        if bind:
            if not self.ensure_bound():
                return CallStatus.UNBOUND, None
        elif self._ref is None:
            return CallStatus.UNBOUND, None
        try:
            result = self._transport.invoke(self._ref, operation, *args)
        except BluehandleError as exc:
            LOGGER.warning("%s on %s failed: %s", operation, self._identity, exc)
            return CallStatus.FAILED, None
        return CallStatus.OK, result

    def _release(self) -> None:
        with self._cache.lock:
            self._released = True
            self._ref = None
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            try:
                subscription.cancel()
            except BluehandleError as exc:
                LOGGER.debug("Cancelling subscription of %s failed: %s", self._identity, exc)

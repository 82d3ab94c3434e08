"""BlueZ transport over the D-Bus system bus, built on dbus-next.

The asyncio connection lives on a private event loop thread. Public methods
block the calling thread until the reply arrives (or the configured timeout
expires); signal callbacks run on the loop thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Coroutine
from typing import Any

from dbus_next import BusType, Message, MessageType, Variant
from dbus_next.aio import MessageBus

from bluehandle.core.errors import (
    RemoteCallFailedError,
    TransportConnectError,
    TransportError,
    TransportTimeoutError,
)
from bluehandle.core.model import ObjectInfo, ObjectKind
from bluehandle.transports.base import ObjectCallback, PropertyCallback

LOGGER = logging.getLogger(__name__)

BLUEZ_SERVICE = "org.bluez"
ADAPTER_IFACE = "org.bluez.Adapter1"
DEVICE_IFACE = "org.bluez.Device1"
GATT_SERVICE_IFACE = "org.bluez.GattService1"
PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"
OBJECT_MANAGER_IFACE = "org.freedesktop.DBus.ObjectManager"
DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"

# operation -> (interface, signature)
_OPERATIONS: dict[str, tuple[str, str]] = {
    "Connect": (DEVICE_IFACE, ""),
    "Disconnect": (DEVICE_IFACE, ""),
    "Pair": (DEVICE_IFACE, ""),
    "CancelPairing": (DEVICE_IFACE, ""),
    "ConnectProfile": (DEVICE_IFACE, "s"),
    "DisconnectProfile": (DEVICE_IFACE, "s"),
    "StartDiscovery": (ADAPTER_IFACE, ""),
    "StopDiscovery": (ADAPTER_IFACE, ""),
    "RemoveDevice": (ADAPTER_IFACE, "o"),
}


def unwrap(value: Any) -> Any:
    """Strip dbus-next ``Variant`` wrappers recursively."""
    if isinstance(value, Variant):
        return unwrap(value.value)
    if isinstance(value, dict):
        return {key: unwrap(item) for key, item in value.items()}
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    return value


def variant_for(value: Any) -> Variant:
    if isinstance(value, bool):
        return Variant("b", value)
    if isinstance(value, int):
        return Variant("u", value)
    if isinstance(value, str):
        return Variant("s", value)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return Variant("as", list(value))
    raise TypeError(f"No D-Bus signature known for {type(value).__name__}")


def address_from_path(path: str) -> str:
    leaf = path.rsplit("/", 1)[-1]
    if not leaf.startswith("dev_"):
        return ""
    return leaf[len("dev_"):].replace("_", ":").upper()


def object_info(path: str, interfaces: dict[str, Any]) -> ObjectInfo | None:
    """Build an ``ObjectInfo`` from one ``GetManagedObjects`` entry."""
    if ADAPTER_IFACE in interfaces:
        properties = unwrap(interfaces[ADAPTER_IFACE])
        return ObjectInfo(
            ref=path,
            kind=ObjectKind.ADAPTER,
            identity=path.rsplit("/", 1)[-1],
            properties=properties,
        )
    if DEVICE_IFACE in interfaces:
        properties = unwrap(interfaces[DEVICE_IFACE])
        address = properties.get("Address") or address_from_path(path)
        return ObjectInfo(
            ref=path,
            kind=ObjectKind.DEVICE,
            identity=str(address).upper(),
            parent_ref=properties.get("Adapter") or path.rsplit("/", 1)[0],
            properties=properties,
        )
    return None


def removed_info(path: str, interfaces: list[str]) -> ObjectInfo | None:
    if ADAPTER_IFACE in interfaces:
        return ObjectInfo(ref=path, kind=ObjectKind.ADAPTER, identity=path.rsplit("/", 1)[-1])
    if DEVICE_IFACE in interfaces:
        return ObjectInfo(
            ref=path,
            kind=ObjectKind.DEVICE,
            identity=address_from_path(path),
            parent_ref=path.rsplit("/", 1)[0],
        )
    return None


class _Subscription:
    def __init__(self, registry: list[Any], entry: Any, lock: threading.Lock) -> None:
        self._registry = registry
        self._entry = entry
        self._lock = lock

    def cancel(self) -> None:
        with self._lock:
            if self._entry in self._registry:
                self._registry.remove(self._entry)


class BlueZTransport:
    def __init__(
        self,
        *,
        bus: str = "system",
        service: str = BLUEZ_SERVICE,
        timeout_s: float | None = 25.0,
    ) -> None:
        self.bus_type = BusType.SESSION if bus == "session" else BusType.SYSTEM
        self.service = service
        self.timeout_s = timeout_s
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._bus: MessageBus | None = None
        self._connect_lock = threading.Lock()
        self._registry_lock = threading.Lock()
        self._property_callbacks: dict[str, list[PropertyCallback]] = {}
        self._watchers: list[tuple[ObjectCallback, ObjectCallback]] = []

    def list_adapters(self) -> list[ObjectInfo]:
        return [info for info in self._managed_objects() if info.kind is ObjectKind.ADAPTER]

    def list_devices(self, adapter_ref: str) -> list[ObjectInfo]:
        return [
            info
            for info in self._managed_objects()
            if info.kind is ObjectKind.DEVICE and info.parent_ref == adapter_ref
        ]

    def lookup(self, parent_ref: str | None, identity: str) -> str | None:
        wanted = identity.upper()
        for info in self._managed_objects():
            if parent_ref is None and info.kind is ObjectKind.ADAPTER:
                address = str(info.properties.get("Address", "")).upper()
                if identity in (info.identity, info.ref) or address == wanted:
                    return info.ref
            elif info.kind is ObjectKind.DEVICE and info.parent_ref == parent_ref:
                if info.identity == wanted:
                    return info.ref
        return None

    def create(self, parent_ref: str | None, identity: str) -> str | None:
        if parent_ref is None:
            return None
        body = self._call(
            parent_ref,
            ADAPTER_IFACE,
            "ConnectDevice",
            "a{sv}",
            [{"Address": Variant("s", identity.upper())}],
        )
        return body[0] if body else None

    def get_properties(self, ref: str) -> dict[str, Any]:
        body = self._call(ref, PROPERTIES_IFACE, "GetAll", "s", [self._interface_for(ref)])
        return unwrap(body[0]) if body else {}

    def set_property(self, ref: str, name: str, value: Any) -> None:
        try:
            variant = variant_for(value)
        except TypeError as exc:
            raise RemoteCallFailedError(f"Cannot set {name} on {ref}: {exc}") from exc
        self._call(ref, PROPERTIES_IFACE, "Set", "ssv", [self._interface_for(ref), name, variant])

    def subscribe(self, ref: str, callback: PropertyCallback) -> _Subscription:
        self._ensure_connected()
        with self._registry_lock:
            callbacks = self._property_callbacks.setdefault(ref, [])
            callbacks.append(callback)
        return _Subscription(callbacks, callback, self._registry_lock)

    def invoke(self, ref: str, operation: str, *args: Any) -> Any:
        if operation == "DiscoverServices":
            return self._discover_services(ref, str(args[0]) if args else "")
        if operation == "CancelDiscovery":
            # Service discovery completes inside _discover_services.
            return None
        try:
            interface, signature = _OPERATIONS[operation]
        except KeyError:
            raise RemoteCallFailedError(f"Unsupported operation '{operation}'") from None
        body = self._call(ref, interface, operation, signature, list(args))
        return unwrap(body[0]) if body else None

    def watch_objects(self, on_added: ObjectCallback, on_removed: ObjectCallback) -> _Subscription:
        self._ensure_connected()
        entry = (on_added, on_removed)
        with self._registry_lock:
            self._watchers.append(entry)
        return _Subscription(self._watchers, entry, self._registry_lock)

    def close(self) -> None:
        with self._connect_lock:
            loop, bus, thread = self._loop, self._bus, self._thread
            self._loop = self._bus = self._thread = None
        if loop is None:
            return
        if bus is not None:
            loop.call_soon_threadsafe(bus.disconnect)
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5.0)
        if not loop.is_running():
            loop.close()
        with self._registry_lock:
            self._property_callbacks.clear()
            self._watchers.clear()

    def _interface_for(self, ref: str) -> str:
        return DEVICE_IFACE if address_from_path(ref) else ADAPTER_IFACE

    def _discover_services(self, ref: str, pattern: str) -> dict[int, str]:
        needle = pattern.lower()
        records: dict[int, str] = {}
        body = self._call("/", OBJECT_MANAGER_IFACE, "GetManagedObjects")
        objects = body[0] if body else {}
        services = sorted(
            (path, interfaces[GATT_SERVICE_IFACE])
            for path, interfaces in objects.items()
            if path.startswith(ref + "/") and GATT_SERVICE_IFACE in interfaces
        )
        for index, (_, raw) in enumerate(services):
            properties = unwrap(raw)
            uuid = str(properties.get("UUID", ""))
            if needle and needle not in uuid.lower():
                continue
            handle = properties.get("Handle", index)
            records[int(handle)] = uuid
        return records

    def _managed_objects(self) -> list[ObjectInfo]:
        body = self._call("/", OBJECT_MANAGER_IFACE, "GetManagedObjects")
        objects = body[0] if body else {}
        infos = []
        for path in sorted(objects):
            info = object_info(path, objects[path])
            if info is not None:
                infos.append(info)
        return infos

    def _ensure_connected(self) -> tuple[asyncio.AbstractEventLoop, MessageBus]:
        with self._connect_lock:
            if self._loop is not None and self._bus is not None:
                return self._loop, self._bus

            loop = asyncio.new_event_loop()
            thread = threading.Thread(target=loop.run_forever, name="bluehandle-dbus", daemon=True)
            thread.start()
            try:
                bus = self._wait(loop, MessageBus(bus_type=self.bus_type).connect())
            except Exception as exc:
                loop.call_soon_threadsafe(loop.stop)
                thread.join(timeout=5.0)
                loop.close()
                raise TransportConnectError(f"Could not connect to the D-Bus {self.bus_type.name.lower()} bus: {exc}") from exc

            bus.add_message_handler(self._on_message)
            for rule in (
                f"type='signal',sender='{self.service}',interface='{PROPERTIES_IFACE}',member='PropertiesChanged'",
                f"type='signal',sender='{self.service}',interface='{OBJECT_MANAGER_IFACE}'",
            ):
                reply = self._wait(
                    loop,
                    bus.call(
                        Message(
                            destination=DBUS_SERVICE,
                            path=DBUS_PATH,
                            interface=DBUS_SERVICE,
                            member="AddMatch",
                            signature="s",
                            body=[rule],
                        )
                    ),
                )
                if reply.message_type == MessageType.ERROR:
                    LOGGER.warning("AddMatch %s rejected: %s", rule, reply.error_name)

            self._loop, self._bus, self._thread = loop, bus, thread
            return loop, bus

    def _wait(self, loop: asyncio.AbstractEventLoop, coro: Coroutine[Any, Any, Any]) -> Any:
        if threading.current_thread() is self._thread:
            # Blocking here would starve the loop that has to answer.
            coro.close()
            raise TransportError("Blocking D-Bus call issued from the transport event loop")
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return future.result(self.timeout_s)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise TransportTimeoutError(f"D-Bus call timed out after {self.timeout_s}s") from exc

    def _call(
        self,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: list[Any] | None = None,
    ) -> list[Any]:
        loop, bus = self._ensure_connected()
        message = Message(
            destination=self.service,
            path=path,
            interface=interface,
            member=member,
            signature=signature,
            body=body or [],
        )
        reply = self._wait(loop, bus.call(message))
        if reply.message_type == MessageType.ERROR:
            detail = reply.body[0] if reply.body else ""
            raise RemoteCallFailedError(f"{interface}.{member} on {path} failed: {reply.error_name} {detail}".strip())
        return reply.body

    def _on_message(self, message: Message) -> None:
        if message.message_type != MessageType.SIGNAL:
            return None
        try:
            if message.interface == PROPERTIES_IFACE and message.member == "PropertiesChanged":
                self._deliver_properties(message)
            elif message.interface == OBJECT_MANAGER_IFACE and message.member == "InterfacesAdded":
                path, interfaces = message.body
                info = object_info(path, interfaces)
                if info is not None:
                    for on_added, _ in self._current_watchers():
                        on_added(info)
            elif message.interface == OBJECT_MANAGER_IFACE and message.member == "InterfacesRemoved":
                path, interfaces = message.body
                info = removed_info(path, interfaces)
                if info is not None:
                    for _, on_removed in self._current_watchers():
                        on_removed(info)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Dropping malformed %s signal from %s: %s", message.member, message.path, exc)
        return None

    def _deliver_properties(self, message: Message) -> None:
        interface, changed, _invalidated = message.body
        if interface not in (ADAPTER_IFACE, DEVICE_IFACE):
            return
        with self._registry_lock:
            callbacks = list(self._property_callbacks.get(message.path, ()))
        for name, value in changed.items():
            for callback in callbacks:
                callback(name, unwrap(value))

    def _current_watchers(self) -> list[tuple[ObjectCallback, ObjectCallback]]:
        with self._registry_lock:
            return list(self._watchers)

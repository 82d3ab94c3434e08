"""Adapter handle and owner of device handles."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from bluehandle.core.device import Device
from bluehandle.core.errors import BluehandleError
from bluehandle.core.handle import RemoteHandle
from bluehandle.core.model import CallStatus, ObjectInfo
from bluehandle.core.properties import ADAPTER_PROPERTIES, AdapterProperty, DeviceProperty
from bluehandle.core.signals import Signal

if TYPE_CHECKING:
    from bluehandle.core.manager import Manager

LOGGER = logging.getLogger(__name__)

_DEVICE_FIELDS = {
    DeviceProperty.ALIAS.value: "alias",
    DeviceProperty.CLASS.value: "device_class",
    DeviceProperty.ICON.value: "icon",
    DeviceProperty.LEGACY_PAIRING.value: "legacy_pairing",
    DeviceProperty.NAME.value: "name",
    DeviceProperty.PAIRED.value: "paired",
}


def _device_fields(properties: dict[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, argument in _DEVICE_FIELDS.items():
        if key not in properties:
            continue
        slot = Device.property_table.slots[key]
        try:
            fields[argument] = slot.convert(properties[key])
        except BluehandleError as exc:
            LOGGER.warning("Ignoring listed %s: %s", key, exc)
    return fields


class Adapter(RemoteHandle):
    """A local Bluetooth adapter, identified by its name (``hci0``).

    The adapter owns the device handles created through it and is the lookup
    and creation capability those devices bind through. Releasing the adapter
    releases every device it owns.
    """

    property_table = ADAPTER_PROPERTIES

    def __init__(self, identity: str, manager: Manager, *, address: str = "", name: str = "") -> None:
        super().__init__(
            identity,
            manager,
            {AdapterProperty.ADDRESS.value: address, AdapterProperty.NAME.value: name},
        )
        self.transport = manager.transport
        self.device_added = Signal(f"{identity}.device_added")
        self.device_removed = Signal(f"{identity}.device_removed")
        self._devices: dict[str, Device] = {}
        self._devices_lock = threading.Lock()

    @property
    def manager(self) -> Manager | None:
        return self._parent()

    @property
    def address(self) -> str:
        return self._cached(AdapterProperty.ADDRESS)

    @property
    def name(self) -> str:
        return self._cached(AdapterProperty.NAME)

    @property
    def alias(self) -> str:
        return self._fetched(AdapterProperty.ALIAS)

    @property
    def device_class(self) -> int:
        return self._fetched(AdapterProperty.CLASS)

    @property
    def powered(self) -> bool:
        return self._fetched(AdapterProperty.POWERED)

    @property
    def discoverable(self) -> bool:
        return self._fetched(AdapterProperty.DISCOVERABLE)

    @property
    def pairable(self) -> bool:
        return self._fetched(AdapterProperty.PAIRABLE)

    @property
    def discovering(self) -> bool:
        return self._fetched(AdapterProperty.DISCOVERING)

    @property
    def uuids(self) -> tuple[str, ...]:
        return self._fetched(AdapterProperty.UUIDS)

    def set_alias(self, alias: str) -> CallStatus:
        return self._write(AdapterProperty.ALIAS.value, alias)

    def set_powered(self, powered: bool) -> CallStatus:
        return self._write(AdapterProperty.POWERED.value, bool(powered))

    def set_discoverable(self, discoverable: bool) -> CallStatus:
        return self._write(AdapterProperty.DISCOVERABLE.value, bool(discoverable))

    def set_pairable(self, pairable: bool) -> CallStatus:
        return self._write(AdapterProperty.PAIRABLE.value, bool(pairable))

    def start_discovery(self) -> CallStatus:
        status, _ = self._invoke("StartDiscovery")
        return status

    def stop_discovery(self) -> CallStatus:
        status, _ = self._invoke("StopDiscovery", bind=False)
        return status

    def remove_device(self, device: Device) -> CallStatus:
        if not self.ensure_bound():
            return CallStatus.UNBOUND
        ref = device.ref
        if ref is None:
            try:
                ref = self.find_device(device.address)
            except BluehandleError as exc:
                LOGGER.warning("Looking up %s failed: %s", device.address, exc)
                return CallStatus.FAILED
        if ref is None:
            return CallStatus.FAILED
        status, _ = self._invoke("RemoveDevice", ref)
        return status

    def find_device(self, address: str) -> str | None:
        if not self.ensure_bound():
            return None
        return self.transport.lookup(self._ref, address.upper())

    def create_device(self, address: str) -> str | None:
        if not self.ensure_bound():
            return None
        return self.transport.create(self._ref, address.upper())

    lookup_child = find_device
    create_child = create_device

    def device(self, address: str, **fields: Any) -> Device:
        """Return the handle for ``address``, creating it unbound if new."""
        key = address.upper()
        with self._devices_lock:
            device = self._devices.get(key)
            if device is None:
                device = Device(key, self, **fields)
                self._devices[key] = device
        return device

    def list_devices(self) -> list[Device]:
        """Known devices, refreshed from the daemon when it is reachable."""
        if self.ensure_bound():
            try:
                listed = self.transport.list_devices(self._ref)
            except BluehandleError as exc:
                LOGGER.warning("Listing devices of %s failed: %s", self.identity, exc)
            else:
                for info in listed:
                    self.adopt(info)
        with self._devices_lock:
            return sorted(self._devices.values(), key=lambda d: d.address)

    def adopt(self, info: ObjectInfo) -> tuple[Device, bool]:
        """Create or return the handle for a listed device; report if it is new."""
        key = info.identity.upper()
        with self._devices_lock:
            existing = self._devices.get(key)
            if existing is not None:
                existing._forget_failures()
                return existing, False
            device = Device(key, self, **_device_fields(info.properties))
            self._devices[key] = device
        return device, True

    def handle_object_added(self, info: ObjectInfo) -> None:
        device, created = self.adopt(info)
        if created:
            self.device_added.emit(device)

    def handle_object_removed(self, info: ObjectInfo) -> None:
        key = info.identity.upper()
        with self._devices_lock:
            device = self._devices.pop(key, None)
        if device is None:
            return
        device._release()
        self.device_removed.emit(device)

    def _release(self) -> None:
        with self._devices_lock:
            devices = list(self._devices.values())
            self._devices.clear()
        for device in devices:
            device._release()
        super()._release()

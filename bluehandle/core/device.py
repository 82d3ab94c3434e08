"""Device handle."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bluehandle.core.handle import RemoteHandle
from bluehandle.core.model import CallStatus
from bluehandle.core.properties import DEVICE_PROPERTIES, DeviceProperty

if TYPE_CHECKING:
    from bluehandle.core.adapter import Adapter


class Device(RemoteHandle):
    """A remote Bluetooth device, identified by its hardware address.

    ``name``, ``alias``, ``icon``, ``device_class``, ``paired`` and
    ``legacy_pairing`` come from the listing that created the handle and are
    served without touching the bus. ``connected``, ``trusted``, ``blocked``
    and ``uuids`` are fetched in one round-trip on first read and then kept
    current by change events.
    """

    property_table = DEVICE_PROPERTIES

    def __init__(
        self,
        address: str,
        adapter: Adapter,
        *,
        alias: str = "",
        device_class: int = 0,
        icon: str = "",
        legacy_pairing: bool = False,
        name: str = "",
        paired: bool = False,
    ) -> None:
        super().__init__(
            address.upper(),
            adapter,
            {
                DeviceProperty.ALIAS.value: alias,
                DeviceProperty.CLASS.value: device_class,
                DeviceProperty.ICON.value: icon,
                DeviceProperty.LEGACY_PAIRING.value: legacy_pairing,
                DeviceProperty.NAME.value: name,
                DeviceProperty.PAIRED.value: paired,
            },
        )

    @property
    def adapter(self) -> Adapter | None:
        return self._parent()

    @property
    def address(self) -> str:
        return self.identity

    @property
    def name(self) -> str:
        return self._cached(DeviceProperty.NAME)

    @property
    def alias(self) -> str:
        return self._cached(DeviceProperty.ALIAS)

    @property
    def icon(self) -> str:
        return self._cached(DeviceProperty.ICON)

    @property
    def device_class(self) -> int:
        return self._cached(DeviceProperty.CLASS)

    @property
    def paired(self) -> bool:
        return self._cached(DeviceProperty.PAIRED)

    @property
    def legacy_pairing(self) -> bool:
        return self._cached(DeviceProperty.LEGACY_PAIRING)

    @property
    def connected(self) -> bool:
        return self._fetched(DeviceProperty.CONNECTED)

    @property
    def trusted(self) -> bool:
        return self._fetched(DeviceProperty.TRUSTED)

    @property
    def blocked(self) -> bool:
        return self._fetched(DeviceProperty.BLOCKED)

    @property
    def uuids(self) -> tuple[str, ...]:
        return self._fetched(DeviceProperty.UUIDS)

    def register(self) -> bool:
        return self.ensure_bound()

    def set_trusted(self, trusted: bool) -> CallStatus:
        return self._write(DeviceProperty.TRUSTED.value, bool(trusted))

    def set_blocked(self, blocked: bool) -> CallStatus:
        return self._write(DeviceProperty.BLOCKED.value, bool(blocked))

    def set_alias(self, alias: str) -> CallStatus:
        return self._write(DeviceProperty.ALIAS.value, alias)

    def discover_services(self, pattern: str = "") -> dict[int, str]:
        """Return service records keyed by handle; empty when unreachable."""
        status, records = self._invoke("DiscoverServices", pattern)
        if not status or not isinstance(records, dict):
            return {}
        return records

    def cancel_discovery(self) -> CallStatus:
        status, _ = self._invoke("CancelDiscovery", bind=False)
        return status

    def disconnect(self) -> CallStatus:
        status, _ = self._invoke("Disconnect", bind=False)
        return status

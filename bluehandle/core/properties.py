"""Property keys and typed cache slots for adapters and devices.

Each entity declares its property keys as a ``str`` enum whose values are the
daemon's property names. ``build_table`` binds every key to exactly one
``Slot`` and refuses to build an incomplete table, so an entity cannot be
imported with a key that events or snapshots would silently skip.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from bluehandle.core.errors import MalformedEventError

Converter = Callable[[Any], Any]


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise MalformedEventError(f"expected boolean, got {type(value).__name__}")


def as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    raise MalformedEventError(f"expected string, got {type(value).__name__}")


def as_uint32(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 0xFFFFFFFF:
        return value
    raise MalformedEventError(f"expected uint32, got {value!r}")


def as_str_tuple(value: Any) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise MalformedEventError(f"expected list of strings, got {value!r}")


@dataclass(frozen=True)
class Slot:
    convert: Converter
    default: Any
    remote_only: bool = False


class DeviceProperty(str, Enum):
    ALIAS = "Alias"
    CLASS = "Class"
    ICON = "Icon"
    LEGACY_PAIRING = "LegacyPairing"
    NAME = "Name"
    PAIRED = "Paired"
    CONNECTED = "Connected"
    TRUSTED = "Trusted"
    BLOCKED = "Blocked"
    UUIDS = "UUIDs"


class AdapterProperty(str, Enum):
    ADDRESS = "Address"
    NAME = "Name"
    ALIAS = "Alias"
    CLASS = "Class"
    POWERED = "Powered"
    DISCOVERABLE = "Discoverable"
    PAIRABLE = "Pairable"
    DISCOVERING = "Discovering"
    UUIDS = "UUIDs"


@dataclass(frozen=True)
class PropertyTable:
    keys: type[Enum]
    slots: Mapping[str, Slot]

    def get(self, name: str) -> Slot | None:
        return self.slots.get(key_name(name))

    def defaults(self) -> dict[str, Any]:
        return {name: slot.default for name, slot in self.slots.items()}

    @property
    def remote_only(self) -> tuple[str, ...]:
        return tuple(name for name, slot in self.slots.items() if slot.remote_only)


def build_table(keys: type[Enum], slots: Mapping[Enum, Slot]) -> PropertyTable:
    missing = [member.name for member in keys if member not in slots]
    extra = [str(key) for key in slots if not isinstance(key, keys)]
    if missing or extra:
        raise TypeError(
            f"Incomplete property table for {keys.__name__}: missing={missing} extra={extra}"
        )
    return PropertyTable(keys=keys, slots={key.value: slot for key, slot in slots.items()})


DEVICE_PROPERTIES = build_table(
    DeviceProperty,
    {
        DeviceProperty.ALIAS: Slot(as_str, ""),
        DeviceProperty.CLASS: Slot(as_uint32, 0),
        DeviceProperty.ICON: Slot(as_str, ""),
        DeviceProperty.LEGACY_PAIRING: Slot(as_bool, False),
        DeviceProperty.NAME: Slot(as_str, ""),
        DeviceProperty.PAIRED: Slot(as_bool, False),
        DeviceProperty.CONNECTED: Slot(as_bool, False, remote_only=True),
        DeviceProperty.TRUSTED: Slot(as_bool, False, remote_only=True),
        DeviceProperty.BLOCKED: Slot(as_bool, False, remote_only=True),
        DeviceProperty.UUIDS: Slot(as_str_tuple, (), remote_only=True),
    },
)

ADAPTER_PROPERTIES = build_table(
    AdapterProperty,
    {
        AdapterProperty.ADDRESS: Slot(as_str, ""),
        AdapterProperty.NAME: Slot(as_str, ""),
        AdapterProperty.ALIAS: Slot(as_str, "", remote_only=True),
        AdapterProperty.CLASS: Slot(as_uint32, 0, remote_only=True),
        AdapterProperty.POWERED: Slot(as_bool, False, remote_only=True),
        AdapterProperty.DISCOVERABLE: Slot(as_bool, False, remote_only=True),
        AdapterProperty.PAIRABLE: Slot(as_bool, False, remote_only=True),
        AdapterProperty.DISCOVERING: Slot(as_bool, False, remote_only=True),
        AdapterProperty.UUIDS: Slot(as_str_tuple, (), remote_only=True),
    },
)


def key_name(key: str | Enum) -> str:
    """Daemon property name for a key given either as an enum member or a string."""
    return key.value if isinstance(key, Enum) else key

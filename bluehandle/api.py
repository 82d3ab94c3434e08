"""Stable public API for building tooling on top of bluehandle.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path

from bluehandle.core.adapter import Adapter
from bluehandle.core.config import Config, load_config
from bluehandle.core.device import Device
from bluehandle.core.errors import (
    BindingUnavailableError,
    BluehandleError,
    ConfigError,
    MalformedEventError,
    RemoteCallFailedError,
    TransportConnectError,
    TransportError,
    TransportTimeoutError,
)
from bluehandle.core.handle import RemoteHandle
from bluehandle.core.manager import Manager
from bluehandle.core.model import CallStatus, ObjectInfo, ObjectKind
from bluehandle.core.properties import AdapterProperty, DeviceProperty
from bluehandle.core.signals import Signal
from bluehandle.transports.base import Subscription, Transport
from bluehandle.transports.bluez import BlueZTransport

__all__ = [
    "BluehandleError",
    "BindingUnavailableError",
    "ConfigError",
    "MalformedEventError",
    "TransportError",
    "TransportConnectError",
    "TransportTimeoutError",
    "RemoteCallFailedError",
    "Adapter",
    "AdapterProperty",
    "BlueZTransport",
    "CallStatus",
    "Config",
    "Device",
    "DeviceProperty",
    "Manager",
    "ObjectInfo",
    "ObjectKind",
    "RemoteHandle",
    "Signal",
    "Subscription",
    "Transport",
    "load_config",
    "open_manager",
]


def open_manager(
    *,
    config: Config | None = None,
    config_path: Path | None = None,
    transport: Transport | None = None,
) -> Manager:
    """Build a ``Manager`` from an explicit transport or from configuration.

    The caller owns the result and must ``release()`` it (or use it in a
    ``with`` block).
    """
    if config is None:
        config = load_config(config_path)
    if transport is not None:
        return Manager(transport, preferred_adapter=config.adapter)
    return Manager.from_config(config)

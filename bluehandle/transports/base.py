"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from bluehandle.core.model import ObjectInfo

PropertyCallback = Callable[[str, Any], None]
ObjectCallback = Callable[[ObjectInfo], None]


class Subscription(Protocol):
    def cancel(self) -> None:
        """Stop delivering events. Calling it twice is harmless."""


class Transport(Protocol):
    """Request/response and event channel to the management daemon.

    Every method blocks until the daemon answers. Failures raise
    ``TransportError`` subclasses; ``lookup`` and ``create`` return ``None``
    when the daemon simply has no such object.
    """

    def list_adapters(self) -> list[ObjectInfo]:
        ...

    def list_devices(self, adapter_ref: str) -> list[ObjectInfo]:
        ...

    def lookup(self, parent_ref: str | None, identity: str) -> str | None:
        ...

    def create(self, parent_ref: str | None, identity: str) -> str | None:
        ...

    def get_properties(self, ref: str) -> dict[str, Any]:
        ...

    def set_property(self, ref: str, name: str, value: Any) -> None:
        ...

    def subscribe(self, ref: str, callback: PropertyCallback) -> Subscription:
        ...

    def invoke(self, ref: str, operation: str, *args: Any) -> Any:
        ...

    def watch_objects(self, on_added: ObjectCallback, on_removed: ObjectCallback) -> Subscription:
        ...

    def close(self) -> None:
        ...

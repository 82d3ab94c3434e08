from __future__ import annotations

from typing import Any

import pytest

from bluehandle.core.adapter import Adapter
from bluehandle.core.errors import RemoteCallFailedError
from bluehandle.core.manager import Manager
from bluehandle.core.model import ObjectInfo, ObjectKind

ADAPTER_REF = "/org/bluez/hci0"
ADDRESS = "AA:BB:CC:DD:EE:FF"


def device_ref(address: str, adapter: str = "hci0") -> str:
    return f"/org/bluez/{adapter}/dev_{address.replace(':', '_')}"


class FakeSubscription:
    def __init__(self, registry: list[Any], entry: Any) -> None:
        self.registry = registry
        self.entry = entry
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.entry in self.registry:
            self.registry.remove(self.entry)


class FakeTransport:
    """In-memory daemon that records every call made through it."""

    def __init__(self) -> None:
        self.objects: dict[str, ObjectInfo] = {}
        self.snapshots: dict[str, dict[str, Any]] = {}
        self.creatable: set[str] = set()
        self.failing: set[str] = set()
        self.invoke_results: dict[str, Any] = {}
        self.scripted: dict[str, list[tuple[str, Any]]] = {}
        self.subscribers: dict[str, list[Any]] = {}
        self.watchers: list[Any] = []
        self.calls: list[tuple[Any, ...]] = []
        self.closed = False

    def add_adapter(self, identity: str = "hci0", **properties: Any) -> str:
        ref = f"/org/bluez/{identity}"
        properties.setdefault("Address", "00:1A:7D:DA:71:13")
        properties.setdefault("Name", "workstation")
        self.objects[ref] = ObjectInfo(ref=ref, kind=ObjectKind.ADAPTER, identity=identity, properties=properties)
        return ref

    def add_device(self, address: str = ADDRESS, adapter: str = "hci0", **properties: Any) -> str:
        ref = device_ref(address, adapter)
        properties.setdefault("Address", address)
        self.objects[ref] = ObjectInfo(
            ref=ref,
            kind=ObjectKind.DEVICE,
            identity=address,
            parent_ref=f"/org/bluez/{adapter}",
            properties=properties,
        )
        return ref

    def count(self, method: str, *args: Any) -> int:
        return sum(1 for call in self.calls if call[0] == method and call[1 : 1 + len(args)] == args)

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        if call[0] in self.failing:
            raise RemoteCallFailedError(f"{call[0]} failed")

    def list_adapters(self) -> list[ObjectInfo]:
        self._record("list_adapters")
        return [info for info in self.objects.values() if info.kind is ObjectKind.ADAPTER]

    def list_devices(self, adapter_ref: str) -> list[ObjectInfo]:
        self._record("list_devices", adapter_ref)
        return [
            info
            for info in self.objects.values()
            if info.kind is ObjectKind.DEVICE and info.parent_ref == adapter_ref
        ]

    def lookup(self, parent_ref: str | None, identity: str) -> str | None:
        self._record("lookup", parent_ref, identity)
        for info in self.objects.values():
            if info.parent_ref == parent_ref and info.identity == identity:
                return info.ref
        return None

    def create(self, parent_ref: str | None, identity: str) -> str | None:
        self._record("create", parent_ref, identity)
        if parent_ref is None or identity not in self.creatable:
            return None
        return self.add_device(identity, adapter=parent_ref.rsplit("/", 1)[-1])

    def get_properties(self, ref: str) -> dict[str, Any]:
        self._record("get_properties", ref)
        return dict(self.snapshots.get(ref, {}))

    def set_property(self, ref: str, name: str, value: Any) -> None:
        self._record("set_property", ref, name, value)

    def subscribe(self, ref: str, callback: Any) -> FakeSubscription:
        self._record("subscribe", ref)
        callbacks = self.subscribers.setdefault(ref, [])
        callbacks.append(callback)
        for name, value in self.scripted.get(ref, []):
            callback(name, value)
        return FakeSubscription(callbacks, callback)

    def invoke(self, ref: str, operation: str, *args: Any) -> Any:
        self._record("invoke", ref, operation, *args)
        return self.invoke_results.get(operation)

    def watch_objects(self, on_added: Any, on_removed: Any) -> FakeSubscription:
        self._record("watch_objects")
        entry = (on_added, on_removed)
        self.watchers.append(entry)
        return FakeSubscription(self.watchers, entry)

    def close(self) -> None:
        self.closed = True

    def emit(self, ref: str, name: str, value: Any) -> None:
        for callback in list(self.subscribers.get(ref, [])):
            callback(name, value)

    def announce(self, info: ObjectInfo) -> None:
        self.objects[info.ref] = info
        for on_added, _ in list(self.watchers):
            on_added(info)

    def retract(self, ref: str) -> None:
        info = self.objects.pop(ref)
        for _, on_removed in list(self.watchers):
            on_removed(info)


@pytest.fixture
def transport() -> FakeTransport:
    fake = FakeTransport()
    fake.add_adapter("hci0")
    return fake


@pytest.fixture
def manager(transport: FakeTransport) -> Manager:
    return Manager(transport)


@pytest.fixture
def adapter(manager: Manager) -> Adapter:
    return manager.adapter("hci0", address="00:1A:7D:DA:71:13", name="workstation")

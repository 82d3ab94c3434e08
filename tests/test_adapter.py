from __future__ import annotations

from bluehandle.core.adapter import Adapter
from bluehandle.core.model import CallStatus, ObjectInfo, ObjectKind
from conftest import ADAPTER_REF, ADDRESS, FakeTransport, device_ref


def test_device_handles_are_owned_and_reused(adapter: Adapter) -> None:
    first = adapter.device("aa:bb:cc:dd:ee:ff", name="Speaker")
    second = adapter.device(ADDRESS)

    assert first is second
    assert first.address == ADDRESS
    assert first.name == "Speaker"


def test_list_devices_adopts_listed_fields(transport: FakeTransport, adapter: Adapter) -> None:
    transport.add_device(
        ADDRESS,
        Name="WH-1000",
        Alias="Headset",
        Class=0x240404,
        Icon="audio-card",
        Paired=True,
        LegacyPairing=False,
    )
    transport.add_device("11:22:33:44:55:66", Name="Mouse", Class="bogus")

    devices = adapter.list_devices()

    assert [d.address for d in devices] == ["11:22:33:44:55:66", ADDRESS]
    headset = devices[1]
    assert headset.alias == "Headset"
    assert headset.device_class == 0x240404
    assert headset.paired is True
    assert devices[0].device_class == 0
    assert transport.count("get_properties") == 0


def test_list_devices_when_unreachable_returns_cached(transport: FakeTransport, adapter: Adapter) -> None:
    transport.objects.clear()
    adapter.device(ADDRESS)

    assert [d.address for d in adapter.list_devices()] == [ADDRESS]
    assert transport.count("list_devices") == 0


def test_adapter_remote_properties_fetch_once(transport: FakeTransport, adapter: Adapter) -> None:
    transport.snapshots[ADAPTER_REF] = {
        "Alias": "workstation",
        "Class": 0x1C010C,
        "Powered": True,
        "Discoverable": False,
        "Pairable": True,
        "Discovering": False,
        "UUIDs": ["0000110e-0000-1000-8000-00805f9b34fb"],
    }

    assert adapter.address == "00:1A:7D:DA:71:13"
    assert transport.calls == []

    assert adapter.powered is True
    assert adapter.pairable is True
    assert adapter.discoverable is False
    assert adapter.device_class == 0x1C010C
    assert transport.count("get_properties") == 1


def test_adapter_setters_forward_without_caching(transport: FakeTransport, adapter: Adapter) -> None:
    transport.snapshots[ADAPTER_REF] = {"Powered": False}

    assert adapter.set_powered(True) is CallStatus.OK
    assert ("set_property", ADAPTER_REF, "Powered", True) in transport.calls
    assert adapter.powered is False

    transport.emit(ADAPTER_REF, "Powered", True)
    assert adapter.powered is True


def test_discovery_pass_through(transport: FakeTransport, adapter: Adapter) -> None:
    assert adapter.stop_discovery() is CallStatus.UNBOUND
    assert adapter.start_discovery() is CallStatus.OK
    assert adapter.stop_discovery() is CallStatus.OK
    assert ("invoke", ADAPTER_REF, "StartDiscovery") in transport.calls
    assert ("invoke", ADAPTER_REF, "StopDiscovery") in transport.calls


def test_remove_device_uses_device_ref(transport: FakeTransport, adapter: Adapter) -> None:
    ref = transport.add_device(ADDRESS)
    device = adapter.device(ADDRESS)

    assert adapter.remove_device(device) is CallStatus.OK
    assert ("invoke", ADAPTER_REF, "RemoveDevice", ref) in transport.calls


def test_remove_unknown_device_fails(transport: FakeTransport, adapter: Adapter) -> None:
    device = adapter.device(ADDRESS)

    assert adapter.remove_device(device) is CallStatus.FAILED
    assert transport.count("invoke") == 0


def test_device_added_and_removed_signals(transport: FakeTransport, adapter: Adapter) -> None:
    added: list[str] = []
    removed: list[str] = []
    adapter.device_added.connect(lambda device: added.append(device.address))
    adapter.device_removed.connect(lambda device: removed.append(device.address))
    info = ObjectInfo(
        ref=device_ref(ADDRESS),
        kind=ObjectKind.DEVICE,
        identity=ADDRESS,
        parent_ref=ADAPTER_REF,
        properties={"Name": "Speaker"},
    )

    adapter.handle_object_added(info)
    adapter.handle_object_added(info)
    device = adapter.device(ADDRESS)
    adapter.handle_object_removed(info)

    assert added == [ADDRESS]
    assert removed == [ADDRESS]
    assert device.name == "Speaker"
    assert device.is_released
    assert device.ensure_bound() is False


def test_announced_device_rebinds_after_earlier_failure(transport: FakeTransport, adapter: Adapter) -> None:
    device = adapter.device(ADDRESS)
    assert device.connected is False
    assert not device.is_bound

    ref = transport.add_device(ADDRESS)
    transport.snapshots[ref] = {"Connected": True}
    adapter.handle_object_added(transport.objects[ref])

    assert device.connected is True
    assert device.ref == ref
    assert transport.count("get_properties", ref) == 1

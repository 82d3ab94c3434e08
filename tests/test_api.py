from __future__ import annotations

from pathlib import Path

from bluehandle import api
from bluehandle.api import CallStatus, Manager, open_manager
from conftest import ADDRESS, FakeTransport


def test_public_surface_exports() -> None:
    for name in api.__all__:
        assert hasattr(api, name), name


def test_open_manager_with_explicit_transport(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("adapter: hci1\n", encoding="utf-8")
    transport = FakeTransport()
    transport.add_adapter("hci0")
    transport.add_adapter("hci1", Address="00:1A:7D:DA:71:14")

    with open_manager(config_path=config_file, transport=transport) as manager:
        assert isinstance(manager, Manager)
        assert manager.default_adapter().identity == "hci1"

    assert transport.closed


def test_open_manager_builds_bluez_transport(monkeypatch) -> None:
    built: dict[str, object] = {}

    class StubTransport(FakeTransport):
        def __init__(self, **kwargs) -> None:
            super().__init__()
            built.update(kwargs)

    monkeypatch.setattr("bluehandle.transports.bluez.BlueZTransport", StubTransport)

    manager = open_manager(config=api.Config(bus="session", call_timeout_s=3.0))

    assert isinstance(manager.transport, StubTransport)
    assert built == {"bus": "session", "service": "org.bluez", "timeout_s": 3.0}
    manager.release()


def test_end_to_end_device_flow() -> None:
    transport = FakeTransport()
    transport.add_adapter("hci0")
    ref = transport.add_device(ADDRESS, Name="Speaker")
    transport.snapshots[ref] = {"Connected": False, "Trusted": True}

    with open_manager(config=api.Config(), transport=transport) as manager:
        adapter = manager.default_adapter()
        device = adapter.list_devices()[0]
        assert device.name == "Speaker"
        assert device.trusted is True
        assert device.set_blocked(True) is CallStatus.OK
        transport.emit(ref, "Blocked", True)
        assert device.blocked is True

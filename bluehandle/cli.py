"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import threading
from typing import Any

import typer

from bluehandle.core.adapter import Adapter
from bluehandle.core.config import load_config
from bluehandle.core.device import Device
from bluehandle.core.errors import BindingUnavailableError, BluehandleError
from bluehandle.core.manager import Manager
from bluehandle.core.model import CallStatus

app = typer.Typer(help="Inspect and control BlueZ adapters and devices over D-Bus")


def _build_manager(ctx: typer.Context) -> Manager:
    config = load_config()
    verbose = bool((ctx.obj or {}).get("verbose"))
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    return Manager.from_config(config)


def _adapter(manager: Manager, hint: str | None) -> Adapter:
    if hint:
        manager.list_adapters()
        adapter = manager.adapter(hint)
    else:
        adapter = manager.default_adapter()
    if adapter is None:
        raise BindingUnavailableError("No Bluetooth adapter available. Is bluetoothd running?")
    return adapter


def _device(manager: Manager, address: str, adapter_hint: str | None) -> Device:
    adapter = _adapter(manager, adapter_hint)
    wanted = address.upper()
    for device in adapter.list_devices():
        if device.address == wanted:
            return device
    return adapter.device(wanted)


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def _check(status: CallStatus, action: str) -> None:
    if status is CallStatus.UNBOUND:
        raise BindingUnavailableError(f"Could not {action}: object not reachable on the bus")
    if status is CallStatus.FAILED:
        raise BluehandleError(f"Could not {action}: the daemon rejected the request")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    ctx.obj = {"verbose": verbose}


@app.command("adapters")
def list_adapters(ctx: typer.Context) -> None:
    """List adapters; the default one is marked with '*'."""
    try:
        with _build_manager(ctx) as manager:
            adapters = manager.list_adapters()
            if not adapters:
                typer.echo("No Bluetooth adapters found")
                raise typer.Exit(code=1)
            default = manager.default_adapter()
            for adapter in adapters:
                marker = "*" if adapter is default else " "
                typer.echo(f"{marker} {adapter.identity} {adapter.address} ({adapter.name})")
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(
    ctx: typer.Context,
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """List devices known to the adapter."""
    try:
        with _build_manager(ctx) as manager:
            devices = _adapter(manager, adapter).list_devices()
            if not devices:
                typer.echo("No Bluetooth devices found")
                return
            for device in devices:
                typer.echo(f"{device.address} {device.alias or device.name} paired={_yes_no(device.paired)}")
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def device_info(
    ctx: typer.Context,
    address: str,
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """Show cached and fetched properties of a device."""
    try:
        with _build_manager(ctx) as manager:
            device = _device(manager, address, adapter)
            if not device.fetch_remote_only_properties():
                typer.echo("Warning: live properties unavailable, showing cached values", err=True)
            typer.echo(f"Address: {device.address}")
            typer.echo(f"Name: {device.name}")
            typer.echo(f"Alias: {device.alias}")
            typer.echo(f"Class: 0x{device.device_class:06x}")
            typer.echo(f"Icon: {device.icon}")
            typer.echo(f"Paired: {_yes_no(device.paired)}")
            typer.echo(f"Legacy pairing: {_yes_no(device.legacy_pairing)}")
            typer.echo(f"Connected: {_yes_no(device.connected)}")
            typer.echo(f"Trusted: {_yes_no(device.trusted)}")
            typer.echo(f"Blocked: {_yes_no(device.blocked)}")
            typer.echo(f"UUIDs: {', '.join(device.uuids) or '-'}")
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("trust")
def trust(
    ctx: typer.Context,
    address: str,
    off: bool = typer.Option(False, "--off", help="Revoke trust instead"),
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """Mark a device as trusted (or untrusted with --off)."""
    _set_flag(ctx, address, adapter, "trusted", not off)


@app.command("block")
def block(
    ctx: typer.Context,
    address: str,
    off: bool = typer.Option(False, "--off", help="Unblock instead"),
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """Block a device (or unblock with --off)."""
    _set_flag(ctx, address, adapter, "blocked", not off)


def _set_flag(ctx: typer.Context, address: str, adapter: str | None, flag: str, value: bool) -> None:
    try:
        with _build_manager(ctx) as manager:
            device = _device(manager, address, adapter)
            setter = device.set_trusted if flag == "trusted" else device.set_blocked
            _check(setter(value), f"set {flag} on {device.address}")
            typer.echo(f"Requested {flag}={str(value).lower()} for {device.address}")
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("alias")
def set_alias(
    ctx: typer.Context,
    address: str,
    name: str,
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """Set the user-visible alias of a device."""
    try:
        with _build_manager(ctx) as manager:
            device = _device(manager, address, adapter)
            _check(device.set_alias(name), f"set alias on {device.address}")
            typer.echo(f"Requested alias '{name}' for {device.address}")
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("disconnect")
def disconnect(
    ctx: typer.Context,
    address: str,
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """Disconnect a device."""
    try:
        with _build_manager(ctx) as manager:
            device = _device(manager, address, adapter)
            device.register()
            _check(device.disconnect(), f"disconnect {device.address}")
            typer.echo(f"Disconnected {device.address}")
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("services")
def discover_services(
    ctx: typer.Context,
    address: str,
    pattern: str = typer.Option("", "--pattern", help="UUID substring to filter on"),
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """List the services a device exposes."""
    try:
        with _build_manager(ctx) as manager:
            device = _device(manager, address, adapter)
            records = device.discover_services(pattern)
            if not records:
                typer.echo("No services found")
                return
            for handle, uuid in sorted(records.items()):
                typer.echo(f"0x{handle:04x} {uuid}")
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("watch")
def watch(
    ctx: typer.Context,
    address: str,
    count: int = typer.Option(0, "--count", min=0, help="Stop after this many changes (0 = until interrupted)"),
    adapter: str | None = typer.Option(None, "--adapter", help="Adapter name or address"),
) -> None:
    """Print property changes of a device as they arrive."""
    try:
        with _build_manager(ctx) as manager:
            device = _device(manager, address, adapter)
            seen = {"n": 0}
            done = threading.Event()

            def _print_change(name: str, value: Any) -> None:
                typer.echo(f"{device.address} {name}={value}")
                seen["n"] += 1
                if count and seen["n"] >= count:
                    done.set()

            device.property_changed.connect(_print_change)
            if not device.ensure_bound():
                raise BindingUnavailableError(f"Device {device.address} is not reachable on the bus")
            try:
                done.wait()
            except KeyboardInterrupt:
                pass
    except BluehandleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

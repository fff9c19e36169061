"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

import typer

from blesensor.core.decoder import decode_hex
from blesensor.core.errors import BlesensorError
from blesensor.core.events import ClientEvent, ReadingEvent, StatusEvent
from blesensor.core.service import MonitorService, raise_for_status
from blesensor.core.target_match import matches_target

app = typer.Typer(help="Monitor a BLE temperature sensor and decode its readings")


def _build_service() -> MonitorService:
    service = MonitorService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("profiles")
def list_profiles() -> None:
    """List available target profiles."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=1)

        for profile in profiles:
            typer.echo(f"{profile.id}: {profile.name}")
            typer.echo(f"  address: {profile.target.address}")
            if profile.target.service_uuid:
                typer.echo(f"  service: {profile.target.service_uuid}")
            typer.echo(f"  characteristic: {profile.target.characteristic_uuid}")
    except BlesensorError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(
    timeout: float = typer.Option(5.0, "--timeout", help="Scan duration in seconds"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID used to mark the target"),
) -> None:
    """Scan for nearby BLE devices and mark the profile's target."""
    try:
        service = _build_service()
        target = service.resolve_profile(profile).target
        devices = service.list_devices(timeout)
        if not devices:
            typer.echo("No BLE devices found")
            return

        for device in devices:
            marker = " <- target" if matches_target(device, target) else ""
            typer.echo(f"{device.identifier} {device.name or '<unnamed>'}{marker}")
    except BlesensorError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("decode")
def decode(payload: str = typer.Argument(..., help="Characteristic value as a hex string")) -> None:
    """Decode a captured characteristic value into a temperature."""
    try:
        value = decode_hex(payload.strip().replace(" ", ""))
    except BlesensorError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo(f"{value:.2f}°C")


@app.command("monitor")
def monitor(
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    duration: float | None = typer.Option(None, "--duration", help="Stop after this many seconds"),
) -> None:
    """Connect to the profile's target and print status changes and readings."""

    def _echo(event: ClientEvent) -> None:
        if isinstance(event, StatusEvent):
            typer.echo(f"[{event.status.state.value}] {event.status.message}")
        elif isinstance(event, ReadingEvent):
            typer.echo(event.reading.display)

    try:
        service = _build_service()
        status = asyncio.run(service.monitor(profile, duration_s=duration, listener=_echo))
        raise_for_status(status)
    except BlesensorError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

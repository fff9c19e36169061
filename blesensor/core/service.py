"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from blesensor.core.client import SensorClient
from blesensor.core.errors import (
    CharacteristicAccessError,
    ConnectFailedError,
    ProfileSelectionError,
    RadioLostError,
    RadioUnavailableError,
    SessionError,
    SessionTimeoutError,
    UnsupportedCharacteristicError,
)
from blesensor.core.events import ClientEvent, Listener, StatusEvent
from blesensor.core.model import ClientStatus, ConnectionState, DiscoveredDevice, ErrorKind, TargetProfile
from blesensor.core.profile_loader import load_profiles
from blesensor.core.scheduler import AsyncioScheduler, Scheduler
from blesensor.transports.base import Transport
from blesensor.transports.ble_gatt import BleakGATTTransport

LOGGER = logging.getLogger(__name__)

DEFAULT_PROFILE_ID = "default"
_SESSION_END_STATES = (ConnectionState.IDLE, ConnectionState.FAILED)
_SESSION_ERRORS: dict[ErrorKind, type[SessionError]] = {
    ErrorKind.RADIO_UNAVAILABLE: RadioUnavailableError,
    ErrorKind.RADIO_LOST: RadioLostError,
    ErrorKind.CONNECT_FAILED: ConnectFailedError,
    ErrorKind.UNSUPPORTED_CHARACTERISTIC: UnsupportedCharacteristicError,
    ErrorKind.TIMEOUT: SessionTimeoutError,
    ErrorKind.ACCESS_FAILED: CharacteristicAccessError,
}


def raise_for_status(status: ClientStatus) -> None:
    """Raise the session error matching a failed status; other statuses pass."""
    if not status.failed or status.error is None:
        return
    raise _SESSION_ERRORS.get(status.error, SessionError)(status.message)


class MonitorService:
    def __init__(
        self,
        *,
        transport_factory: Callable[[], BleakGATTTransport] | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.transport_factory = transport_factory or BleakGATTTransport

    def list_profiles(self) -> list[TargetProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def resolve_profile(self, profile_id: str | None = None) -> TargetProfile:
        if profile_id:
            profile = self.profiles.get(profile_id)
            if profile is None:
                raise ProfileSelectionError(
                    f"Unknown profile '{profile_id}'. Use 'blesensor profiles' to inspect available profiles."
                )
            return profile

        if len(self.profiles) == 1:
            return next(iter(self.profiles.values()))
        if DEFAULT_PROFILE_ID in self.profiles:
            return self.profiles[DEFAULT_PROFILE_ID]
        if not self.profiles:
            raise ProfileSelectionError("No profiles loaded. Add one under ~/.config/blesensor/profiles.")

        available = ", ".join(sorted(self.profiles))
        raise ProfileSelectionError(f"Multiple profiles found: {available}. Use --profile to choose one.")

    def build_client(
        self,
        profile: TargetProfile,
        transport: Transport,
        *,
        scheduler: Scheduler | None = None,
    ) -> SensorClient:
        return SensorClient(
            profile.target,
            transport,
            timing=profile.timing,
            scheduler=scheduler or AsyncioScheduler(),
        )

    def list_devices(self, timeout_s: float = 5.0) -> list[DiscoveredDevice]:
        transport = self.transport_factory()
        return asyncio.run(transport.discover(timeout_s))

    async def monitor(
        self,
        profile_id: str | None = None,
        *,
        duration_s: float | None = None,
        listener: Listener | None = None,
    ) -> ClientStatus:
        """Run one monitoring session and return the status it ended with.

        The session ends when the client fails, the peripheral disconnects, or
        `duration_s` elapses. A session still in progress is reset, and the
        transport is always closed before returning.
        """
        profile = self.resolve_profile(profile_id)
        transport = self.transport_factory()
        client = self.build_client(profile, transport)
        finished = asyncio.Event()
        final: list[ClientStatus] = []

        def _watch(event: ClientEvent) -> None:
            if isinstance(event, StatusEvent) and event.status.state in _SESSION_END_STATES:
                final.append(event.status)
                finished.set()

        if listener is not None:
            client.subscribe(listener)

        LOGGER.info("Monitoring %s (%s) with profile '%s'", profile.name, profile.target.address, profile.id)
        try:
            await transport.refresh_radio_state()
            client.start_scanning()
            client.subscribe(_watch)
            try:
                await asyncio.wait_for(finished.wait(), timeout=duration_s)
            except asyncio.TimeoutError:
                LOGGER.info("Monitoring window of %ss elapsed", duration_s)
        finally:
            status = final[0] if final else client.current_status()
            if client.state not in _SESSION_END_STATES:
                client.reset()
            await transport.close()
        return status

"""Stable public API for building tooling on top of blesensor.

This module is the supported integration surface for third-party callers
(dashboards, loggers, scripts). Avoid importing from internal modules unless
intentionally depending on non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable

from blesensor.core.client import SensorClient
from blesensor.core.decoder import decode_hex, decode_payload
from blesensor.core.errors import (
    BlesensorError,
    CharacteristicAccessError,
    ConnectFailedError,
    DecodeError,
    InvalidHexError,
    InvalidTransitionError,
    PayloadOutOfRangeError,
    PayloadTooShortError,
    ProfileLoadError,
    ProfileSelectionError,
    ProfileValidationError,
    RadioLostError,
    RadioUnavailableError,
    SessionError,
    SessionTimeoutError,
    TransportError,
    TransportScanError,
    UnsupportedCharacteristicError,
)
from blesensor.core.events import ClientEvent, Listener, ReadingEvent, StatusEvent
from blesensor.core.model import (
    ClientStatus,
    ConnectionState,
    DiscoveredCharacteristic,
    DiscoveredDevice,
    DiscoveredService,
    ErrorKind,
    RadioState,
    SensorReading,
    TargetDescriptor,
    TargetProfile,
    TimingPolicy,
)
from blesensor.core.service import MonitorService, raise_for_status
from blesensor.transports.base import Transport, TransportEvents
from blesensor.transports.ble_gatt import BleakGATTTransport

__all__ = [
    "BlesensorError",
    "CharacteristicAccessError",
    "ConnectFailedError",
    "DecodeError",
    "InvalidHexError",
    "InvalidTransitionError",
    "PayloadOutOfRangeError",
    "PayloadTooShortError",
    "ProfileLoadError",
    "ProfileSelectionError",
    "ProfileValidationError",
    "RadioLostError",
    "RadioUnavailableError",
    "SessionError",
    "SessionTimeoutError",
    "TransportError",
    "TransportScanError",
    "UnsupportedCharacteristicError",
    "ClientEvent",
    "Listener",
    "ReadingEvent",
    "StatusEvent",
    "ClientStatus",
    "ConnectionState",
    "DiscoveredCharacteristic",
    "DiscoveredDevice",
    "DiscoveredService",
    "ErrorKind",
    "RadioState",
    "SensorReading",
    "TargetDescriptor",
    "TargetProfile",
    "TimingPolicy",
    "SensorClient",
    "Transport",
    "TransportEvents",
    "BleakGATTTransport",
    "decode_hex",
    "decode_payload",
    "raise_for_status",
    "Monitor",
]


class Monitor:
    """Public facade for profile lookup, device listing, and monitoring sessions.

    A `Monitor` wraps profile loading and the bleak transport behind a stable
    API. Callers that want to drive the state machine themselves can build a
    `SensorClient` directly with their own `Transport`.
    """

    def __init__(
        self,
        *,
        transport_factory: Callable[[], BleakGATTTransport] | None = None,
    ) -> None:
        self._service = MonitorService(transport_factory=transport_factory)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_profiles(self) -> list[TargetProfile]:
        return self._service.list_profiles()

    def resolve_profile(self, profile_id: str | None = None) -> TargetProfile:
        return self._service.resolve_profile(profile_id)

    def list_devices(self, *, timeout_s: float = 5.0) -> list[DiscoveredDevice]:
        return self._service.list_devices(timeout_s)

    async def run(
        self,
        *,
        profile_id: str | None = None,
        duration_s: float | None = None,
        listener: Listener | None = None,
        check: bool = False,
    ) -> ClientStatus:
        """Run one session; with `check`, a failed session raises its `SessionError`."""
        status = await self._service.monitor(profile_id, duration_s=duration_s, listener=listener)
        if check:
            raise_for_status(status)
        return status

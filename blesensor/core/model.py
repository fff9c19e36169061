"""Core data models used across the client, loader, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConnectionState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCOVERING_SERVICES = "discovering_services"
    DISCOVERING_CHARACTERISTICS = "discovering_characteristics"
    READING_OR_SUBSCRIBING = "reading_or_subscribing"
    RECEIVING = "receiving"
    FAILED = "failed"


ACTIVE_STATES = frozenset(
    {
        ConnectionState.SCANNING,
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCOVERING_SERVICES,
        ConnectionState.DISCOVERING_CHARACTERISTICS,
        ConnectionState.READING_OR_SUBSCRIBING,
        ConnectionState.RECEIVING,
    }
)


class RadioState(Enum):
    ON = "on"
    OFF = "off"
    UNKNOWN = "unknown"


class ErrorKind(Enum):
    RADIO_UNAVAILABLE = "radio_unavailable"
    RADIO_LOST = "radio_lost"
    CONNECT_FAILED = "connect_failed"
    UNSUPPORTED_CHARACTERISTIC = "unsupported_characteristic"
    DECODE_ERROR = "decode_error"
    TIMEOUT = "timeout"
    ACCESS_FAILED = "access_failed"


@dataclass(frozen=True)
class TargetDescriptor:
    address: str
    characteristic_uuid: str
    service_uuid: str | None = None


@dataclass(frozen=True)
class TimingPolicy:
    """Per-stage timeouts and the delay applied before each transport request.

    A timeout of ``None`` disables that stage's timer.
    """

    scan_timeout_s: float | None = 30.0
    connect_timeout_s: float | None = 15.0
    discovery_timeout_s: float | None = 15.0
    first_value_timeout_s: float | None = None
    backoff_s: float = 0.0


@dataclass(frozen=True)
class TargetProfile:
    id: str
    name: str
    target: TargetDescriptor
    timing: TimingPolicy


@dataclass(frozen=True)
class DiscoveredDevice:
    identifier: str
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.identifier


@dataclass(frozen=True)
class DiscoveredService:
    uuid: str
    handle: int | None = None


@dataclass(frozen=True)
class DiscoveredCharacteristic:
    uuid: str
    properties: frozenset[str]
    handle: int | None = None
    service_uuid: str | None = None

    @property
    def readable(self) -> bool:
        return "read" in self.properties

    @property
    def notifiable(self) -> bool:
        return "notify" in self.properties or "indicate" in self.properties


@dataclass(frozen=True)
class SensorReading:
    value: float
    raw: bytes

    @property
    def hex(self) -> str:
        return self.raw.hex()

    @property
    def display(self) -> str:
        return f"{self.value:.2f}°C"


@dataclass(frozen=True)
class ClientStatus:
    state: ConnectionState
    message: str
    error: ErrorKind | None = None

    @property
    def failed(self) -> bool:
        return self.state is ConnectionState.FAILED

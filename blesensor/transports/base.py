"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from blesensor.core.model import DiscoveredCharacteristic, DiscoveredDevice, DiscoveredService, RadioState


class TransportEvents(Protocol):
    """Callbacks a transport delivers into the client, one at a time."""

    def on_radio_state_changed(self, state: RadioState) -> None: ...

    def on_device_discovered(self, device: DiscoveredDevice) -> None: ...

    def on_connected(self, device: DiscoveredDevice) -> None: ...

    def on_connect_failed(self, device: DiscoveredDevice, reason: str) -> None: ...

    def on_services_discovered(self, services: Sequence[DiscoveredService]) -> None: ...

    def on_characteristics_discovered(self, characteristics: Sequence[DiscoveredCharacteristic]) -> None: ...

    def on_value_updated(self, raw: bytes) -> None: ...

    def on_value_failed(self, characteristic: DiscoveredCharacteristic, reason: str) -> None: ...

    def on_disconnected(self, device: DiscoveredDevice) -> None: ...


class Transport(Protocol):
    """Fire-and-forget BLE requests; every result arrives later via TransportEvents."""

    def attach(self, events: TransportEvents) -> None: ...

    def is_radio_ready(self) -> bool: ...

    def start_scan(self, service_filter: str | None = None) -> None: ...

    def stop_scan(self) -> None: ...

    def connect(self, device_id: str) -> None: ...

    def discover_services(self, peripheral: DiscoveredDevice, service_filter: str | None = None) -> None: ...

    def discover_characteristics(
        self,
        service: DiscoveredService,
        characteristic_filter: str | None = None,
    ) -> None: ...

    def read_characteristic(self, characteristic: DiscoveredCharacteristic) -> None: ...

    def set_notify(self, characteristic: DiscoveredCharacteristic, enabled: bool) -> None: ...

    def disconnect(self, device_id: str) -> None: ...

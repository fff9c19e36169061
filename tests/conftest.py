from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from blesensor.core.client import SensorClient
from blesensor.core.model import (
    DiscoveredCharacteristic,
    DiscoveredDevice,
    DiscoveredService,
    TargetDescriptor,
)

TARGET_ADDRESS = "AA:BB"
SERVICE_UUID = "0000fff0-0000-1000-8000-00805f9b34fb"
CHAR_UUID = "0000fff1-0000-1000-8000-00805f9b34fb"
# Hex offsets [10, 14) hold "233b" -> 35 + 59 * 0.01.
PAYLOAD_35_59 = bytes.fromhex("0102030405233b")


class FakeTransport:
    def __init__(self, radio_ready: bool = True) -> None:
        self.radio_ready = radio_ready
        self.events = None
        self.calls: list[tuple] = []

    def attach(self, events) -> None:
        self.events = events

    def is_radio_ready(self) -> bool:
        return self.radio_ready

    def start_scan(self, service_filter: str | None = None) -> None:
        self.calls.append(("start_scan", service_filter))

    def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))

    def connect(self, device_id: str) -> None:
        self.calls.append(("connect", device_id))

    def discover_services(self, peripheral: DiscoveredDevice, service_filter: str | None = None) -> None:
        self.calls.append(("discover_services", peripheral.identifier, service_filter))

    def discover_characteristics(self, service: DiscoveredService, characteristic_filter: str | None = None) -> None:
        self.calls.append(("discover_characteristics", service.uuid, characteristic_filter))

    def read_characteristic(self, characteristic: DiscoveredCharacteristic) -> None:
        self.calls.append(("read", characteristic.uuid))

    def set_notify(self, characteristic: DiscoveredCharacteristic, enabled: bool) -> None:
        self.calls.append(("set_notify", characteristic.uuid, enabled))

    def disconnect(self, device_id: str) -> None:
        self.calls.append(("disconnect", device_id))

    def named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class ManualTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay_s, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.now += seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= self.now]
            if not due:
                return
            timer = min(due, key=lambda t: t.due)
            self.timers.remove(timer)
            timer.callback()

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]


class SimulatedTransport(FakeTransport):
    """Answers every request from the event loop like a cooperative peripheral."""

    def __init__(
        self,
        *,
        address: str = TARGET_ADDRESS,
        radio_ready: bool = True,
        advertise: bool = True,
        properties: frozenset[str] = frozenset({"notify"}),
        payloads: tuple[bytes, ...] = (PAYLOAD_35_59,),
        disconnect_after_payloads: bool = True,
    ) -> None:
        super().__init__(radio_ready=radio_ready)
        self.address = address
        self.advertise = advertise
        self.properties = properties
        self.payloads = payloads
        self.disconnect_after_payloads = disconnect_after_payloads
        self.closed = False
        self.discover_result: list[DiscoveredDevice] = []

    def _later(self, callback, *args) -> None:
        asyncio.get_running_loop().call_soon(callback, *args)

    async def refresh_radio_state(self) -> bool:
        return self.radio_ready

    async def discover(self, timeout_s: float = 5.0) -> list[DiscoveredDevice]:
        self.calls.append(("discover", timeout_s))
        return self.discover_result

    async def close(self) -> None:
        self.closed = True

    def start_scan(self, service_filter: str | None = None) -> None:
        super().start_scan(service_filter)
        if self.advertise:
            self._later(self.events.on_device_discovered, DiscoveredDevice("11:22", "Other"))
            self._later(self.events.on_device_discovered, DiscoveredDevice(self.address, "Probe"))

    def connect(self, device_id: str) -> None:
        super().connect(device_id)
        self._later(self.events.on_connected, DiscoveredDevice(device_id, "Probe"))

    def discover_services(self, peripheral: DiscoveredDevice, service_filter: str | None = None) -> None:
        super().discover_services(peripheral, service_filter)
        self._later(self.events.on_services_discovered, [DiscoveredService(SERVICE_UUID, handle=10)])

    def discover_characteristics(self, service: DiscoveredService, characteristic_filter: str | None = None) -> None:
        super().discover_characteristics(service, characteristic_filter)
        characteristic = DiscoveredCharacteristic(CHAR_UUID, self.properties, handle=11, service_uuid=service.uuid)
        self._later(self.events.on_characteristics_discovered, [characteristic])

    def read_characteristic(self, characteristic: DiscoveredCharacteristic) -> None:
        super().read_characteristic(characteristic)
        self._deliver()

    def set_notify(self, characteristic: DiscoveredCharacteristic, enabled: bool) -> None:
        super().set_notify(characteristic, enabled)
        if enabled:
            self._deliver()

    def _deliver(self) -> None:
        for payload in self.payloads:
            self._later(self.events.on_value_updated, payload)
        if self.disconnect_after_payloads:
            self._later(self.events.on_disconnected, DiscoveredDevice(self.address, "Probe"))


@pytest.fixture
def target() -> TargetDescriptor:
    return TargetDescriptor(address=TARGET_ADDRESS, characteristic_uuid=CHAR_UUID)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def client(target: TargetDescriptor, transport: FakeTransport, scheduler: ManualScheduler) -> SensorClient:
    return SensorClient(target, transport, scheduler=scheduler)


@pytest.fixture
def simulated_transport() -> SimulatedTransport:
    return SimulatedTransport()

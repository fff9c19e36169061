"""BLE GATT transport implementation backed by bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.backends.service import BleakGATTService
from bleak.exc import BleakError

from blesensor.core.errors import TransportError, TransportScanError
from blesensor.core.model import DiscoveredCharacteristic, DiscoveredDevice, DiscoveredService, RadioState
from blesensor.core.target_match import uuid_matches
from blesensor.transports.base import TransportEvents

LOGGER = logging.getLogger(__name__)

_BLE_ERRORS = (BleakError, OSError, asyncio.TimeoutError)


class BleakGATTTransport:
    """Adapts bleak's coroutine API to the fire-and-forget transport protocol.

    Requests schedule a task on the running loop and return immediately; each
    outcome is reported back through the attached `TransportEvents`, always
    from a later loop iteration so the client is never re-entered.
    """

    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self.connect_timeout_s = connect_timeout_s
        self._events: TransportEvents | None = None
        self._radio_state = RadioState.ON
        self._scanner: BleakScanner | None = None
        self._scan_wanted = False
        self._client: BleakClient | None = None
        self._connect_attempt = 0
        self._peripheral: DiscoveredDevice | None = None
        self._seen: dict[str, BLEDevice] = {}
        self._services: dict[int, BleakGATTService] = {}
        self._characteristics: dict[int, BleakGATTCharacteristic] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def attach(self, events: TransportEvents) -> None:
        self._events = events

    def is_radio_ready(self) -> bool:
        return self._radio_state is RadioState.ON

    async def refresh_radio_state(self) -> bool:
        """Probe the adapter with a short scanner start/stop and report changes."""
        scanner = BleakScanner()
        try:
            await scanner.start()
            await scanner.stop()
        except _BLE_ERRORS as exc:
            LOGGER.warning("Bluetooth adapter is not available: %s", exc)
            self._set_radio_state(RadioState.OFF)
            return False
        self._set_radio_state(RadioState.ON)
        return True

    async def discover(self, timeout_s: float = 5.0) -> list[DiscoveredDevice]:
        try:
            found = await BleakScanner.discover(timeout=timeout_s, return_adv=True)
        except _BLE_ERRORS as exc:
            raise TransportScanError(f"BLE scan failed: {exc}") from exc

        devices: list[DiscoveredDevice] = []
        for device, advertisement in found.values():
            devices.append(_to_discovered(device, advertisement))
        return sorted(devices, key=lambda d: d.identifier)

    def start_scan(self, service_filter: str | None = None) -> None:
        self._scan_wanted = True
        self._spawn(self._start_scan(service_filter))

    def stop_scan(self) -> None:
        self._scan_wanted = False
        scanner, self._scanner = self._scanner, None
        if scanner is not None:
            self._spawn(self._stop_scanner(scanner))

    def connect(self, device_id: str) -> None:
        self._connect_attempt += 1
        self._spawn(self._connect(device_id, self._connect_attempt))

    def discover_services(self, peripheral: DiscoveredDevice, service_filter: str | None = None) -> None:
        self._spawn(self._discover_services(service_filter))

    def discover_characteristics(
        self,
        service: DiscoveredService,
        characteristic_filter: str | None = None,
    ) -> None:
        self._spawn(self._discover_characteristics(service, characteristic_filter))

    def read_characteristic(self, characteristic: DiscoveredCharacteristic) -> None:
        self._spawn(self._read(characteristic))

    def set_notify(self, characteristic: DiscoveredCharacteristic, enabled: bool) -> None:
        self._spawn(self._set_notify(characteristic, enabled))

    def disconnect(self, device_id: str) -> None:
        LOGGER.debug("Disconnecting from %s", device_id)
        self._drop_connection()

    async def close(self) -> None:
        self.stop_scan()
        self._drop_connection()
        # Tasks may spawn follow-up tasks; drain until none are left.
        pending = [task for task in self._tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._tasks if not task.done()]

    @property
    def _sink(self) -> TransportEvents:
        if self._events is None:
            raise TransportError("Transport has no event sink; call attach() first.")
        return self._events

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("BLE transport task failed: %s", exc, exc_info=exc)

    def _set_radio_state(self, state: RadioState) -> None:
        if state is self._radio_state:
            return
        self._radio_state = state
        if self._events is not None:
            self._events.on_radio_state_changed(state)

    def _drop_connection(self) -> None:
        # Clearing the peripheral first keeps our own disconnect from being reported back.
        # Bumping the attempt releases a connect that is still in flight.
        self._connect_attempt += 1
        client, self._client = self._client, None
        self._peripheral = None
        self._services.clear()
        self._characteristics.clear()
        if client is not None:
            self._spawn(self._disconnect_client(client))

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        self._seen[device.address] = device
        self._sink.on_device_discovered(_to_discovered(device, advertisement))

    def _on_disconnect(self, client: BleakClient) -> None:
        if client is not self._client:
            return
        peripheral = self._peripheral
        self._client = None
        if peripheral is not None:
            LOGGER.info("Peripheral %s disconnected", peripheral.identifier)
            self._sink.on_disconnected(peripheral)

    async def _start_scan(self, service_filter: str | None) -> None:
        scanner = BleakScanner(
            detection_callback=self._on_detection,
            service_uuids=[service_filter] if service_filter else None,
        )
        try:
            await scanner.start()
        except _BLE_ERRORS as exc:
            LOGGER.warning("Could not start BLE scan: %s", exc)
            self._set_radio_state(RadioState.OFF)
            return
        self._set_radio_state(RadioState.ON)
        if not self._scan_wanted:
            await self._stop_scanner(scanner)
            return
        self._scanner = scanner

    async def _stop_scanner(self, scanner: BleakScanner) -> None:
        try:
            await scanner.stop()
        except _BLE_ERRORS as exc:
            LOGGER.debug("Ignoring scanner stop failure: %s", exc)

    async def _connect(self, device_id: str, attempt: int) -> None:
        ble_device = self._seen.get(device_id)
        peripheral = DiscoveredDevice(identifier=device_id, name=ble_device.name if ble_device else None)
        self._peripheral = peripheral
        client = BleakClient(
            ble_device or device_id,
            disconnected_callback=self._on_disconnect,
            timeout=self.connect_timeout_s,
        )
        try:
            await client.connect()
        except _BLE_ERRORS as exc:
            if attempt != self._connect_attempt:
                LOGGER.debug("Released connect to %s failed: %s", device_id, exc)
                return
            self._sink.on_connect_failed(peripheral, str(exc) or type(exc).__name__)
            return
        if attempt != self._connect_attempt:
            LOGGER.debug("Connect to %s was released while in flight; disconnecting", device_id)
            await self._disconnect_client(client)
            return
        self._client = client
        self._sink.on_connected(peripheral)

    async def _discover_services(self, service_filter: str | None) -> None:
        client = self._require_client()
        services: list[DiscoveredService] = []
        self._services.clear()
        for service in client.services:
            if service_filter and not uuid_matches(service.uuid, service_filter):
                continue
            self._services[service.handle] = service
            services.append(DiscoveredService(uuid=service.uuid, handle=service.handle))
        self._sink.on_services_discovered(services)

    async def _discover_characteristics(
        self,
        service: DiscoveredService,
        characteristic_filter: str | None,
    ) -> None:
        gatt_service = self._services.get(service.handle) if service.handle is not None else None
        if gatt_service is None:
            raise TransportError(f"Service {service.uuid} is not part of the current connection")

        characteristics: list[DiscoveredCharacteristic] = []
        for char in gatt_service.characteristics:
            if characteristic_filter and not uuid_matches(char.uuid, characteristic_filter):
                continue
            self._characteristics[char.handle] = char
            characteristics.append(
                DiscoveredCharacteristic(
                    uuid=char.uuid,
                    properties=frozenset(char.properties),
                    handle=char.handle,
                    service_uuid=service.uuid,
                )
            )
        self._sink.on_characteristics_discovered(characteristics)

    async def _read(self, characteristic: DiscoveredCharacteristic) -> None:
        client = self._require_client()
        try:
            data = await client.read_gatt_char(self._resolve(characteristic))
        except _BLE_ERRORS as exc:
            LOGGER.warning("Reading %s failed: %s", characteristic.uuid, exc)
            self._sink.on_value_failed(characteristic, str(exc) or type(exc).__name__)
            return
        self._sink.on_value_updated(bytes(data))

    async def _set_notify(self, characteristic: DiscoveredCharacteristic, enabled: bool) -> None:
        client = self._require_client()
        gatt_char = self._resolve(characteristic)
        try:
            if enabled:
                await client.start_notify(gatt_char, self._on_notification)
            else:
                await client.stop_notify(gatt_char)
        except _BLE_ERRORS as exc:
            LOGGER.warning("Changing notifications on %s failed: %s", characteristic.uuid, exc)
            if enabled:
                self._sink.on_value_failed(characteristic, str(exc) or type(exc).__name__)

    def _on_notification(self, _: BleakGATTCharacteristic, data: bytearray) -> None:
        self._sink.on_value_updated(bytes(data))

    async def _disconnect_client(self, client: BleakClient) -> None:
        try:
            await client.disconnect()
        except _BLE_ERRORS as exc:
            LOGGER.debug("Ignoring disconnect failure: %s", exc)

    def _require_client(self) -> BleakClient:
        if self._client is None:
            raise TransportError("No peripheral is connected")
        return self._client

    def _resolve(self, characteristic: DiscoveredCharacteristic) -> BleakGATTCharacteristic | str:
        if characteristic.handle is not None and characteristic.handle in self._characteristics:
            return self._characteristics[characteristic.handle]
        return characteristic.uuid


def _to_discovered(device: BLEDevice, advertisement: AdvertisementData | None) -> DiscoveredDevice:
    name = device.name or (advertisement.local_name if advertisement else None)
    return DiscoveredDevice(identifier=device.address, name=name)

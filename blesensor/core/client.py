"""Single-target BLE sensor client.

`SensorClient` drives one peripheral from idle through scanning, connecting,
service and characteristic discovery, and read/notify, then decodes every
value the transport delivers. All inputs are transport callbacks or explicit
user calls; the client never blocks and is not reentrant, so every method must
run on the same event loop as the transport.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Sequence
from typing import Any

from blesensor.core.decoder import decode_payload
from blesensor.core.errors import DecodeError, InvalidTransitionError, RadioUnavailableError
from blesensor.core.events import EventHub, Listener, ReadingEvent, StatusEvent
from blesensor.core.model import (
    ACTIVE_STATES,
    ClientStatus,
    ConnectionState,
    DiscoveredCharacteristic,
    DiscoveredDevice,
    DiscoveredService,
    ErrorKind,
    RadioState,
    SensorReading,
    TargetDescriptor,
    TimingPolicy,
)
from blesensor.core.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from blesensor.core.target_match import matches_target, uuid_matches
from blesensor.transports.base import Transport

LOGGER = logging.getLogger(__name__)

_CONNECTED_STATES = frozenset(
    {
        ConnectionState.CONNECTED,
        ConnectionState.DISCOVERING_SERVICES,
        ConnectionState.DISCOVERING_CHARACTERISTICS,
        ConnectionState.READING_OR_SUBSCRIBING,
        ConnectionState.RECEIVING,
    }
)
_DISCOVERY_STATES = frozenset(
    {ConnectionState.DISCOVERING_SERVICES, ConnectionState.DISCOVERING_CHARACTERISTICS}
)
_VALUE_STATES = frozenset({ConnectionState.READING_OR_SUBSCRIBING, ConnectionState.RECEIVING})
_RADIO_MESSAGES = {
    RadioState.ON: "Bluetooth is On.",
    RadioState.OFF: "Bluetooth is Off.",
    RadioState.UNKNOWN: "Unknown Bluetooth status.",
}


class SensorClient:
    def __init__(
        self,
        target: TargetDescriptor,
        transport: Transport,
        *,
        timing: TimingPolicy | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.target = target
        self.timing = timing or TimingPolicy()
        self._transport = transport
        self._scheduler = scheduler or AsyncioScheduler()
        self._events = EventHub()
        self._status = ClientStatus(state=ConnectionState.IDLE, message="Ready")
        self._reading: SensorReading | None = None
        self._device: DiscoveredDevice | None = None
        self._generation = 0
        self._timer: TimerHandle | None = None
        self._pending_services = 0
        transport.attach(self)

    @property
    def state(self) -> ConnectionState:
        return self._status.state

    def current_status(self) -> ClientStatus:
        return self._status

    def latest_reading(self) -> SensorReading | None:
        return self._reading

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    def start_scanning(self) -> None:
        if self.state not in (ConnectionState.IDLE, ConnectionState.FAILED):
            raise InvalidTransitionError(
                f"Cannot start scanning while {self.state.value}; call reset() first."
            )
        if not self._transport.is_radio_ready():
            self._fail(ErrorKind.RADIO_UNAVAILABLE, "Bluetooth is not ready.")
            raise RadioUnavailableError("Bluetooth radio is not powered on; retry once it is available.")

        self._invalidate()
        self._set_status(ConnectionState.SCANNING, "Scanning...")
        self._arm_timeout(self.timing.scan_timeout_s, {ConnectionState.SCANNING}, "scan")
        # No service filter: the target is recognised by address, not by advertisement.
        self._request(self._transport.start_scan, None)

    def reset(self) -> None:
        """Tear down any session in progress and return to idle."""
        self._release()
        self._invalidate()
        self._set_status(ConnectionState.IDLE, "Stopped")

    def on_radio_state_changed(self, state: RadioState) -> None:
        if state is RadioState.OFF and self.state in ACTIVE_STATES:
            self._fail(ErrorKind.RADIO_LOST, "Bluetooth was turned off during the session.")
            return
        if self.state in ACTIVE_STATES:
            LOGGER.debug("Radio reported %s while %s", state.value, self.state.value)
            return
        self._set_status(self.state, _RADIO_MESSAGES[state], error=self._status.error)

    def on_device_discovered(self, device: DiscoveredDevice) -> None:
        if self.state is not ConnectionState.SCANNING:
            LOGGER.debug("Ignoring advertisement from %s while %s", device.identifier, self.state.value)
            return
        if not matches_target(device, self.target):
            return

        self._device = device
        self._transport.stop_scan()
        self._set_status(ConnectionState.CONNECTING, f"Found device, connecting to {device.label}")
        self._arm_timeout(self.timing.connect_timeout_s, {ConnectionState.CONNECTING}, "connect")
        self._request(self._transport.connect, device.identifier)

    def on_connected(self, device: DiscoveredDevice) -> None:
        if self.state is not ConnectionState.CONNECTING or not self._is_current(device):
            self._ignore("connection", device)
            return

        if device.name:
            self._device = device
        label = self._label()
        self._set_status(ConnectionState.CONNECTED, f"Connected to {label}")
        self._set_status(ConnectionState.DISCOVERING_SERVICES, f"Discovering services on {label}")
        self._arm_timeout(self.timing.discovery_timeout_s, _DISCOVERY_STATES, "discovery")
        self._request(self._transport.discover_services, self._device, self.target.service_uuid)

    def on_connect_failed(self, device: DiscoveredDevice, reason: str) -> None:
        if self.state is not ConnectionState.CONNECTING or not self._is_current(device):
            self._ignore("connect failure", device)
            return
        self._fail(ErrorKind.CONNECT_FAILED, f"Failed to connect to {self._label()}: {reason}")

    def on_services_discovered(self, services: Sequence[DiscoveredService]) -> None:
        if self.state is not ConnectionState.DISCOVERING_SERVICES:
            self._ignore("service discovery")
            return

        service_uuid = self.target.service_uuid
        wanted = [s for s in services if service_uuid is None or uuid_matches(s.uuid, service_uuid)]
        if not wanted:
            self._fail(
                ErrorKind.UNSUPPORTED_CHARACTERISTIC,
                f"No service on {self._label()} offers characteristic {self.target.characteristic_uuid}",
            )
            return

        self._pending_services = len(wanted)
        for service in wanted:
            self._set_status(ConnectionState.DISCOVERING_CHARACTERISTICS, f"Discovered service: {service.uuid}")
            self._request(
                self._transport.discover_characteristics,
                service,
                self.target.characteristic_uuid,
            )

    def on_characteristics_discovered(self, characteristics: Sequence[DiscoveredCharacteristic]) -> None:
        if self.state is not ConnectionState.DISCOVERING_CHARACTERISTICS:
            self._ignore("characteristic discovery")
            return

        self._pending_services = max(self._pending_services - 1, 0)
        for characteristic in characteristics:
            if not uuid_matches(characteristic.uuid, self.target.characteristic_uuid):
                continue
            if characteristic.readable:
                self._enter_reading(f"Characteristic {characteristic.uuid} is readable")
                self._request(self._transport.read_characteristic, characteristic)
            elif characteristic.notifiable:
                self._enter_reading(
                    f"Characteristic {characteristic.uuid} supports notifications. Subscribing..."
                )
                self._request(self._transport.set_notify, characteristic, True)
            else:
                self._fail(
                    ErrorKind.UNSUPPORTED_CHARACTERISTIC,
                    f"Characteristic {characteristic.uuid} supports neither read nor notify",
                )
            return

        if self._pending_services == 0:
            self._fail(
                ErrorKind.UNSUPPORTED_CHARACTERISTIC,
                f"Characteristic {self.target.characteristic_uuid} not found on {self._label()}",
            )

    def on_value_updated(self, raw: bytes) -> None:
        if self.state not in _VALUE_STATES:
            self._ignore("value update")
            return

        try:
            reading = decode_payload(raw)
        except DecodeError as exc:
            LOGGER.warning("Could not decode payload %s: %s", bytes(raw).hex(), exc)
            self._set_status(self.state, f"Error in processing data: {exc}", error=ErrorKind.DECODE_ERROR)
            return

        self._cancel_timeout()
        self._reading = reading
        self._set_status(ConnectionState.RECEIVING, f"Received raw data: {reading.hex}")
        self._events.publish(ReadingEvent(reading))

    def on_value_failed(self, characteristic: DiscoveredCharacteristic, reason: str) -> None:
        if self.state not in _VALUE_STATES or not uuid_matches(characteristic.uuid, self.target.characteristic_uuid):
            self._ignore("value failure")
            return
        self._fail(ErrorKind.ACCESS_FAILED, f"Could not access characteristic {characteristic.uuid}: {reason}")

    def on_disconnected(self, device: DiscoveredDevice) -> None:
        if not self._is_current(device):
            self._ignore("disconnect", device)
            return
        if self.state is ConnectionState.CONNECTING:
            self._fail(ErrorKind.CONNECT_FAILED, f"{self._label()} disconnected before the connection completed")
            return
        if self.state not in _CONNECTED_STATES:
            self._ignore("disconnect", device)
            return

        label = self._label()
        self._invalidate()
        self._set_status(ConnectionState.IDLE, f"Disconnected from {label}")

    def _enter_reading(self, message: str) -> None:
        self._set_status(ConnectionState.READING_OR_SUBSCRIBING, message)
        self._arm_timeout(
            self.timing.first_value_timeout_s,
            {ConnectionState.READING_OR_SUBSCRIBING},
            "first value",
        )

    def _fail(self, kind: ErrorKind, message: str) -> None:
        LOGGER.warning("Session failed (%s): %s", kind.value, message)
        self._release()
        self._invalidate()
        self._set_status(ConnectionState.FAILED, message, error=kind)

    def _release(self) -> None:
        if self.state is ConnectionState.SCANNING:
            self._transport.stop_scan()
        elif self._device is not None and self.state in ACTIVE_STATES:
            self._transport.disconnect(self._device.identifier)

    def _invalidate(self) -> None:
        # Bumping the generation drops deferred requests and timers of the old session.
        self._generation += 1
        self._cancel_timeout()
        self._pending_services = 0
        self._device = None

    def _set_status(
        self,
        state: ConnectionState,
        message: str,
        *,
        error: ErrorKind | None = None,
    ) -> None:
        previous = self._status.state
        self._status = ClientStatus(state=state, message=message, error=error)
        if previous is not state:
            LOGGER.info("%s -> %s: %s", previous.value, state.value, message)
        else:
            LOGGER.debug("%s: %s", state.value, message)
        self._events.publish(StatusEvent(self._status))

    def _request(self, action: Callable[..., None], *args: Any) -> None:
        if self.timing.backoff_s <= 0:
            action(*args)
            return

        generation = self._generation

        def _deferred() -> None:
            if generation != self._generation or self.state not in ACTIVE_STATES:
                LOGGER.debug("Dropping deferred %s from a finished session", getattr(action, "__name__", action))
                return
            action(*args)

        self._scheduler.call_later(self.timing.backoff_s, _deferred)

    def _arm_timeout(
        self,
        seconds: float | None,
        states: Collection[ConnectionState],
        stage: str,
    ) -> None:
        self._cancel_timeout()
        if seconds is None:
            return

        generation = self._generation

        def _expired() -> None:
            if generation != self._generation or self.state not in states:
                return
            self._fail(ErrorKind.TIMEOUT, f"Timed out after {seconds:g}s waiting for {stage}")

        self._timer = self._scheduler.call_later(seconds, _expired)

    def _cancel_timeout(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _is_current(self, device: DiscoveredDevice) -> bool:
        return self._device is not None and device.identifier == self._device.identifier

    def _label(self) -> str:
        return self._device.label if self._device else self.target.address

    def _ignore(self, what: str, device: DiscoveredDevice | None = None) -> None:
        source = f" from {device.identifier}" if device else ""
        LOGGER.debug("Ignoring %s%s while %s", what, source, self.state.value)

"""Push-based observer channel for client status and readings."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from blesensor.core.model import ClientStatus, SensorReading

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusEvent:
    status: ClientStatus


@dataclass(frozen=True)
class ReadingEvent:
    reading: SensorReading


ClientEvent = StatusEvent | ReadingEvent
Listener = Callable[[ClientEvent], None]


class EventHub:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: ClientEvent) -> None:
        # A failing listener must not stop the state machine or other listeners.
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Listener %r failed handling %s", listener, type(event).__name__)

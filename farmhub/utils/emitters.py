"""
WebSocket Emitters
==================

Forwards device events from the event bus to Socket.IO clients on the
``/devices`` namespace.
"""

import logging
from typing import Any, Callable, List

from flask_socketio import SocketIO

from farmhub.enums.events import DeviceEvent, WebSocketEvent
from farmhub.utils.event_bus import EventBus

logger = logging.getLogger(__name__)

SOCKETIO_NAMESPACE_DEVICES = "/devices"


class EmitterService:
    """Broadcasts device changes to connected dashboards."""

    def __init__(self, sio: SocketIO, namespace: str = SOCKETIO_NAMESPACE_DEVICES) -> None:
        self.sio = sio
        self.namespace = namespace
        self._unsubscribers: List[Callable[[], None]] = []

    def emit(self, event: str, payload: dict, room: str | None = None) -> None:
        """Emit *event*; a failure is logged, never raised into the event bus."""
        try:
            self.sio.emit(event, payload, to=room, namespace=self.namespace)
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to emit '%s' to %s: %s", event, self.namespace, e, exc_info=True)
            return
        logger.debug("Emitted '%s' to %s (room=%s)", event, self.namespace, room or "broadcast")

    def attach(self, event_bus: EventBus) -> None:
        """Subscribe to the device topics that clients care about."""
        if self._unsubscribers:
            return
        self._unsubscribers = [
            event_bus.subscribe(DeviceEvent.DEVICE_REGISTERED, self._device_changed),
            event_bus.subscribe(DeviceEvent.DEVICE_UPDATED, self._device_changed),
            event_bus.subscribe(DeviceEvent.DEVICE_OFFLINE, self._device_offline),
            event_bus.subscribe(DeviceEvent.DEVICE_COMMAND, self._device_command),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _device_changed(self, payload: dict[str, Any]) -> None:
        self.emit(WebSocketEvent.DEVICE_UPDATED.value, payload)

    def _device_offline(self, payload: dict[str, Any]) -> None:
        self.emit(WebSocketEvent.DEVICE_OFFLINE.value, payload)

    def _device_command(self, payload: dict[str, Any]) -> None:
        self.emit(WebSocketEvent.DEVICE_COMMAND.value, payload)

import logging
from typing import Any, Callable, List

from farmhub.enums.events import DeviceEvent
from farmhub.utils.event_bus import EventBus

logger = logging.getLogger("farmhub.events")


class EventLogger:
    """Listens for device events and logs them."""

    def __init__(self, event_bus: EventBus) -> None:
        self.event_bus = event_bus
        self._unsubscribers: List[Callable[[], None]] = [
            event_bus.subscribe(DeviceEvent.DEVICE_REGISTERED, self.log_device_registered),
            event_bus.subscribe(DeviceEvent.DEVICE_UPDATED, self.log_device_updated),
            event_bus.subscribe(DeviceEvent.DEVICE_OFFLINE, self.log_device_offline),
            event_bus.subscribe(DeviceEvent.DEVICE_COMMAND, self.log_device_command),
            event_bus.subscribe(DeviceEvent.CONNECTIVITY_CHANGED, self.log_connectivity),
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def log_device_registered(self, data: dict[str, Any]) -> None:
        logger.info("Device registered: %s (%s) '%s'", data.get("device_id"), data.get("device_type"), data.get("name"))

    def log_device_updated(self, data: dict[str, Any]) -> None:
        previous = data.get("previous_status")
        status = data.get("status")
        if previous and previous != status:
            logger.info("Device %s status %s -> %s [%s]", data.get("device_id"), previous, status, data.get("source"))
        else:
            logger.debug("Device %s updated [%s]", data.get("device_id"), data.get("source"))

    def log_device_offline(self, data: dict[str, Any]) -> None:
        logger.warning(
            "Device %s '%s' offline: silent for %.0fs (timeout %.0fs)",
            data.get("device_id"),
            data.get("name"),
            data.get("silent_seconds", 0.0),
            data.get("timeout_seconds", 0.0),
        )

    def log_device_command(self, data: dict[str, Any]) -> None:
        if data.get("delivered"):
            logger.info("Device command %s -> %s via %s", data.get("command"), data.get("device_id"), data.get("channel"))
        else:
            logger.warning(
                "Device command %s -> %s via %s not delivered: %s",
                data.get("command"),
                data.get("device_id"),
                data.get("channel"),
                data.get("error"),
            )

    def log_connectivity(self, data: dict[str, Any]) -> None:
        logger.info(
            "Connectivity (%s) -> %s [%s:%s]",
            data.get("connection_type"),
            data.get("status"),
            data.get("endpoint"),
            data.get("port"),
        )

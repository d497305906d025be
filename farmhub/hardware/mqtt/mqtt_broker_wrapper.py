"""
Wrapper around a paho MQTT client used to push device commands.

Connects once, runs the network loop in paho's background thread, keeps
publish statistics and announces connect/disconnect on the event bus.
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

import paho.mqtt.client as mqtt

from farmhub.enums.events import DeviceEvent
from farmhub.hardware.mqtt.client_factory import create_mqtt_client
from farmhub.schemas.events import ConnectivityStatePayload
from farmhub.utils.event_bus import EventBus
from farmhub.utils.time import iso_now, utc_now

_mqtt_logger = logging.getLogger("farmhub.mqtt")


def configure_mqtt_logger(log_dir: str = "logs") -> logging.Logger:
    """Attach the rotating ``devices_mqtt.log`` handler once per process."""
    if not _mqtt_logger.handlers:
        os.makedirs(log_dir, exist_ok=True)
        handler = RotatingFileHandler(
            os.path.join(log_dir, "devices_mqtt.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
            delay=True,
        )
        handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        _mqtt_logger.addHandler(handler)
        _mqtt_logger.setLevel(logging.INFO)
        _mqtt_logger.propagate = False
    return _mqtt_logger


@dataclass
class HealthStatus:
    """Connection and publish statistics of the MQTT client."""

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    connection_attempts: int = 0
    successful_publishes: int = 0
    failed_publishes: int = 0

    @property
    def success_rate(self) -> float:
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def mark_connected(self):
        self.is_connected = True
        self.last_error = None
        self.last_error_time = None

    def mark_disconnected(self):
        self.is_connected = False

    def record_error(self, error: Exception):
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def to_dict(self):
        return {
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "connection_attempts": self.connection_attempts,
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "publish_success_rate": round(self.success_rate, 2),
        }


class MQTTClientWrapper:
    """
    Wrapper class for handling MQTT client functionality.
    """

    def __init__(
        self,
        broker: str,
        port: int,
        client_id: str = "",
        *,
        event_bus: Optional[EventBus] = None,
        client: Any = None,
    ):
        """
        Args:
            broker: The MQTT broker address.
            port: The MQTT broker port.
            client_id: The MQTT client ID.
            event_bus: Receives CONNECTIVITY_CHANGED events when given.
            client: Pre-built paho client (tests); one is created otherwise.
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.client = client if client is not None else create_mqtt_client(client_id=client_id)
        self.connected = False
        self.event_bus = event_bus
        self.health_status = HealthStatus()
        self._lock = threading.Lock()
        self._connect()

    def _connect(self):
        self.health_status.connection_attempts += 1
        try:
            self.client.connect(self.broker, self.port, 60)
            self.client.loop_start()
        except (OSError, ValueError) as e:
            _mqtt_logger.error("Error connecting to MQTT broker %s:%s: %s", self.broker, self.port, e)
            self.connected = False
            self.health_status.record_error(e)
            return
        self.connected = True
        self.health_status.mark_connected()
        _mqtt_logger.info("Connected to MQTT broker %s:%s", self.broker, self.port)
        self._publish_connectivity("connected")

    def _publish_connectivity(self, status: str) -> None:
        if self.event_bus is None:
            return
        payload = ConnectivityStatePayload(
            connection_type="mqtt",
            status=status,
            endpoint=f"{self.broker}:{self.port}",
            port=self.port,
            timestamp=iso_now(),
        )
        self.event_bus.publish(DeviceEvent.CONNECTIVITY_CHANGED, payload)

    def disconnect(self):
        """
        Disconnects from the MQTT broker.
        """
        if not self.connected:
            return
        try:
            self.client.disconnect()
            self.client.loop_stop()
        except (OSError, ValueError) as e:
            _mqtt_logger.error("Error disconnecting from MQTT broker: %s", e)
            self.health_status.record_error(e)
        self.connected = False
        self.health_status.mark_disconnected()
        _mqtt_logger.info("Disconnected from MQTT broker.")
        self._publish_connectivity("disconnected")

    def publish(self, topic: str, payload: str, qos: int = 1) -> bool:
        """
        Publishes a message to the MQTT broker.

        Returns:
            True when paho accepted the message for delivery.
        """
        if not self.connected:
            _mqtt_logger.warning("MQTT client not connected. Cannot publish to %s.", topic)
            return False
        with self._lock:
            try:
                msg_info = self.client.publish(topic, payload, qos=qos)
            except (OSError, ValueError) as e:
                self.health_status.failed_publishes += 1
                self.health_status.record_error(e)
                _mqtt_logger.error("Error publishing to MQTT: %s", e)
                return False
            if msg_info.rc == mqtt.MQTT_ERR_SUCCESS:
                self.health_status.successful_publishes += 1
                _mqtt_logger.debug("Published to %s: %s", topic, payload)
                return True
            self.health_status.failed_publishes += 1
            _mqtt_logger.error("Failed to publish to %s: %s. MQTT result code: %s", topic, payload, msg_info.rc)
            return False

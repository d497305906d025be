"""
Outbound command channels.

A channel delivers ``{command, params}`` for one device and either returns
or raises :class:`CommandSendError`. Delivery is fire-and-forget: nothing
here waits for the device to acknowledge that the command took effect.

- ``SimulatedCommandChannel``: development; logs the command and, after a
  short delay, logs that the device executed it.
- ``HttpCommandChannel``: ``POST {base}/api/devices/{id}/command``.
- ``MqttCommandChannel``: JSON on ``{prefix}/{id}/command``.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

import requests

from farmhub.domain.exceptions import CommandSendError, ConfigurationError
from farmhub.enums.device import CommandChannelType

if TYPE_CHECKING:
    from farmhub.config import AppConfig
    from farmhub.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
    from farmhub.utils.event_bus import EventBus

logger = logging.getLogger(__name__)


@runtime_checkable
class CommandChannel(Protocol):
    """Anything that can push a command to a device."""

    name: str

    def send(self, device_id: str, command: str, params: Dict[str, Any]) -> None:
        """Deliver the command or raise :class:`CommandSendError`."""
        ...

    def close(self) -> None:
        ...


class SimulatedCommandChannel:
    """Logs commands instead of contacting devices."""

    name = CommandChannelType.SIMULATED.value

    def __init__(self, delay_seconds: float = 1.0) -> None:
        self.delay_seconds = max(0.0, float(delay_seconds))
        self._timers: set[threading.Timer] = set()
        self._lock = threading.Lock()

    def send(self, device_id: str, command: str, params: Dict[str, Any]) -> None:
        logger.info("[simulated] Sending command to device %s: %s %s", device_id, command, params)
        if self.delay_seconds == 0:
            self._executed(device_id, command, None)
            return
        timer = threading.Timer(self.delay_seconds, self._executed)
        timer.args = (device_id, command, timer)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()

    def _executed(self, device_id: str, command: str, timer: Optional[threading.Timer]) -> None:
        logger.info("[simulated] Command executed on device %s: %s", device_id, command)
        if timer is not None:
            with self._lock:
                self._timers.discard(timer)

    def close(self) -> None:
        with self._lock:
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()


class HttpCommandChannel:
    """POSTs commands to the device gateway's REST endpoint."""

    name = CommandChannelType.HTTP.value

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ConfigurationError("HTTP command channel requires a device API base URL")
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = float(timeout_seconds)
        self._session = session or requests.Session()

    def command_url(self, device_id: str) -> str:
        return f"{self.base_url}/api/devices/{device_id}/command"

    def send(self, device_id: str, command: str, params: Dict[str, Any]) -> None:
        url = self.command_url(device_id)
        try:
            response = self._session.post(
                url,
                json={"command": command, "params": params},
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.Timeout as exc:
            raise CommandSendError(
                f"Timed out after {self.timeout_seconds}s sending '{command}' to {device_id}",
                detail={"device_id": device_id, "url": url},
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise CommandSendError(
                f"Could not reach device gateway for {device_id}: {exc}",
                detail={"device_id": device_id, "url": url},
            ) from exc

        if not response.ok:
            raise CommandSendError(
                f"Device gateway rejected '{command}' for {device_id} (HTTP {response.status_code})",
                detail={"device_id": device_id, "url": url, "status_code": response.status_code},
            )
        logger.debug("Command %s sent to %s (HTTP %s)", command, device_id, response.status_code)

    def close(self) -> None:
        self._session.close()


class MqttCommandChannel:
    """Publishes commands through the shared MQTT client."""

    name = CommandChannelType.MQTT.value

    def __init__(self, mqtt_client: "MQTTClientWrapper", topic_prefix: str = "farm") -> None:
        self.mqtt_client = mqtt_client
        self.topic_prefix = topic_prefix.strip("/")

    def topic_for(self, device_id: str) -> str:
        return f"{self.topic_prefix}/{device_id}/command"

    def send(self, device_id: str, command: str, params: Dict[str, Any]) -> None:
        topic = self.topic_for(device_id)
        payload = json.dumps({"deviceId": device_id, "command": command, "params": params})
        if not self.mqtt_client.publish(topic, payload):
            raise CommandSendError(
                f"MQTT publish of '{command}' to {topic} failed",
                detail={"device_id": device_id, "topic": topic},
            )

    def close(self) -> None:
        self.mqtt_client.disconnect()


def build_command_channel(
    config: "AppConfig",
    *,
    event_bus: Optional["EventBus"] = None,
    mqtt_client: Optional["MQTTClientWrapper"] = None,
) -> CommandChannel:
    """Create the channel selected by ``config.command_channel``."""
    channel_type = CommandChannelType(config.command_channel)

    if channel_type is CommandChannelType.SIMULATED:
        return SimulatedCommandChannel(delay_seconds=config.simulated_command_delay_seconds)

    if channel_type is CommandChannelType.HTTP:
        return HttpCommandChannel(config.device_api_base_url, timeout_seconds=config.command_timeout_seconds)

    if mqtt_client is None:
        if not config.enable_mqtt:
            raise ConfigurationError("FARMHUB_COMMAND_CHANNEL=mqtt requires FARMHUB_ENABLE_MQTT=true")
        from farmhub.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper, configure_mqtt_logger

        configure_mqtt_logger()
        mqtt_client = MQTTClientWrapper(
            config.mqtt_broker_host,
            config.mqtt_broker_port,
            client_id="farmhub-commands",
            event_bus=event_bus,
        )
    return MqttCommandChannel(mqtt_client, topic_prefix=config.mqtt_command_topic_prefix)

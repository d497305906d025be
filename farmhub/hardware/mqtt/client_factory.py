"""Construction of the paho-mqtt client used for device commands."""
from __future__ import annotations

import uuid
from typing import Any

import paho.mqtt.client as mqtt


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """
    Build a paho-mqtt 2.x client speaking MQTT v3.1.1.

    The wrapper's handlers use the VERSION1 callback signatures. An empty
    *client_id* gets a random ``farmhub-`` identifier so several backend
    processes can share one broker.
    """
    kwargs.setdefault("protocol", mqtt.MQTTv311)
    return mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION1,
        client_id=client_id or f"farmhub-{uuid.uuid4().hex[:8]}",
        **kwargs,
    )

"""Sample devices for development and demos."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from farmhub.domain.exceptions import FarmHubError
from farmhub.utils.time import iso_now

if TYPE_CHECKING:
    from farmhub.services.hardware.device_registry import DeviceRegistry

logger = logging.getLogger(__name__)


def demo_device_specs() -> List[Dict[str, Any]]:
    """One device of each type, laid out like a small two-plot farm."""
    return [
        {
            "name": "North plot camera",
            "type": "camera",
            "location": "North plot",
            "data": {
                "streamUrl": "rtsp://192.168.1.100:554/stream",
                "resolution": "1080p",
                "isRecording": False,
                "motionDetection": True,
            },
        },
        {
            "name": "North plot irrigation",
            "type": "irrigation",
            "location": "North plot",
            "data": {
                "isActive": False,
                "flowRate": 0,
                "totalFlow": 0,
                "schedule": {"enabled": True, "times": ["06:00", "18:00"], "duration": 30},
            },
        },
        {
            "name": "North temperature and humidity sensor",
            "type": "sensor",
            "location": "North plot",
            "data": {
                "temperature": 28.5,
                "humidity": 65,
                "soilMoisture": 45,
                "lightLevel": 80,
                "timestamp": iso_now(),
            },
        },
        {
            "name": "Main water valve",
            "type": "valve",
            "location": "Main irrigation line",
            "data": {"isOpen": False, "openPercentage": 0, "lastAction": iso_now()},
        },
    ]


def seed_demo_devices(registry: "DeviceRegistry") -> List[str]:
    """
    Register the demo devices that are not already present.

    A device counts as present when one with the same name and type is
    registered. A failure for one device is logged and the rest continue.

    Returns:
        Ids of the newly registered devices.
    """
    existing = {(device.name, device.type.value) for device in registry.list()}
    created: List[str] = []
    for spec in demo_device_specs():
        if (spec["name"], spec["type"]) in existing:
            logger.debug("Demo device '%s' already registered", spec["name"])
            continue
        try:
            created.append(registry.register(spec))
        except FarmHubError as exc:
            logger.error("Error creating demo device '%s': %s", spec["name"], exc)
    if created:
        logger.info("Seeded %s demo device(s)", len(created))
    return created

"""
Device-related Enumerations
============================

Closed sets shared by the registry, the dispatcher and the API layer.
"""

from enum import Enum


class DeviceType(str, Enum):
    """Kinds of farm devices. Determines the shape of a device's payload."""

    CAMERA = "camera"
    IRRIGATION = "irrigation"
    SENSOR = "sensor"
    VALVE = "valve"

    @classmethod
    def _missing_(cls, value: object) -> "DeviceType | None":
        """Accept upper-case names ("VALVE") as well as values."""
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class DeviceStatus(str, Enum):
    """Connectivity status of a device."""

    ONLINE = "online"
    OFFLINE = "offline"
    # Reserved for device-side failure reporting; never set by the core.
    ERROR = "error"


class CameraAction(str, Enum):
    START = "start"
    STOP = "stop"
    RECORD = "record"
    SNAPSHOT = "snapshot"


class IrrigationAction(str, Enum):
    START = "start"
    STOP = "stop"
    SCHEDULE = "schedule"


class CommandChannelType(str, Enum):
    """Outbound command transports selectable via configuration."""

    SIMULATED = "simulated"
    HTTP = "http"
    MQTT = "mqtt"

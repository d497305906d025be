from enum import Enum


class DeviceEvent(str, Enum):
    """Event bus topics published by the device core."""

    DEVICE_REGISTERED = "device_registered"
    DEVICE_UPDATED = "device_updated"
    DEVICE_OFFLINE = "device_offline"
    DEVICE_COMMAND = "device_command"
    CONNECTIVITY_CHANGED = "connectivity_changed"


class WebSocketEvent(str, Enum):
    """WebSocket event names for real-time communication."""

    DEVICE_UPDATED = "device_updated"
    DEVICE_OFFLINE = "device_offline"
    DEVICE_COMMAND = "device_command"
    DEVICES_SNAPSHOT = "devices_snapshot"

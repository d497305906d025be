"""
Enums Module
============

Enumeration types for the FarmHub backend.
"""

from farmhub.enums.device import (
    CameraAction,
    CommandChannelType,
    DeviceStatus,
    DeviceType,
    IrrigationAction,
)
from farmhub.enums.events import DeviceEvent, WebSocketEvent

__all__ = [
    "CameraAction",
    "CommandChannelType",
    "DeviceEvent",
    "DeviceStatus",
    "DeviceType",
    "IrrigationAction",
    "WebSocketEvent",
]

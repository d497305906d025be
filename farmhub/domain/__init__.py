"""
Domain layer for FarmHub.

- devices: device records and their typed payloads
- exceptions: application exception hierarchy
"""

from farmhub.domain.devices import Device, DeviceSpec
from farmhub.domain.exceptions import (
    CommandSendError,
    FarmHubError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    WrongDeviceTypeError,
)

__all__ = [
    "CommandSendError",
    "Device",
    "DeviceSpec",
    "FarmHubError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "WrongDeviceTypeError",
]

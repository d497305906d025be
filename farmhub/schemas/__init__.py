"""
Schemas Module
==============

Pydantic request models and event payloads.
"""

from farmhub.schemas.device import (
    ApplyUpdateRequest,
    CameraCommandRequest,
    IrrigationCommandRequest,
    IrrigationScheduleParams,
    RegisterDeviceRequest,
    ValveCommandRequest,
)
from farmhub.schemas.events import (
    ConnectivityStatePayload,
    DeviceChangedPayload,
    DeviceCommandPayload,
    DeviceOfflinePayload,
)

__all__ = [
    "ApplyUpdateRequest",
    "CameraCommandRequest",
    "ConnectivityStatePayload",
    "DeviceChangedPayload",
    "DeviceCommandPayload",
    "DeviceOfflinePayload",
    "IrrigationCommandRequest",
    "IrrigationScheduleParams",
    "RegisterDeviceRequest",
    "ValveCommandRequest",
]

"""Device domain: records and typed payloads."""

from farmhub.domain.devices.device_entity import Device, DeviceSpec
from farmhub.domain.devices.payloads import (
    CameraData,
    DevicePayload,
    IrrigationData,
    IrrigationSchedule,
    SensorData,
    ValveData,
    build_payload,
    clamp_percentage,
    payload_class_for,
)

__all__ = [
    "CameraData",
    "Device",
    "DevicePayload",
    "DeviceSpec",
    "IrrigationData",
    "IrrigationSchedule",
    "SensorData",
    "ValveData",
    "build_payload",
    "clamp_percentage",
    "payload_class_for",
]

"""
Device Schemas
==============

Pydantic models for device request/response validation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from farmhub.enums import CameraAction, DeviceStatus, DeviceType, IrrigationAction


def _coerce_enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    raise ValueError(f"Unsupported {label} '{value}'")


class RegisterDeviceRequest(BaseModel):
    """Request model for registering a new device"""

    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    type: DeviceType = Field(..., description="Device family")
    location: str = Field(default="", max_length=200, description="Field / plot label")
    data: Dict[str, Any] = Field(default_factory=dict, description="Initial payload, shaped by type")
    config: Dict[str, Any] = Field(default_factory=dict, description="Free-form device configuration")

    @field_validator("type", mode="before")
    def _coerce_type(cls, v):
        return _coerce_enum(DeviceType, v, "device type")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "North plot valve",
                "type": "valve",
                "location": "Main irrigation line",
                "data": {"isOpen": False, "openPercentage": 0},
            }
        }
    )


class ApplyUpdateRequest(BaseModel):
    """
    Partial update: optional status plus a shallow payload merge.

    Only ``error`` may be reported from outside. ``online`` follows a
    dispatched command and ``offline`` comes from the health monitor.
    """

    status: Optional[DeviceStatus] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("status", mode="before")
    def _coerce_status(cls, v):
        if v is None:
            return None
        status = _coerce_enum(DeviceStatus, v, "device status")
        if status is not DeviceStatus.ERROR:
            raise ValueError(f"Status '{status.value}' cannot be set directly; only 'error' may be reported")
        return status


class CameraCommandRequest(BaseModel):
    action: CameraAction

    @field_validator("action", mode="before")
    def _coerce_action(cls, v):
        return _coerce_enum(CameraAction, v, "camera action")


class IrrigationScheduleParams(BaseModel):
    """Fields accepted by the irrigation ``schedule`` action."""

    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    times: Optional[List[str]] = Field(default=None, description="Times of day, HH:MM")
    duration: Optional[int] = Field(default=None, ge=0, description="Minutes per run")


class IrrigationCommandRequest(BaseModel):
    action: IrrigationAction
    params: Optional[IrrigationScheduleParams] = None

    @field_validator("action", mode="before")
    def _coerce_action(cls, v):
        return _coerce_enum(IrrigationAction, v, "irrigation action")


class ValveCommandRequest(BaseModel):
    open_percentage: float = Field(
        ..., alias="openPercentage", allow_inf_nan=False, description="Requested opening, clamped to 0-100"
    )

    model_config = ConfigDict(populate_by_name=True)

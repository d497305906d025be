"""
Command Dispatcher
==================

Type-checked device commands. Each command updates the registry first
(optimistically marking the device ``online``) and then pushes the command
through the configured :class:`CommandChannel`.

A failed push is not rolled back: the device keeps the applied state, the
failure is logged and audited, and the result carries ``delivered=False``
with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from farmhub.domain.devices import (
    CameraData,
    Device,
    IrrigationData,
    SensorData,
    ValveData,
    clamp_percentage,
)
from farmhub.domain.exceptions import CommandSendError, ValidationError, WrongDeviceTypeError
from farmhub.enums.device import CameraAction, DeviceStatus, DeviceType, IrrigationAction
from farmhub.enums.events import DeviceEvent
from farmhub.schemas.events import DeviceCommandPayload
from farmhub.utils.time import iso_now, utc_now

if TYPE_CHECKING:
    from datetime import datetime

    from farmhub.services.hardware.command_channels import CommandChannel
    from farmhub.services.hardware.device_registry import DeviceRegistry
    from farmhub.utils.event_bus import EventBus
    from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)

SET_POSITION_COMMAND = "setPosition"
READ_SENSORS_COMMAND = "readSensors"

_SCHEDULE_KEYS = frozenset({"enabled", "times", "duration"})


@dataclass
class CommandResult:
    """Outcome of a dispatched command."""

    success: bool
    action: str
    device_id: str
    delivered: bool = True
    warning: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "action": self.action,
            "deviceId": self.device_id,
            "delivered": self.delivered,
        }
        if self.warning:
            result["warning"] = self.warning
        result.update(self.extra)
        return result


class CommandDispatcher:
    """Validates, applies and sends device commands."""

    def __init__(
        self,
        registry: "DeviceRegistry",
        channel: "CommandChannel",
        *,
        event_bus: Optional["EventBus"] = None,
        audit_logger: Optional["AuditLogger"] = None,
        clock: Callable[[], "datetime"] = utc_now,
    ) -> None:
        self.registry = registry
        self.channel = channel
        self.event_bus = event_bus
        self.audit_logger = audit_logger
        self._clock = clock

    # ------------------------------------------------------------------
    # Typed commands
    # ------------------------------------------------------------------
    def control_camera(self, device_id: str, action: CameraAction | str) -> CommandResult:
        """
        start/stop control the stream and clear recording; record toggles it.

        The applied payload changes travel with the command as its params.
        """
        action = _coerce_action(CameraAction, action, "camera action")
        device = self._require_type(device_id, DeviceType.CAMERA)
        camera: CameraData = device.data  # type: ignore[assignment]

        updates: Dict[str, Any] = {}
        if action is CameraAction.RECORD:
            updates["isRecording"] = not camera.is_recording
        elif action in (CameraAction.START, CameraAction.STOP):
            updates["isRecording"] = False

        self.registry.apply_update(device_id, DeviceStatus.ONLINE, updates)
        return self._send(device, action.value, dict(updates))

    def control_irrigation(
        self,
        device_id: str,
        action: IrrigationAction | str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> CommandResult:
        action = _coerce_action(IrrigationAction, action, "irrigation action")
        device = self._require_type(device_id, DeviceType.IRRIGATION)
        irrigation: IrrigationData = device.data  # type: ignore[assignment]
        params = dict(params or {})

        if action is IrrigationAction.SCHEDULE:
            unknown = set(params) - _SCHEDULE_KEYS
            if unknown:
                raise ValidationError(
                    f"Unknown schedule field(s): {', '.join(sorted(unknown))}",
                    detail={"unknown_fields": sorted(unknown)},
                )
            updates: Dict[str, Any] = {"schedule": irrigation.schedule.merged(params)}
        else:
            updates = {
                "is_active": action is IrrigationAction.START,
                "last_action": self._clock(),
            }

        self.registry.apply_update(device_id, DeviceStatus.ONLINE, updates)
        return self._send(device, action.value, params)

    def control_valve(self, device_id: str, open_percentage: Any) -> CommandResult:
        device = self._require_type(device_id, DeviceType.VALVE)
        try:
            clamped = clamp_percentage(open_percentage)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        updated = self.registry.apply_update(
            device_id,
            DeviceStatus.ONLINE,
            {"open_percentage": clamped, "last_action": self._clock()},
        )
        valve: ValveData = updated.data  # type: ignore[assignment]
        result = self._send(device, SET_POSITION_COMMAND, {"openPercentage": clamped})
        result.extra.update({"openPercentage": valve.open_percentage, "isOpen": valve.is_open})
        return result

    def read_sensors(self, device_id: str) -> SensorData:
        """
        Ask the sensor for a fresh reading and return the cached one.

        New values arrive asynchronously through :meth:`DeviceRegistry.apply_update`;
        a failed request still returns the cached reading.
        """
        device = self._require_type(device_id, DeviceType.SENSOR)
        result = self._send(device, READ_SENSORS_COMMAND, {})
        if not result.delivered:
            logger.warning("Returning cached reading for sensor %s: %s", device_id, result.warning)
        current = self.registry.get(device_id) or device
        return current.data  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require_type(self, device_id: str, expected: DeviceType) -> Device:
        device = self.registry.require(device_id)
        if device.type is not expected:
            raise WrongDeviceTypeError(device_id, expected.value, device.type.value)
        return device

    def _send(self, device: Device, command: str, params: Dict[str, Any]) -> CommandResult:
        error: Optional[str] = None
        try:
            self.channel.send(device.id, command, params)
        except CommandSendError as exc:
            error = str(exc)
            logger.warning("Failed to send %s to device %s via %s: %s", command, device.id, self.channel.name, exc)

        self._record(device, command, params, error)
        if error is not None:
            return CommandResult(
                success=True,
                action=command,
                device_id=device.id,
                delivered=False,
                warning=f"Command not delivered: {error}",
            )
        return CommandResult(success=True, action=command, device_id=device.id)

    def _record(self, device: Device, command: str, params: Dict[str, Any], error: Optional[str]) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_event(
                actor="dispatcher",
                action=command,
                resource=f"device:{device.id}",
                outcome="delivered" if error is None else "failed",
                channel=self.channel.name,
                device_type=device.type.value,
                params=params,
                error=error,
            )
        if self.event_bus is not None:
            self.event_bus.publish(
                DeviceEvent.DEVICE_COMMAND,
                DeviceCommandPayload(
                    device_id=device.id,
                    device_type=device.type.value,
                    command=command,
                    params=params,
                    channel=self.channel.name,
                    delivered=error is None,
                    error=error,
                    timestamp=iso_now(),
                ),
            )


def _coerce_action(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"Unsupported {label} '{value}'") from exc

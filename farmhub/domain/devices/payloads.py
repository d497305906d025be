"""
Device Payloads
===============

Typed ``data`` records, one per :class:`~farmhub.enums.device.DeviceType`.

Payloads serialize to the camelCase document layout used by the device
store and the dashboard (``streamUrl``, ``openPercentage`` ...). Partial
updates may use either the document key or the Python attribute name.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, ClassVar, Mapping, TypeVar

from farmhub.domain.exceptions import ValidationError
from farmhub.enums.device import DeviceType
from farmhub.utils.time import coerce_datetime, to_iso

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

P = TypeVar("P", bound="DevicePayload")


def _snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class DevicePayload:
    """Mixin shared by the payload dataclasses."""

    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset()

    @classmethod
    def field_keys(cls) -> dict[str, str]:
        """Map every accepted key (document and attribute form) to an attribute."""
        keys: dict[str, str] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            keys[f.name] = f.name
            keys[_snake_to_camel(f.name)] = f.name
        return keys

    @classmethod
    def normalize_keys(cls, data: Mapping[str, Any], *, strict: bool) -> dict[str, Any]:
        known = cls.field_keys()
        normalized: dict[str, Any] = {}
        unknown: list[str] = []
        for key, value in data.items():
            attr = known.get(key)
            if attr is None:
                unknown.append(key)
                continue
            normalized[attr] = value
        if unknown and strict:
            raise ValidationError(
                f"Unknown {cls.__name__} field(s): {', '.join(sorted(unknown))}",
                detail={"unknown_fields": sorted(unknown)},
            )
        return normalized

    @classmethod
    def _coerce(cls, attr: str, value: Any) -> Any:
        if attr in cls.DATETIME_FIELDS:
            if value is None:
                return None
            parsed = coerce_datetime(value)
            if parsed is None:
                raise ValidationError(f"Invalid timestamp for {attr}: {value!r}")
            return parsed

        # Annotations are strings under postponed evaluation.
        kind = {f.name: f.type for f in fields(cls)}.get(attr)  # type: ignore[arg-type]
        if kind in ("float", "int"):
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValidationError(
                    f"{attr} must be a finite number, got {value!r}",
                    detail={"field": attr},
                )
            return float(value) if kind == "float" else value
        if kind == "bool" and not isinstance(value, bool):
            raise ValidationError(f"{attr} must be true or false, got {value!r}", detail={"field": attr})
        if kind == "str" and not isinstance(value, str):
            raise ValidationError(f"{attr} must be a string, got {value!r}", detail={"field": attr})
        return value

    @classmethod
    def from_document(cls: type[P], data: Mapping[str, Any] | None, *, strict: bool = False) -> P:
        """Build a payload from a stored document (lenient unless *strict*)."""
        normalized = cls.normalize_keys(data or {}, strict=strict)
        kwargs = {attr: cls._coerce(attr, value) for attr, value in normalized.items()}
        try:
            return cls(**kwargs)  # type: ignore[call-arg]
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid {cls.__name__}: {exc}") from exc

    def merged(self: P, partial: Mapping[str, Any]) -> P:
        """Shallow merge: keys in *partial* overwrite, everything else is kept."""
        normalized = self.normalize_keys(partial, strict=True)
        changes = {attr: self._coerce(attr, value) for attr, value in normalized.items()}
        try:
            return replace(self, **changes)  # type: ignore[type-var]
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid {type(self).__name__} update: {exc}") from exc

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = to_iso(value)
            elif isinstance(value, DevicePayload):
                value = value.to_document()
            elif isinstance(value, (list, tuple)):
                value = list(value)
            document[_snake_to_camel(f.name)] = value
        return document


@dataclass(frozen=True)
class CameraData(DevicePayload):
    stream_url: str = ""
    resolution: str = "1080p"
    is_recording: bool = False
    motion_detection: bool = False


@dataclass(frozen=True)
class IrrigationSchedule(DevicePayload):
    enabled: bool = False
    times: tuple[str, ...] = ()
    duration: int = 0  # minutes

    def __post_init__(self) -> None:
        if not isinstance(self.times, (list, tuple)):
            raise ValueError(f"schedule times must be a list of HH:MM strings, got {self.times!r}")
        object.__setattr__(self, "times", tuple(self.times))
        for value in self.times:
            if not isinstance(value, str) or not _TIME_OF_DAY.match(value):
                raise ValueError(f"schedule time must be HH:MM, got {value!r}")
        if isinstance(self.duration, bool) or not isinstance(self.duration, (int, float)):
            raise ValueError("schedule duration must be a number of minutes")
        if self.duration < 0:
            raise ValueError("schedule duration cannot be negative")


@dataclass(frozen=True)
class IrrigationData(DevicePayload):
    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset({"last_action"})

    is_active: bool = False
    flow_rate: float = 0.0  # liters per minute
    total_flow: float = 0.0  # liters today
    schedule: IrrigationSchedule = field(default_factory=IrrigationSchedule)
    last_action: datetime | None = None

    @classmethod
    def _coerce(cls, attr: str, value: Any) -> Any:
        if attr == "schedule":
            if isinstance(value, IrrigationSchedule):
                return value
            return IrrigationSchedule.from_document(value or {}, strict=True)
        return super()._coerce(attr, value)


@dataclass(frozen=True)
class SensorData(DevicePayload):
    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset({"timestamp"})

    temperature: float = 0.0
    humidity: float = 0.0
    soil_moisture: float = 0.0
    light_level: float = 0.0
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ValveData(DevicePayload):
    DATETIME_FIELDS: ClassVar[frozenset[str]] = frozenset({"last_action"})

    is_open: bool = False
    open_percentage: float = 0.0
    last_action: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "open_percentage", clamp_percentage(self.open_percentage))
        # is_open is derived; a caller-supplied value never wins.
        object.__setattr__(self, "is_open", self.open_percentage > 0)


def clamp_percentage(value: Any) -> float:
    """Clamp *value* into [0, 100]; NaN and infinities are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"open percentage must be numeric, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"open percentage must be finite, got {value!r}")
    return float(max(0.0, min(100.0, value)))


_PAYLOAD_TYPES: dict[DeviceType, type[DevicePayload]] = {
    DeviceType.CAMERA: CameraData,
    DeviceType.IRRIGATION: IrrigationData,
    DeviceType.SENSOR: SensorData,
    DeviceType.VALVE: ValveData,
}


def payload_class_for(device_type: DeviceType | str) -> type[DevicePayload]:
    """Return the payload class for *device_type*; raises on an unknown type."""
    try:
        return _PAYLOAD_TYPES[DeviceType(device_type)]
    except (KeyError, ValueError) as exc:
        raise ValidationError(f"Unsupported device type '{device_type}'") from exc


def build_payload(device_type: DeviceType | str, data: Mapping[str, Any] | DevicePayload | None) -> DevicePayload:
    """Construct a payload for *device_type* from a mapping (strict keys)."""
    payload_cls = payload_class_for(device_type)
    if isinstance(data, DevicePayload):
        if not isinstance(data, payload_cls):
            raise ValidationError(
                f"{type(data).__name__} does not match device type '{DeviceType(device_type).value}'"
            )
        return data
    return payload_cls.from_document(data or {}, strict=True)

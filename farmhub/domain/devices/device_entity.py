"""
Device Domain Entities

Domain model for farm devices (cameras, irrigation controllers, sensors,
valves) with dataclasses. A device's ``data`` is always the payload class
registered for its ``type``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from datetime import datetime
from typing import Any, Mapping

from farmhub.domain.devices.payloads import DevicePayload, build_payload, payload_class_for
from farmhub.domain.exceptions import ValidationError
from farmhub.enums.device import DeviceStatus, DeviceType
from farmhub.utils.time import coerce_datetime, to_iso


@dataclass(frozen=True)
class DeviceSpec:
    """Registration input: a device description without id or timestamps."""

    name: str
    type: DeviceType
    location: str = ""
    data: DevicePayload | None = None
    config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "DeviceSpec":
        """
        Build a spec from a plain mapping (API body, seed data).

        ``id``, ``lastUpdate`` and ``status`` are ignored: the registry
        assigns them.
        """
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError("Device name is required")
        try:
            device_type = DeviceType(raw.get("type"))
        except ValueError as exc:
            raise ValidationError(f"Unsupported device type '{raw.get('type')}'") from exc
        return cls(
            name=name,
            type=device_type,
            location=str(raw.get("location") or ""),
            data=build_payload(device_type, raw.get("data")),
            config=dict(raw.get("config") or {}),
        )


@dataclass(frozen=True)
class Device:
    """A registered device record."""

    id: str
    name: str
    location: str
    type: DeviceType
    status: DeviceStatus
    last_update: datetime
    data: DevicePayload
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "config", MappingProxyType(dict(self.config)))
        expected = payload_class_for(self.type)
        if not isinstance(self.data, expected):
            raise ValidationError(
                f"Device {self.id} of type '{self.type.value}' cannot carry {type(self.data).__name__}"
            )

    def with_update(
        self,
        *,
        now: datetime,
        status: DeviceStatus | None = None,
        partial_data: Mapping[str, Any] | None = None,
    ) -> "Device":
        """Return a copy with *partial_data* merged into ``data`` and ``last_update`` refreshed."""
        data = self.data.merged(partial_data) if partial_data else self.data
        return replace(
            self,
            status=status if status is not None else self.status,
            data=data,
            last_update=now,
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the persisted / wire document layout."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "status": self.status.value,
            "location": self.location,
            "lastUpdate": to_iso(self.last_update),
            "data": self.data.to_document(),
            "config": dict(self.config),
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Device":
        """Rebuild a device from a stored document."""
        try:
            device_type = DeviceType(document.get("type"))
            status = DeviceStatus(document.get("status") or DeviceStatus.OFFLINE.value)
        except ValueError as exc:
            raise ValidationError(f"Malformed device document: {exc}") from exc

        last_update = coerce_datetime(document.get("lastUpdate"))
        if last_update is None:
            raise ValidationError(f"Device document {document.get('id')} has no valid lastUpdate")

        return cls(
            id=str(document["id"]),
            name=str(document.get("name") or ""),
            location=str(document.get("location") or ""),
            type=device_type,
            status=status,
            last_update=last_update,
            data=payload_class_for(device_type).from_document(document.get("data") or {}),
            config=dict(document.get("config") or {}),
        )

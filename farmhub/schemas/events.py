from typing import Any, Literal

from pydantic import BaseModel, Field

DeviceTypeName = Literal["camera", "irrigation", "sensor", "valve"]
DeviceStatusName = Literal["online", "offline", "error"]


class DeviceChangedPayload(BaseModel):
    """Published after a device was registered, updated or mirrored from the store."""

    schema_version: int = Field(default=1)

    device_id: str
    device_type: DeviceTypeName
    name: str
    status: DeviceStatusName
    previous_status: DeviceStatusName | None = None
    last_update: str
    source: Literal["register", "update", "remote"] = "update"
    device: dict[str, Any]


class DeviceOfflinePayload(BaseModel):
    """Published by the health monitor when a silent device is marked offline."""

    device_id: str
    name: str
    previous_status: DeviceStatusName
    silent_seconds: float
    timeout_seconds: float
    timestamp: str


class DeviceCommandPayload(BaseModel):
    """Published for every outbound device command, delivered or not."""

    device_id: str
    device_type: DeviceTypeName
    command: str
    params: dict[str, Any] = Field(default_factory=dict)
    channel: str
    delivered: bool
    error: str | None = None
    timestamp: str


class ConnectivityStatePayload(BaseModel):
    """Command transport connectivity (MQTT broker connect/disconnect)."""

    connection_type: Literal["mqtt", "http"]
    status: Literal["connected", "disconnected"]
    endpoint: str
    port: int | None = None
    timestamp: str

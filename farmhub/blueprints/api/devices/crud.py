"""
Device CRUD Operations
Listing, registration and partial updates of devices.
"""

from __future__ import annotations

import logging

from flask import Response, request

from farmhub.blueprints.api._common import get_registry, parse_body, success
from farmhub.domain.devices import DeviceSpec, build_payload
from farmhub.domain.exceptions import NotFoundError
from farmhub.schemas import ApplyUpdateRequest, RegisterDeviceRequest
from farmhub.services.application.demo_devices import seed_demo_devices
from farmhub.utils.http import safe_route

from ..devices import devices_api

logger = logging.getLogger(__name__)


@devices_api.get("/", strict_slashes=False)
@safe_route("Failed to list devices")
def list_devices() -> Response:
    """All devices, or only those of ``?type=``."""
    registry = get_registry()
    device_type = request.args.get("type")
    devices = registry.list_by_type(device_type) if device_type else registry.list()
    return success([device.to_document() for device in sorted(devices, key=lambda d: d.id)])


@devices_api.get("/<device_id>")
@safe_route("Failed to get device")
def get_device(device_id: str) -> Response:
    device = get_registry().get(device_id)
    if device is None:
        raise NotFoundError(f"Device {device_id} not found")
    return success(device.to_document())


@devices_api.post("/", strict_slashes=False)
@safe_route("Failed to register device")
def register_device() -> Response:
    body = parse_body(RegisterDeviceRequest)
    spec = DeviceSpec(
        name=body.name.strip(),
        type=body.type,
        location=body.location,
        data=build_payload(body.type, body.data),
        config=dict(body.config),
    )
    registry = get_registry()
    device_id = registry.register(spec)
    return success(registry.require(device_id).to_document(), 201, message=f"Device '{spec.name}' registered")


@devices_api.patch("/<device_id>")
@safe_route("Failed to update device")
def update_device(device_id: str) -> Response:
    """Shallow-merge ``data``; ``status`` may only report ``error``."""
    body = parse_body(ApplyUpdateRequest)
    device = get_registry().apply_update(device_id, status=body.status, partial_data=body.data)
    return success(device.to_document())


@devices_api.post("/demo")
@safe_route("Failed to seed demo devices")
def seed_demo() -> Response:
    registry = get_registry()
    created = seed_demo_devices(registry)
    return success(
        {"created": created, "devices": [registry.require(device_id).to_document() for device_id in created]},
        201 if created else 200,
    )

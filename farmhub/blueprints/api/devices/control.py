"""
Device Control
Typed commands for cameras, irrigation controllers and valves, sensor
reads, and an on-demand health scan.
"""

from __future__ import annotations

import logging

from flask import Response

from farmhub.blueprints.api._common import get_dispatcher, get_health_service, get_registry, parse_body, success
from farmhub.schemas import CameraCommandRequest, IrrigationCommandRequest, ValveCommandRequest
from farmhub.utils.http import safe_route

from ..devices import devices_api

logger = logging.getLogger(__name__)


def _with_device(result, device_id: str) -> dict:
    payload = result.to_dict()
    payload["device"] = get_registry().require(device_id).to_document()
    return payload


@devices_api.post("/<device_id>/camera")
@safe_route("Failed to control camera")
def control_camera(device_id: str) -> Response:
    body = parse_body(CameraCommandRequest)
    result = get_dispatcher().control_camera(device_id, body.action)
    return success(_with_device(result, device_id))


@devices_api.post("/<device_id>/irrigation")
@safe_route("Failed to control irrigation")
def control_irrigation(device_id: str) -> Response:
    body = parse_body(IrrigationCommandRequest)
    params = body.params.model_dump(exclude_none=True) if body.params else None
    result = get_dispatcher().control_irrigation(device_id, body.action, params)
    return success(_with_device(result, device_id))


@devices_api.post("/<device_id>/valve")
@safe_route("Failed to control valve")
def control_valve(device_id: str) -> Response:
    body = parse_body(ValveCommandRequest)
    result = get_dispatcher().control_valve(device_id, body.open_percentage)
    return success(_with_device(result, device_id))


@devices_api.get("/<device_id>/sensors")
@safe_route("Failed to read sensors")
def read_sensors(device_id: str) -> Response:
    reading = get_dispatcher().read_sensors(device_id)
    return success({"deviceId": device_id, "data": reading.to_document()})


@devices_api.post("/health/check")
@safe_route("Failed to run device health check")
def run_health_check() -> Response:
    marked = get_health_service().run_scan()
    return success({"markedOffline": marked, "count": len(marked)})

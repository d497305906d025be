"""
Service Health API
==================

Liveness plus scheduler, event bus and command channel status.
"""

from __future__ import annotations

from flask import Blueprint, Response

from farmhub.blueprints.api._common import get_container, success
from farmhub.utils.http import safe_route
from farmhub.utils.time import iso_now

health_api = Blueprint("health_api", __name__)


@health_api.get("/", strict_slashes=False)
@safe_route("Failed to get service health")
def service_health() -> Response:
    container = get_container()
    registry = container.device_registry
    return success(
        {
            "status": "ok",
            "timestamp": iso_now(),
            "devices": len(registry),
            "commandChannel": container.command_dispatcher.channel.name,
            "healthMonitor": container.device_health_service.is_running,
            "scheduler": container.scheduler.get_status(),
            "eventBus": container.event_bus.get_metrics(),
        }
    )

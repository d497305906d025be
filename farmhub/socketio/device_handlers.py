"""farmhub.socketio.device_handlers

Handlers for the ``/devices`` namespace. Live updates are pushed by
:class:`~farmhub.utils.emitters.EmitterService`; these handlers cover the
connection lifecycle and snapshot requests.
"""

import logging

from flask import current_app, request
from flask_socketio import emit

from farmhub.domain.exceptions import ValidationError
from farmhub.enums.events import WebSocketEvent
from farmhub.extensions import socketio
from farmhub.utils.emitters import SOCKETIO_NAMESPACE_DEVICES

logger = logging.getLogger(__name__)


def _snapshot(device_type=None) -> list[dict]:
    registry = current_app.config["CONTAINER"].device_registry
    devices = registry.list_by_type(device_type) if device_type else registry.list()
    return [device.to_document() for device in devices]


@socketio.on("connect", namespace=SOCKETIO_NAMESPACE_DEVICES)
def handle_devices_connect(auth=None):
    logger.info("Client %s connected to %s", request.sid, SOCKETIO_NAMESPACE_DEVICES)
    emit(WebSocketEvent.DEVICES_SNAPSHOT.value, {"devices": _snapshot()})


@socketio.on("disconnect", namespace=SOCKETIO_NAMESPACE_DEVICES)
def handle_devices_disconnect(*_args):
    logger.info("Client %s disconnected from %s", request.sid, SOCKETIO_NAMESPACE_DEVICES)


@socketio.on("request_devices", namespace=SOCKETIO_NAMESPACE_DEVICES)
def handle_request_devices(data=None):
    """Reply with the current snapshot, optionally filtered by ``type``."""
    device_type = data.get("type") if isinstance(data, dict) else None
    try:
        devices = _snapshot(device_type)
    except ValidationError as exc:
        emit("error", {"message": str(exc)})
        return
    emit(WebSocketEvent.DEVICES_SNAPSHOT.value, {"devices": devices, "type": device_type})

from unittest.mock import MagicMock

from farmhub.enums.events import DeviceEvent
from farmhub.utils.emitters import SOCKETIO_NAMESPACE_DEVICES, EmitterService


class FakeSocketIO:
    def __init__(self) -> None:
        self.emits: list[dict] = []

    def emit(self, event, payload, to=None, namespace="/"):
        self.emits.append({"event": event, "payload": payload, "to": to, "namespace": namespace})


def test_emit_broadcasts_on_devices_namespace():
    sio = FakeSocketIO()
    EmitterService(sio).emit("device_updated", {"device_id": "valve_1"})

    (emitted,) = sio.emits
    assert emitted["namespace"] == SOCKETIO_NAMESPACE_DEVICES
    assert emitted["to"] is None
    assert emitted["payload"] == {"device_id": "valve_1"}


def test_emit_errors_are_logged_not_raised():
    sio = MagicMock()
    sio.emit.side_effect = RuntimeError("no clients")
    EmitterService(sio).emit("device_updated", {})


def test_attach_forwards_device_events():
    sio = FakeSocketIO()
    bus = MagicMock()
    callbacks = {}

    def _subscribe(event, callback):
        callbacks[event] = callback
        return MagicMock()

    bus.subscribe.side_effect = _subscribe

    emitter = EmitterService(sio)
    emitter.attach(bus)
    emitter.attach(bus)
    assert bus.subscribe.call_count == 4

    callbacks[DeviceEvent.DEVICE_REGISTERED]({"device_id": "camera_1"})
    callbacks[DeviceEvent.DEVICE_OFFLINE]({"device_id": "sensor_1"})
    callbacks[DeviceEvent.DEVICE_COMMAND]({"device_id": "valve_1"})
    assert [e["event"] for e in sio.emits] == ["device_updated", "device_offline", "device_command"]

    emitter.detach()

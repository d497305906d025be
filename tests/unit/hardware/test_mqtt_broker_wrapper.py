from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt

from farmhub.enums.events import DeviceEvent
from farmhub.hardware.mqtt.client_factory import create_mqtt_client
from farmhub.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper


class DummyClient:
    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS, fail_connect=False):
        self.rc = rc
        self.fail_connect = fail_connect
        self.published = []
        self.loop_running = False

    def connect(self, *_args, **_kwargs):
        if self.fail_connect:
            raise ConnectionRefusedError("broker down")
        return 0

    def loop_start(self):
        self.loop_running = True

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        return 0

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, payload, qos))
        return SimpleNamespace(rc=self.rc)


def test_connect_publishes_connectivity_event():
    bus = MagicMock()
    wrapper = MQTTClientWrapper("broker", 1883, event_bus=bus, client=DummyClient())

    assert wrapper.connected
    assert wrapper.client.loop_running
    event, payload = bus.publish.call_args.args
    assert event is DeviceEvent.CONNECTIVITY_CHANGED
    assert payload.status == "connected"
    assert payload.endpoint == "broker:1883"


def test_connect_failure_is_recorded():
    wrapper = MQTTClientWrapper("broker", 1883, client=DummyClient(fail_connect=True))

    assert not wrapper.connected
    assert "broker down" in wrapper.health_status.last_error
    assert wrapper.publish("farm/valve_1/command", "{}") is False


def test_publish_tracks_outcome():
    client = DummyClient()
    wrapper = MQTTClientWrapper("broker", 1883, client=client)

    assert wrapper.publish("farm/valve_1/command", "{}") is True
    assert client.published == [("farm/valve_1/command", "{}", 1)]

    client.rc = mqtt.MQTT_ERR_NO_CONN
    assert wrapper.publish("farm/valve_1/command", "{}") is False
    stats = wrapper.health_status.to_dict()
    assert stats["successful_publishes"] == 1
    assert stats["failed_publishes"] == 1
    assert stats["publish_success_rate"] == 50.0


def test_disconnect_is_idempotent():
    bus = MagicMock()
    wrapper = MQTTClientWrapper("broker", 1883, event_bus=bus, client=DummyClient())
    wrapper.disconnect()
    wrapper.disconnect()

    assert not wrapper.connected
    statuses = [call.args[1].status for call in bus.publish.call_args_list]
    assert statuses == ["connected", "disconnected"]


def test_wrapper_builds_client_through_factory():
    dummy = DummyClient()
    with patch(
        "farmhub.hardware.mqtt.mqtt_broker_wrapper.create_mqtt_client",
        return_value=dummy,
    ) as factory:
        wrapper = MQTTClientWrapper("broker", 1883, client_id="farmhub-test")
    factory.assert_called_once_with(client_id="farmhub-test")
    assert wrapper.client is dummy


def test_client_factory_returns_paho_client():
    client = create_mqtt_client(client_id="farmhub-test")
    assert isinstance(client, mqtt.Client)

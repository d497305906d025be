import json
from unittest.mock import MagicMock

import pytest
import requests

from farmhub.config import AppConfig
from farmhub.domain.exceptions import CommandSendError, ConfigurationError
from farmhub.services.hardware.command_channels import (
    CommandChannel,
    HttpCommandChannel,
    MqttCommandChannel,
    SimulatedCommandChannel,
    build_command_channel,
)


def _config(**overrides):
    values = {"environment": "testing", "command_channel": "simulated", "log_file": ""}
    values.update(overrides)
    return AppConfig(**values)


class TestHttpChannel:
    def test_posts_command_json(self):
        session = MagicMock()
        session.post.return_value = MagicMock(ok=True, status_code=200)
        channel = HttpCommandChannel("http://gateway:8000/", timeout_seconds=3, session=session)

        channel.send("valve_1", "setPosition", {"openPercentage": 40.0})

        session.post.assert_called_once_with(
            "http://gateway:8000/api/devices/valve_1/command",
            json={"command": "setPosition", "params": {"openPercentage": 40.0}},
            timeout=3.0,
        )

    def test_non_ok_response_raises(self):
        session = MagicMock()
        session.post.return_value = MagicMock(ok=False, status_code=502)
        channel = HttpCommandChannel("http://gateway", session=session)

        with pytest.raises(CommandSendError) as excinfo:
            channel.send("valve_1", "setPosition", {})
        assert excinfo.value.detail["status_code"] == 502

    @pytest.mark.parametrize(
        "error",
        [requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("refused")],
    )
    def test_transport_errors_raise(self, error):
        session = MagicMock()
        session.post.side_effect = error
        channel = HttpCommandChannel("http://gateway", session=session)

        with pytest.raises(CommandSendError):
            channel.send("camera_1", "start", {})

    def test_requires_base_url(self):
        with pytest.raises(ConfigurationError):
            HttpCommandChannel("")

    def test_close_closes_session(self):
        session = MagicMock()
        HttpCommandChannel("http://gateway", session=session).close()
        session.close.assert_called_once()


class TestMqttChannel:
    def test_publishes_to_device_topic(self):
        client = MagicMock()
        client.publish.return_value = True
        channel = MqttCommandChannel(client, topic_prefix="/farm/")

        channel.send("camera_1", "record", {})

        topic, payload = client.publish.call_args.args
        assert topic == "farm/camera_1/command"
        assert json.loads(payload) == {"deviceId": "camera_1", "command": "record", "params": {}}

    def test_rejected_publish_raises(self):
        client = MagicMock()
        client.publish.return_value = False
        with pytest.raises(CommandSendError):
            MqttCommandChannel(client).send("camera_1", "record", {})


def test_simulated_channel_without_delay():
    channel = SimulatedCommandChannel(delay_seconds=0)
    channel.send("valve_1", "setPosition", {"openPercentage": 10})
    channel.close()
    assert isinstance(channel, CommandChannel)


def test_simulated_channel_close_cancels_pending_timers():
    channel = SimulatedCommandChannel(delay_seconds=60)
    channel.send("valve_1", "setPosition", {"openPercentage": 10})
    assert len(channel._timers) == 1
    channel.close()
    assert channel._timers == set()


def test_build_command_channel_selects_by_config():
    assert isinstance(build_command_channel(_config()), SimulatedCommandChannel)
    http = build_command_channel(_config(command_channel="http", device_api_base_url="http://gw:9000"))
    assert isinstance(http, HttpCommandChannel)
    assert http.base_url == "http://gw:9000"

    mqtt_client = MagicMock()
    mqtt = build_command_channel(_config(command_channel="mqtt"), mqtt_client=mqtt_client)
    assert isinstance(mqtt, MqttCommandChannel)
    assert mqtt.mqtt_client is mqtt_client


def test_mqtt_channel_requires_mqtt_enabled():
    with pytest.raises(ConfigurationError):
        build_command_channel(_config(command_channel="mqtt", enable_mqtt=False))

import dataclasses
import math
from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from farmhub.domain.devices import (
    CameraData,
    Device,
    DeviceSpec,
    IrrigationData,
    SensorData,
    ValveData,
    build_payload,
    clamp_percentage,
)
from farmhub.domain.exceptions import ValidationError
from farmhub.enums.device import DeviceStatus, DeviceType

NOW = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw, expected",
    [(-20, 0.0), (0, 0.0), (42.5, 42.5), (100, 100.0), (150, 100.0)],
)
def test_clamp_percentage(raw, expected):
    assert clamp_percentage(raw) == expected


def test_clamp_percentage_rejects_non_numeric():
    with pytest.raises(ValueError):
        clamp_percentage("half")
    with pytest.raises(ValueError):
        clamp_percentage(True)


@pytest.mark.parametrize("raw", [math.nan, math.inf, -math.inf])
def test_clamp_percentage_rejects_non_finite(raw):
    with pytest.raises(ValueError):
        clamp_percentage(raw)
    with pytest.raises(ValidationError):
        ValveData().merged({"openPercentage": raw})


def test_valve_is_open_follows_percentage():
    assert ValveData(open_percentage=0).is_open is False
    assert ValveData(open_percentage=5).is_open is True
    # A caller-supplied is_open never contradicts the percentage.
    assert ValveData(is_open=True, open_percentage=0).is_open is False


def test_valve_merge_reclamps():
    valve = ValveData().merged({"openPercentage": 250})
    assert valve.open_percentage == 100.0
    assert valve.is_open is True


def test_build_payload_accepts_camel_and_snake_keys():
    camera = build_payload(DeviceType.CAMERA, {"streamUrl": "rtsp://cam/1", "is_recording": True})
    assert isinstance(camera, CameraData)
    assert camera.stream_url == "rtsp://cam/1"
    assert camera.is_recording is True


def test_build_payload_rejects_foreign_keys():
    with pytest.raises(ValidationError) as excinfo:
        build_payload("sensor", {"temperature": 21.0, "openPercentage": 30})
    assert excinfo.value.detail["unknown_fields"] == ["openPercentage"]


def test_build_payload_rejects_mismatched_payload_instance():
    with pytest.raises(ValidationError):
        build_payload(DeviceType.VALVE, SensorData())


def test_irrigation_schedule_validation():
    data = build_payload("irrigation", {"schedule": {"enabled": True, "times": ["06:00", "18:30"], "duration": 15}})
    assert isinstance(data, IrrigationData)
    assert data.schedule.times == ("06:00", "18:30")

    with pytest.raises(ValidationError):
        build_payload("irrigation", {"schedule": {"times": ["25:00"]}})
    with pytest.raises(ValidationError):
        build_payload("irrigation", {"schedule": {"duration": -5}})


def test_schedule_merge_keeps_unspecified_fields():
    data = build_payload("irrigation", {"schedule": {"enabled": True, "times": ["06:00"], "duration": 10}})
    schedule = data.schedule.merged({"duration": 20})
    assert schedule.enabled is True
    assert schedule.times == ("06:00",)
    assert schedule.duration == 20


def test_payload_document_uses_camel_case():
    doc = IrrigationData(is_active=True, last_action=NOW).to_document()
    assert doc["isActive"] is True
    assert doc["lastAction"] == "2025-06-01T08:00:00+00:00"
    assert doc["schedule"] == {"enabled": False, "times": [], "duration": 0}


def test_device_spec_from_mapping():
    spec = DeviceSpec.from_mapping({"name": "  Main valve ", "type": "VALVE", "data": {"openPercentage": 30}})
    assert spec.name == "Main valve"
    assert spec.type is DeviceType.VALVE
    assert spec.data.open_percentage == 30.0


@pytest.mark.parametrize("raw", [{"type": "valve"}, {"name": "X", "type": "drone"}])
def test_device_spec_rejects_bad_input(raw):
    with pytest.raises(ValidationError):
        DeviceSpec.from_mapping(raw)


def test_device_rejects_payload_of_other_type():
    with pytest.raises(ValidationError):
        Device(
            id="camera_1",
            name="Cam",
            location="",
            type=DeviceType.CAMERA,
            status=DeviceStatus.OFFLINE,
            last_update=NOW,
            data=ValveData(),
        )


def test_device_document_roundtrip_preserves_fields():
    device = Device(
        id="sensor_1717228800000",
        name="Probe",
        location="Greenhouse",
        type=DeviceType.SENSOR,
        status=DeviceStatus.ONLINE,
        last_update=NOW,
        data=SensorData(temperature=21.5, humidity=60, timestamp=NOW),
        config={"interval": 30},
    )
    restored = Device.from_document(device.to_document())
    assert restored == device


def test_with_update_merges_and_refreshes_timestamp():
    device = Device(
        id="valve_1",
        name="Valve",
        location="",
        type=DeviceType.VALVE,
        status=DeviceStatus.OFFLINE,
        last_update=NOW,
        data=ValveData(),
    )
    later = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)
    updated = device.with_update(now=later, status=DeviceStatus.ONLINE, partial_data={"openPercentage": 40})
    assert updated.status is DeviceStatus.ONLINE
    assert updated.data.open_percentage == 40.0
    assert updated.last_update == later
    assert device.data.open_percentage == 0.0


def test_from_document_requires_timestamp():
    with pytest.raises(ValidationError):
        Device.from_document({"id": "valve_1", "type": "valve", "status": "online"})


@pytest.mark.parametrize(
    "device_type, partial",
    [
        ("sensor", {"humidity": "very wet"}),
        ("sensor", {"temperature": [1, 2]}),
        ("sensor", {"soilMoisture": math.nan}),
        ("camera", {"isRecording": "no"}),
        ("camera", {"streamUrl": 42}),
        ("irrigation", {"flowRate": True}),
        ("irrigation", {"schedule": {"enabled": "yes"}}),
        ("irrigation", {"schedule": {"times": "06:00"}}),
        ("valve", {"isOpen": 1}),
    ],
)
def test_merge_rejects_mistyped_values(device_type, partial):
    payload = build_payload(device_type, {})
    with pytest.raises(ValidationError):
        payload.merged(partial)


def test_integer_readings_are_stored_as_floats():
    data = build_payload("sensor", {"humidity": 61})
    assert data.humidity == 61.0
    assert isinstance(data.humidity, float)


def test_payloads_are_immutable():
    valve = ValveData(open_percentage=30)
    with pytest.raises(dataclasses.FrozenInstanceError):
        valve.open_percentage = 250
    schedule = build_payload("irrigation", {"schedule": {"times": ["06:00"]}}).schedule
    with pytest.raises(AttributeError):
        schedule.times.append("07:00")


def test_device_config_is_read_only():
    device = Device(
        id="camera_1",
        name="Cam",
        location="",
        type=DeviceType.CAMERA,
        status=DeviceStatus.OFFLINE,
        last_update=NOW,
        data=CameraData(),
        config={"fps": 30},
    )
    assert isinstance(device.config, MappingProxyType)
    with pytest.raises(TypeError):
        device.config["fps"] = 60
    assert device.to_document()["config"] == {"fps": 30}

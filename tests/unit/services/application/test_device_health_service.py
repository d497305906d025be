from unittest.mock import MagicMock

import pytest

from farmhub.domain.exceptions import PersistenceError
from farmhub.enums.device import DeviceStatus
from farmhub.enums.events import DeviceEvent
from farmhub.services.application.device_health_service import HEALTH_SCAN_TASK, DeviceHealthService
from farmhub.workers.unified_scheduler import UnifiedScheduler


def _offline_events(event_bus):
    return [c.args[1] for c in event_bus.publish.call_args_list if c.args[0] is DeviceEvent.DEVICE_OFFLINE]


@pytest.fixture()
def online_sensor(registry):
    device_id = registry.register({"name": "North temperature and humidity sensor", "type": "sensor"})
    registry.apply_update(device_id, status="online")
    return device_id


def test_silent_device_goes_offline(health_service, registry, clock, event_bus, online_sensor):
    clock.advance(90)

    marked = health_service.check_device_health()

    assert marked == [online_sensor]
    assert registry.get(online_sensor).status is DeviceStatus.OFFLINE
    (event,) = _offline_events(event_bus)
    assert event.device_id == online_sensor
    assert event.previous_status == "online"
    assert event.silent_seconds == 90.0
    assert event.timeout_seconds == 60.0


def test_device_within_timeout_stays_online(health_service, registry, clock, online_sensor):
    clock.advance(60)
    assert health_service.check_device_health() == []
    assert registry.get(online_sensor).status is DeviceStatus.ONLINE


def test_recent_update_keeps_device_online(health_service, registry, clock, online_sensor):
    clock.advance(50)
    registry.apply_update(online_sensor, partial_data={"temperature": 19.0})
    clock.advance(50)
    assert health_service.check_device_health() == []


def test_scan_never_brings_devices_online(health_service, registry, clock, event_bus, online_sensor):
    clock.advance(120)
    health_service.check_device_health()
    clock.advance(120)

    assert health_service.check_device_health() == []
    assert registry.get(online_sensor).status is DeviceStatus.OFFLINE
    assert len(_offline_events(event_bus)) == 1


def test_registered_devices_start_offline_and_are_skipped(health_service, registry, clock):
    registry.register({"name": "Main water valve", "type": "valve"})
    clock.advance(600)
    assert health_service.check_device_health() == []


def test_persistence_failure_does_not_stop_the_scan(event_bus, clock):
    registry = MagicMock()
    first, second = MagicMock(status=DeviceStatus.ONLINE), MagicMock(status=DeviceStatus.ONLINE)
    first.id, second.id = "sensor_1", "sensor_2"
    first.name, second.name = "A", "B"
    first.last_update = second.last_update = clock.now
    registry.list.return_value = [first, second]
    registry.mark_offline_if_silent.side_effect = [PersistenceError("locked"), second]

    service = DeviceHealthService(registry, event_bus=event_bus, clock=clock)
    clock.advance(300)

    assert service.check_device_health() == ["sensor_2"]


def test_start_schedules_interval_job(registry):
    scheduler = MagicMock()
    service = DeviceHealthService(registry, scheduler=scheduler, scan_interval_seconds=15)

    service.start()
    service.start()

    scheduler.register_task.assert_called_once_with(HEALTH_SCAN_TASK, service.check_device_health)
    scheduler.schedule_interval.assert_called_once_with(HEALTH_SCAN_TASK, 15, job_id=HEALTH_SCAN_TASK)
    assert service.is_running

    service.stop()
    scheduler.remove_job.assert_called_once_with(HEALTH_SCAN_TASK)
    assert not service.is_running


def test_start_without_scheduler(health_service):
    with pytest.raises(RuntimeError):
        health_service.start()


@pytest.mark.parametrize("interval, timeout", [(0, 60), (30, 0), (-1, -1)])
def test_rejects_non_positive_settings(registry, interval, timeout):
    with pytest.raises(ValueError):
        DeviceHealthService(registry, scan_interval_seconds=interval, offline_timeout_seconds=timeout)


def test_run_scan_goes_through_scheduler_history(registry, clock, event_bus, online_sensor):
    scheduler = UnifiedScheduler()
    service = DeviceHealthService(registry, event_bus=event_bus, scheduler=scheduler, clock=clock)
    clock.advance(90)

    assert service.run_scan() == [online_sensor]
    (run,) = scheduler.get_history(HEALTH_SCAN_TASK)
    assert run.success is True
    assert run.result == [online_sensor]
    scheduler.shutdown()


def test_run_scan_raises_when_scan_fails(event_bus):
    registry = MagicMock()
    registry.list.side_effect = RuntimeError("registry unavailable")
    scheduler = UnifiedScheduler()
    service = DeviceHealthService(registry, event_bus=event_bus, scheduler=scheduler)

    with pytest.raises(RuntimeError, match="registry unavailable"):
        service.run_scan()
    assert scheduler.get_history(HEALTH_SCAN_TASK)[-1].success is False
    scheduler.shutdown()


def test_run_scan_without_scheduler(health_service, clock, online_sensor):
    clock.advance(90)
    assert health_service.run_scan() == [online_sensor]

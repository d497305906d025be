from unittest.mock import patch

import pytest

from farmhub.config import AppConfig
from farmhub.services.application.device_health_service import HEALTH_SCAN_TASK
from farmhub.services.container import CHANGE_FEED_TASK, ServiceContainer
from farmhub.services.hardware.command_channels import SimulatedCommandChannel


def _config(tmp_path, **overrides):
    values = {
        "environment": "testing",
        "database_path": str(tmp_path / "db" / "farmhub.db"),
        "audit_log_path": str(tmp_path / "audit.log"),
        "log_file": "",
        "command_channel": "simulated",
        "simulated_command_delay_seconds": 0,
    }
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture()
def built(tmp_path):
    containers = []

    def _build(**kwargs):
        config = kwargs.pop("config", None) or _config(tmp_path)
        container = ServiceContainer.build(config, **kwargs)
        containers.append(container)
        return container

    yield _build
    for container in containers:
        container.shutdown()


def test_build_wires_services(built):
    container = built()

    assert isinstance(container.command_channel, SimulatedCommandChannel)
    assert container.command_dispatcher.registry is container.device_registry
    assert container.device_repo.listener_count == 1
    assert container.emitter_service is None


def test_seed_demo_devices_on_build(built, tmp_path):
    container = built(config=_config(tmp_path, seed_demo_devices=True))
    assert len(container.device_registry) == 4


def test_registry_reloads_from_file_database(built, tmp_path):
    first = built()
    device_id = first.device_registry.register({"name": "Main water valve", "type": "valve"})
    first.shutdown()

    second = built()
    assert second.device_registry.get(device_id) is not None


def test_background_jobs_for_file_database(built):
    container = built(start_background=True)

    job_ids = {job.job_id for job in container.scheduler.get_jobs()}
    assert job_ids == {HEALTH_SCAN_TASK, CHANGE_FEED_TASK}
    assert container.scheduler.is_running()


def test_change_feed_is_skipped_for_memory_database(built, tmp_path):
    container = built(config=_config(tmp_path, database_path=":memory:"), start_background=True)
    assert {job.job_id for job in container.scheduler.get_jobs()} == {HEALTH_SCAN_TASK}


def test_mqtt_channel_uses_shared_client(built, tmp_path):
    config = _config(tmp_path, command_channel="mqtt", enable_mqtt=True)
    with patch("farmhub.services.container.MQTTClientWrapper") as wrapper_cls, patch(
        "farmhub.services.container.configure_mqtt_logger"
    ):
        container = built(config=config)

    assert container.mqtt_client is wrapper_cls.return_value
    assert container.command_channel.mqtt_client is wrapper_cls.return_value


def test_shutdown_is_idempotent(built):
    container = built()
    container.shutdown()
    container.shutdown()
    assert container.device_repo.listener_count == 0


def test_shutdown_drops_the_exit_hook(built):
    container = built()
    with patch("farmhub.services.container.atexit") as atexit_mod:
        container.shutdown()
        container.shutdown()
    atexit_mod.unregister.assert_called_once_with(container.shutdown)


def test_create_app_registers_exit_hook(tmp_path):
    from farmhub import create_app

    with patch("farmhub.atexit") as atexit_mod:
        app = create_app(config=_config(tmp_path, enable_health_monitor=False))
    container = app.config["CONTAINER"]
    atexit_mod.register.assert_called_once_with(container.shutdown)
    container.shutdown()

"""
Shared test fixtures for the FarmHub backend test suite.

Provides:
- In-memory SQLite database with the device table created
- Device repository, registry, dispatcher and health service wired together
- A recording command channel and a controllable clock
- A Flask app + test client backed by an in-memory container

Usage:
    def test_example(registry, clock):
        device_id = registry.register({"name": "Valve", "type": "valve"})
        assert registry.get(device_id).status.value == "offline"
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from farmhub.domain.exceptions import CommandSendError
from farmhub.services.application.device_health_service import DeviceHealthService
from farmhub.services.hardware.command_dispatcher import CommandDispatcher
from farmhub.services.hardware.device_registry import DeviceRegistry
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging, keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("farmhub").setLevel(logging.WARNING)

START = datetime(2025, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingChannel:
    """Command channel that records every send; ``fail`` makes sends raise."""

    name = "recording"

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.fail = False
        self.closed = False

    def send(self, device_id: str, command: str, params: dict[str, Any]) -> None:
        if self.fail:
            raise CommandSendError(f"gateway unreachable for {device_id}")
        self.sent.append((device_id, command, dict(params)))

    def close(self) -> None:
        self.closed = True


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database, no cross-test contamination.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler
    handler.close_all()


@pytest.fixture()
def device_repo(db_handler):
    return DeviceRepository(db_handler)


# ========================== Service Fixtures ===============================


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def event_bus():
    """MagicMock event bus; inspect ``publish.call_args_list``."""
    return MagicMock()


@pytest.fixture()
def channel():
    return RecordingChannel()


@pytest.fixture()
def registry(device_repo, event_bus, clock):
    reg = DeviceRegistry(device_repo, event_bus, clock=clock)
    reg.start()
    yield reg
    reg.close()


@pytest.fixture()
def audit_logger():
    return MagicMock()


@pytest.fixture()
def dispatcher(registry, channel, event_bus, audit_logger, clock):
    return CommandDispatcher(registry, channel, event_bus=event_bus, audit_logger=audit_logger, clock=clock)


@pytest.fixture()
def health_service(registry, event_bus, clock):
    return DeviceHealthService(
        registry,
        event_bus=event_bus,
        scan_interval_seconds=30,
        offline_timeout_seconds=60,
        clock=clock,
    )


# ========================== Flask Fixtures =================================


@pytest.fixture()
def app(tmp_path, channel):
    """Flask app over an in-memory store with the recording channel."""
    from farmhub import create_app
    from farmhub.config import AppConfig

    config = AppConfig(
        environment="testing",
        database_path=":memory:",
        audit_log_path=str(tmp_path / "audit.log"),
        log_file="",
        command_channel="simulated",
        simulated_command_delay_seconds=0,
        enable_health_monitor=False,
        seed_demo_devices=False,
    )
    flask_app = create_app(config=config, container_options={"command_channel": channel})
    flask_app.config["TESTING"] = True
    yield flask_app
    flask_app.config["CONTAINER"].shutdown()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def container(app):
    return app.config["CONTAINER"]

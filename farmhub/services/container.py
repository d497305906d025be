from __future__ import annotations

import atexit
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from farmhub.config import AppConfig
from farmhub.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper, configure_mqtt_logger
from farmhub.services.application.demo_devices import seed_demo_devices
from farmhub.services.application.device_health_service import DeviceHealthService
from farmhub.services.hardware.command_channels import CommandChannel, build_command_channel
from farmhub.services.hardware.command_dispatcher import CommandDispatcher
from farmhub.services.hardware.device_registry import DeviceRegistry
from farmhub.utils.emitters import EmitterService
from farmhub.utils.event_bus import EventBus
from farmhub.utils.time import utc_now
from farmhub.workers.unified_scheduler import UnifiedScheduler
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.logging.audit import AuditLogger
from infrastructure.logging.event_logger import EventLogger

logger = logging.getLogger(__name__)

CHANGE_FEED_TASK = "devices.change_feed"


@dataclass
class ServiceContainer:
    """Aggregate and manage the device backend services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    device_repo: DeviceRepository
    event_bus: EventBus
    audit_logger: AuditLogger
    event_logger: EventLogger
    scheduler: UnifiedScheduler
    command_channel: CommandChannel
    device_registry: DeviceRegistry
    command_dispatcher: CommandDispatcher
    device_health_service: DeviceHealthService
    mqtt_client: Optional[MQTTClientWrapper] = None
    emitter_service: Optional[EmitterService] = None
    _shutdown_complete: bool = field(default=False, init=False, repr=False)

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        start_background: bool = False,
        socketio=None,
        command_channel: Optional[CommandChannel] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            start_background: Start the scheduler (health scan, change feed)
            socketio: Socket.IO server; device events are broadcast when given
            command_channel: Overrides the configured outbound channel (tests)
            clock: Time source shared by the registry, dispatcher and monitor
        """
        logger.info("Building ServiceContainer...")

        database = SQLiteDatabaseHandler(config.database_path)
        database.init_app()
        device_repo = DeviceRepository(database)

        event_bus = EventBus(queue_size=config.eventbus_queue_size, worker_count=config.eventbus_worker_count)
        audit_logger = AuditLogger(config.audit_log_path, level=config.log_level)
        event_logger = EventLogger(event_bus)
        scheduler = UnifiedScheduler(max_workers=config.scheduler_max_workers)

        mqtt_client: Optional[MQTTClientWrapper] = None
        if command_channel is None:
            if config.enable_mqtt:
                configure_mqtt_logger()
                mqtt_client = MQTTClientWrapper(
                    config.mqtt_broker_host,
                    config.mqtt_broker_port,
                    client_id="farmhub-backend",
                    event_bus=event_bus,
                )
            command_channel = build_command_channel(config, event_bus=event_bus, mqtt_client=mqtt_client)
        logger.info("Outbound command channel: %s", command_channel.name)

        device_registry = DeviceRegistry(device_repo, event_bus, clock=clock)
        device_registry.start()

        command_dispatcher = CommandDispatcher(
            device_registry,
            command_channel,
            event_bus=event_bus,
            audit_logger=audit_logger,
            clock=clock,
        )
        device_health_service = DeviceHealthService(
            device_registry,
            event_bus=event_bus,
            scheduler=scheduler,
            scan_interval_seconds=config.health_scan_interval_seconds,
            offline_timeout_seconds=config.device_offline_timeout_seconds,
            clock=clock,
        )

        emitter_service = None
        if socketio is not None:
            emitter_service = EmitterService(socketio)
            emitter_service.attach(event_bus)

        container = cls(
            config=config,
            database=database,
            device_repo=device_repo,
            event_bus=event_bus,
            audit_logger=audit_logger,
            event_logger=event_logger,
            scheduler=scheduler,
            command_channel=command_channel,
            device_registry=device_registry,
            command_dispatcher=command_dispatcher,
            device_health_service=device_health_service,
            mqtt_client=mqtt_client,
            emitter_service=emitter_service,
        )

        if config.seed_demo_devices:
            seed_demo_devices(device_registry)

        if start_background:
            container.start_background()

        logger.info("ServiceContainer built successfully.")
        return container

    def start_background(self) -> None:
        """Schedule the periodic jobs and start the scheduler thread."""
        if self.config.enable_health_monitor:
            self.device_health_service.start()
        if not self.database.is_memory:
            self.scheduler.register_task(CHANGE_FEED_TASK, self.device_repo.poll_changes)
            self.scheduler.schedule_interval(
                CHANGE_FEED_TASK,
                self.config.change_feed_poll_seconds,
                job_id=CHANGE_FEED_TASK,
            )
        self.scheduler.start()

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        if self._shutdown_complete:
            return
        self._shutdown_complete = True
        atexit.unregister(self.shutdown)

        self.device_health_service.stop()
        self.scheduler.shutdown()
        self.device_registry.close()

        if self.emitter_service is not None:
            self.emitter_service.detach()
        self.event_logger.close()
        self.command_channel.close()
        if self.mqtt_client is not None and self.mqtt_client.connected:
            self.mqtt_client.disconnect()

        self.event_bus.shutdown()
        self.audit_logger.close()
        self.database.close_all()
        logger.info("ServiceContainer shutdown complete.")

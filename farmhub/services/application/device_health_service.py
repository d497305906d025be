"""
Device Health Service
=====================

Marks devices ``offline`` once they have been silent for longer than the
offline timeout. A device only comes back ``online`` through a command or
an inbound update, never through this scan.

The scan runs as an interval job on the :class:`UnifiedScheduler`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, List, Optional

from farmhub.domain.exceptions import FarmHubError
from farmhub.enums.device import DeviceStatus
from farmhub.enums.events import DeviceEvent
from farmhub.schemas.events import DeviceOfflinePayload
from farmhub.utils.time import to_iso, utc_now

if TYPE_CHECKING:
    from farmhub.services.hardware.device_registry import DeviceRegistry
    from farmhub.utils.event_bus import EventBus
    from farmhub.workers.unified_scheduler import UnifiedScheduler

logger = logging.getLogger(__name__)

HEALTH_SCAN_TASK = "devices.health_scan"


class DeviceHealthService:
    """Periodic connectivity check over the registry."""

    def __init__(
        self,
        registry: "DeviceRegistry",
        *,
        event_bus: Optional["EventBus"] = None,
        scheduler: Optional["UnifiedScheduler"] = None,
        scan_interval_seconds: int = 30,
        offline_timeout_seconds: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if scan_interval_seconds <= 0 or offline_timeout_seconds <= 0:
            raise ValueError("scan interval and offline timeout must be positive")
        self.registry = registry
        self.event_bus = event_bus
        self.scheduler = scheduler
        self.scan_interval_seconds = int(scan_interval_seconds)
        self.offline_timeout = timedelta(seconds=offline_timeout_seconds)
        self._clock = clock
        self._started = False
        if scheduler is not None:
            scheduler.register_task(HEALTH_SCAN_TASK, self.check_device_health)

    def check_device_health(self, now: Optional[datetime] = None) -> List[str]:
        """
        Mark every device silent for longer than the timeout as offline.

        Args:
            now: Reference time; defaults to the service clock.

        Returns:
            Ids of the devices marked offline by this scan.
        """
        now = now or self._clock()
        marked: List[str] = []

        for device in self.registry.list():
            if device.status is DeviceStatus.OFFLINE:
                continue
            silent_for = now - device.last_update
            if silent_for <= self.offline_timeout:
                continue

            try:
                previous = self.registry.mark_offline_if_silent(device.id, now=now, timeout=self.offline_timeout)
            except FarmHubError as exc:
                logger.error("Could not mark device %s offline: %s", device.id, exc)
                continue
            if previous is None:
                continue

            marked.append(device.id)
            logger.warning(
                "Device %s '%s' marked offline (silent %.0fs > %.0fs)",
                device.id,
                device.name,
                silent_for.total_seconds(),
                self.offline_timeout.total_seconds(),
            )
            self._publish_offline(device.id, device.name, previous.status, silent_for.total_seconds(), now)

        if marked:
            logger.info("Health scan marked %s device(s) offline", len(marked))
        return marked

    def _publish_offline(
        self,
        device_id: str,
        name: str,
        previous_status: DeviceStatus,
        silent_seconds: float,
        now: datetime,
    ) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(
            DeviceEvent.DEVICE_OFFLINE,
            DeviceOfflinePayload(
                device_id=device_id,
                name=name,
                previous_status=previous_status.value,
                silent_seconds=round(silent_seconds, 3),
                timeout_seconds=self.offline_timeout.total_seconds(),
                timestamp=to_iso(now),
            ),
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Schedule the scan as an interval job."""
        if self._started:
            return
        if self.scheduler is None:
            raise RuntimeError("DeviceHealthService.start() needs a scheduler")
        self.scheduler.schedule_interval(HEALTH_SCAN_TASK, self.scan_interval_seconds, job_id=HEALTH_SCAN_TASK)
        self._started = True
        logger.info(
            "Device health monitor started (every %ss, offline after %ss)",
            self.scan_interval_seconds,
            int(self.offline_timeout.total_seconds()),
        )

    def run_scan(self) -> List[str]:
        """
        Run one scan now. With a scheduler the run goes through
        :meth:`UnifiedScheduler.run_now` and lands in its history.

        Raises:
            RuntimeError: the scan failed
        """
        if self.scheduler is None:
            return self.check_device_health()
        result = self.scheduler.run_now(HEALTH_SCAN_TASK)
        if result is None or not result.success:
            raise RuntimeError(f"Device health scan failed: {result.error if result else 'task not registered'}")
        return result.result

    def stop(self) -> None:
        if not self._started:
            return
        if self.scheduler is not None:
            self.scheduler.remove_job(HEALTH_SCAN_TASK)
        self._started = False
        logger.info("Device health monitor stopped")

    @property
    def is_running(self) -> bool:
        return self._started

"""
Device Registry
===============

Authoritative in-process snapshot of every known device.

All mutations (API requests, command dispatch, the health scan and the
store's change feed) go through this class and are serialized by one lock.
Each mutation persists first and only then touches the in-memory map, so a
failed write leaves the snapshot unchanged.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from farmhub.domain.devices import Device, DeviceSpec, payload_class_for
from farmhub.domain.exceptions import NotFoundError, ValidationError
from farmhub.enums.device import DeviceStatus, DeviceType
from farmhub.enums.events import DeviceEvent
from farmhub.schemas.events import DeviceChangedPayload
from farmhub.utils.time import epoch_millis, to_iso, utc_now

if TYPE_CHECKING:
    from farmhub.utils.event_bus import EventBus
    from infrastructure.database.repositories.devices import DeviceRepository, DocumentChange

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Holds the device map and writes every change through the store."""

    def __init__(
        self,
        repository: "DeviceRepository",
        event_bus: Optional["EventBus"] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.event_bus = event_bus
        self._clock = clock
        self._devices: dict[str, Device] = {}
        self._issued_ids: set[str] = set()
        self._lock = threading.RLock()
        self._unsubscribers: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> int:
        """
        Follow the store's change feed and load the stored devices.

        Subscribing happens before loading so nothing written in between is
        lost; a document seen twice is resolved by ``last_update``.

        Returns:
            Number of devices in the snapshot afterwards.
        """
        if not self._unsubscribers:
            self._unsubscribers.append(self.repository.subscribe(self._on_store_change))

        loaded = 0
        for document in self.repository.list_documents():
            try:
                device = Device.from_document(document)
            except ValidationError as exc:
                logger.warning("Skipping stored device %s: %s", document.get("id"), exc)
                continue
            if self._mirror(device):
                loaded += 1
        logger.info("Device registry started with %s device(s) (%s loaded from store)", len(self._devices), loaded)
        return len(self._devices)

    def close(self) -> None:
        """Stop following the change feed."""
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.info("Device registry closed (%s listener(s) removed)", len(unsubscribers))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, device_id: str) -> Optional[Device]:
        with self._lock:
            return self._devices.get(device_id)

    def require(self, device_id: str) -> Device:
        device = self.get(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found", detail={"device_id": device_id})
        return device

    def list(self) -> list[Device]:
        with self._lock:
            return list(self._devices.values())

    def list_by_type(self, device_type: DeviceType | str) -> list[Device]:
        try:
            wanted = DeviceType(device_type)
        except ValueError as exc:
            raise ValidationError(f"Unsupported device type '{device_type}'") from exc
        return [device for device in self.list() if device.type is wanted]

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def register(self, spec: DeviceSpec | Mapping[str, Any]) -> str:
        """
        Add a new device; it starts ``offline`` until it is first reached.

        Raises:
            ValidationError: malformed spec
            PersistenceError: the store rejected the write
        """
        if not isinstance(spec, DeviceSpec):
            spec = DeviceSpec.from_mapping(spec)

        with self._lock:
            now = self._clock()
            device_id = self._new_id(spec.type, now)
            device = Device(
                id=device_id,
                name=spec.name,
                location=spec.location,
                type=spec.type,
                status=DeviceStatus.OFFLINE,
                last_update=now,
                data=spec.data if spec.data is not None else payload_class_for(spec.type)(),
                config=dict(spec.config),
            )
            self.repository.create(device_id, device.to_document())
            self._issued_ids.add(device_id)
            self._devices[device_id] = device

        logger.info("Registered %s device %s '%s'", spec.type.value, device_id, spec.name)
        self._publish(DeviceEvent.DEVICE_REGISTERED, device, previous_status=None, source="register")
        return device_id

    def apply_update(
        self,
        device_id: str,
        status: DeviceStatus | str | None = None,
        partial_data: Mapping[str, Any] | None = None,
    ) -> Device:
        """
        Merge *partial_data* into the device payload, optionally set *status*,
        and refresh ``last_update``.

        Raises:
            NotFoundError: unknown device id
            ValidationError: a key in *partial_data* does not belong to the payload
            PersistenceError: the store rejected the write
        """
        if status is not None and not isinstance(status, DeviceStatus):
            try:
                status = DeviceStatus(status)
            except ValueError as exc:
                raise ValidationError(f"Unsupported device status '{status}'") from exc

        with self._lock:
            current = self.require(device_id)
            updated = current.with_update(now=self._clock(), status=status, partial_data=partial_data)

            changes: dict[str, Any] = {
                "status": updated.status.value,
                "lastUpdate": to_iso(updated.last_update),
            }
            data_changes = _changed_keys(current.data.to_document(), updated.data.to_document())
            if data_changes:
                changes["data"] = data_changes

            self.repository.merge_update(device_id, changes)
            self._devices[device_id] = updated

        self._publish(DeviceEvent.DEVICE_UPDATED, updated, previous_status=current.status, source="update")
        return updated

    def mark_offline_if_silent(self, device_id: str, *, now: datetime, timeout: timedelta) -> Optional[Device]:
        """
        Set ``offline`` if the device is not offline and has been silent
        longer than *timeout* at *now*. Check and write happen under the lock.

        Returns:
            The device as it was before the change, or None if nothing changed.
        """
        with self._lock:
            current = self._devices.get(device_id)
            if current is None or current.status is DeviceStatus.OFFLINE:
                return None
            if now - current.last_update <= timeout:
                return None
            self.apply_update(device_id, status=DeviceStatus.OFFLINE)
            return current

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _new_id(self, device_type: DeviceType, now: datetime) -> str:
        stamp = now
        device_id = f"{device_type.value}_{epoch_millis(stamp)}"
        while device_id in self._devices or device_id in self._issued_ids:
            stamp += timedelta(milliseconds=1)
            device_id = f"{device_type.value}_{epoch_millis(stamp)}"
        return device_id

    def _on_store_change(self, change: "DocumentChange") -> None:
        if change.local:
            return
        try:
            device = Device.from_document(change.document)
        except ValidationError as exc:
            logger.warning("Ignoring malformed device document %s from change feed: %s", change.device_id, exc)
            return
        previous = self.get(device.id)
        if self._mirror(device):
            logger.debug("Mirrored remote change for %s (seq=%s)", device.id, change.change_seq)
            self._publish(
                DeviceEvent.DEVICE_UPDATED,
                device,
                previous_status=previous.status if previous else None,
                source="remote",
            )

    def _mirror(self, device: Device) -> bool:
        """Last-write-wins on ``last_update``; returns True if the map changed."""
        with self._lock:
            existing = self._devices.get(device.id)
            if existing is not None and device.last_update <= existing.last_update:
                return False
            self._devices[device.id] = device
            self._issued_ids.add(device.id)
            return True

    def _publish(
        self,
        event: DeviceEvent,
        device: Device,
        *,
        previous_status: DeviceStatus | None,
        source: str,
    ) -> None:
        if self.event_bus is None:
            return
        payload = DeviceChangedPayload(
            device_id=device.id,
            device_type=device.type.value,
            name=device.name,
            status=device.status.value,
            previous_status=previous_status.value if previous_status else None,
            last_update=to_iso(device.last_update),
            source=source,
            device=device.to_document(),
        )
        self.event_bus.publish(event, payload)


def _changed_keys(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in after.items() if before.get(key) != value}

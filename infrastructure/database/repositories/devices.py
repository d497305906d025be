from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any, Callable

from farmhub.domain.exceptions import PersistenceError
from infrastructure.database.ops.devices import DeviceDocumentOperations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentChange:
    """A device document as written to the store.

    ``local`` is True when the write was made through this repository
    instance, False when it was read back from the change feed.
    """

    device_id: str
    document: dict[str, Any]
    change_seq: int
    local: bool


ChangeListener = Callable[[DocumentChange], None]


class DeviceRepository:
    """Facade over device document persistence with a change feed.

    Writes made through this instance notify listeners immediately.
    :meth:`poll_changes` picks up rows written by other processes sharing
    the database file; each change is delivered at most once per instance.
    """

    def __init__(self, backend: DeviceDocumentOperations) -> None:
        self._backend = backend
        self._listeners: list[ChangeListener] = []
        self._lock = threading.Lock()
        self._cursor: int | None = None
        self._local_seqs: set[int] = set()

    # Writes ------------------------------------------------------------------
    def create(self, device_id: str, document: dict[str, Any]) -> int:
        """Persist a new document; a duplicate id is a :class:`PersistenceError`."""
        try:
            seq = self._backend.insert_device_document(device_id, document)
        except sqlite3.IntegrityError as exc:
            raise PersistenceError(
                f"Device document {device_id} already exists",
                detail={"device_id": device_id},
            ) from exc
        except sqlite3.Error as exc:
            logger.error("Error inserting device document %s: %s", device_id, exc)
            raise PersistenceError(f"Could not store device {device_id}", detail={"device_id": device_id}) from exc
        self._notify(DocumentChange(device_id, dict(document), seq, local=True))
        return seq

    def merge_update(self, device_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Merge *changes* into the stored document and return the merged result."""
        try:
            result = self._backend.merge_device_document(device_id, changes)
        except sqlite3.Error as exc:
            logger.error("Error updating device document %s: %s", device_id, exc)
            raise PersistenceError(f"Could not update device {device_id}", detail={"device_id": device_id}) from exc
        if result is None:
            raise PersistenceError(
                f"Device document {device_id} does not exist",
                detail={"device_id": device_id},
            )
        merged, seq = result
        self._notify(DocumentChange(device_id, merged, seq, local=True))
        return merged

    # Reads -------------------------------------------------------------------
    def get(self, device_id: str) -> dict[str, Any] | None:
        try:
            return self._backend.get_device_document(device_id)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read device {device_id}") from exc

    def list_documents(self, device_type: str | None = None) -> list[dict[str, Any]]:
        try:
            return self._backend.list_device_documents(device_type)
        except sqlite3.Error as exc:
            raise PersistenceError("Could not list device documents") from exc

    # Change feed -------------------------------------------------------------
    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener* for document changes; returns the unsubscribe function."""
        with self._lock:
            if self._cursor is None:
                try:
                    self._cursor = self._backend.get_latest_change_seq()
                except sqlite3.Error as exc:
                    raise PersistenceError("Could not read the device change feed position") from exc
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    return

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def poll_changes(self, limit: int = 500) -> int:
        """
        Deliver rows changed since the last poll to the listeners.

        Returns:
            Number of changes delivered.
        """
        with self._lock:
            if self._cursor is None or not self._listeners:
                return 0
            cursor = self._cursor

        try:
            rows = self._backend.get_device_changes_since(cursor, limit=limit)
        except sqlite3.Error as exc:
            raise PersistenceError("Could not read the device change feed") from exc

        delivered = 0
        for seq, document in rows:
            with self._lock:
                self._cursor = max(self._cursor or 0, seq)
                if seq in self._local_seqs:
                    self._local_seqs.discard(seq)
                    continue
            self._notify(DocumentChange(str(document.get("id")), document, seq, local=False), record=False)
            delivered += 1

        with self._lock:
            # Local writes at or below the cursor can no longer come back from the feed.
            self._local_seqs = {seq for seq in self._local_seqs if seq > (self._cursor or 0)}
        return delivered

    def _notify(self, change: DocumentChange, *, record: bool = True) -> None:
        with self._lock:
            if record and self._cursor is not None:
                self._local_seqs.add(change.change_seq)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception as exc:  # noqa: BLE001
                logger.error("Device change listener failed for %s: %s", change.device_id, exc, exc_info=True)

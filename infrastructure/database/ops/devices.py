from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from farmhub.utils.time import iso_now

logger = logging.getLogger(__name__)

# Keys of the document ``data`` sub-record are merged one level deep.
_NESTED_MERGE_KEYS = frozenset({"data"})


def merge_document(current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow merge of *changes* into *current*; ``data`` is merged one level."""
    merged = dict(current)
    for key, value in changes.items():
        if key in _NESTED_MERGE_KEYS and isinstance(value, dict) and isinstance(merged.get(key), dict):
            nested = dict(merged[key])
            nested.update(value)
            merged[key] = nested
        else:
            merged[key] = value
    return merged


class DeviceDocumentOperations:
    """Device document helpers mixed into the SQLite handler.

    Every write bumps a global ``change_seq`` so readers in other processes
    can find rows changed since the last sequence they saw. sqlite3 errors
    propagate; the repository layer translates them.
    """

    def _next_change_seq(self, db: sqlite3.Connection) -> int:
        row = db.execute("SELECT COALESCE(MAX(change_seq), 0) + 1 FROM DeviceDocuments").fetchone()
        return int(row[0])

    def insert_device_document(self, device_id: str, document: Dict[str, Any]) -> int:
        """Insert a new document. Raises ``sqlite3.IntegrityError`` on a duplicate id."""
        with self.transaction() as db:
            seq = self._next_change_seq(db)
            db.execute(
                """
                INSERT INTO DeviceDocuments (device_id, device_type, document, change_seq, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (device_id, document.get("type", ""), json.dumps(document), seq, iso_now()),
            )
        logger.debug("Inserted device document %s (seq=%s)", device_id, seq)
        return seq

    def merge_device_document(
        self, device_id: str, changes: Dict[str, Any]
    ) -> Optional[Tuple[Dict[str, Any], int]]:
        """
        Merge *changes* into the stored document.

        Returns:
            ``(merged_document, change_seq)`` or None when no row exists.
        """
        with self.transaction() as db:
            row = db.execute(
                "SELECT document FROM DeviceDocuments WHERE device_id = ?",
                (device_id,),
            ).fetchone()
            if row is None:
                return None
            merged = merge_document(json.loads(row["document"]), changes)
            seq = self._next_change_seq(db)
            db.execute(
                """
                UPDATE DeviceDocuments
                SET document = ?, device_type = ?, change_seq = ?, updated_at = ?
                WHERE device_id = ?
                """,
                (json.dumps(merged), merged.get("type", ""), seq, iso_now(), device_id),
            )
        return merged, seq

    def get_device_document(self, device_id: str) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        row = db.execute(
            "SELECT document FROM DeviceDocuments WHERE device_id = ?",
            (device_id,),
        ).fetchone()
        return json.loads(row["document"]) if row else None

    def list_device_documents(self, device_type: Optional[str] = None) -> List[Dict[str, Any]]:
        db = self.get_db()
        if device_type:
            rows = db.execute(
                "SELECT document FROM DeviceDocuments WHERE device_type = ? ORDER BY device_id",
                (device_type,),
            ).fetchall()
        else:
            rows = db.execute("SELECT document FROM DeviceDocuments ORDER BY device_id").fetchall()
        return [json.loads(row["document"]) for row in rows]

    def get_device_changes_since(self, change_seq: int, limit: int = 500) -> List[Tuple[int, Dict[str, Any]]]:
        """Rows written after *change_seq*, oldest first."""
        db = self.get_db()
        rows = db.execute(
            """
            SELECT change_seq, document FROM DeviceDocuments
            WHERE change_seq > ?
            ORDER BY change_seq ASC
            LIMIT ?
            """,
            (int(change_seq), int(limit)),
        ).fetchall()
        return [(int(row["change_seq"]), json.loads(row["document"])) for row in rows]

    def get_latest_change_seq(self) -> int:
        db = self.get_db()
        row = db.execute("SELECT COALESCE(MAX(change_seq), 0) FROM DeviceDocuments").fetchone()
        return int(row[0])

"""Repository facades exposing typed accessors over the low-level mixins."""

from infrastructure.database.repositories.devices import DeviceRepository, DocumentChange

__all__ = ["DeviceRepository", "DocumentChange"]

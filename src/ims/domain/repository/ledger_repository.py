"""Abstract repository for ResourceLedger rows."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from ims.domain.model.ledger import ResourceLedger
from ims.domain.model.value_objects import ResourceKey


class LedgerRepository(ABC):

    @abstractmethod
    def get(self, key: ResourceKey) -> ResourceLedger | None:
        """Return the ledger for a resource key, or None."""

    @abstractmethod
    def list_all(self) -> list[ResourceLedger]:
        """Return every ledger row."""

    @abstractmethod
    def list_room_nights(
        self, property_id: str, room_type_id: str, start: date, end: date
    ) -> list[ResourceLedger]:
        """Return the nightly ledgers of a room type in ``[start, end)``, by date."""

    @abstractmethod
    def save(self, ledger: ResourceLedger) -> None:
        """Create a ledger, or update its capacity settings.

        Only ``total_capacity``, ``blocked_capacity``, ``track_capacity``
        and ``low_stock_threshold`` are written for an existing row.
        ``reserved_capacity`` is owned by the atomic operations of
        ``InventoryStore``.
        """

    @abstractmethod
    def create_if_missing(self, ledger: ResourceLedger) -> None:
        """Insert the ledger unless a row already exists for its key."""

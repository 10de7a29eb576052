"""Application service: Set Inventory use cases (products and room nights)."""

from __future__ import annotations

from datetime import date

from ims.application.dto import InventoryLineDTO
from ims.application.show_inventory import to_line_dto
from ims.domain.model.value_objects import ProductKey
from ims.domain.service.resource_ledger import ResourceLedgerService


class SetInventoryHandler:

    def __init__(self, ledger_service: ResourceLedgerService) -> None:
        self._ledger_service = ledger_service

    def handle(
        self,
        product_id: str,
        quantity: int,
        tracked: bool = True,
        low_stock_threshold: int | None = None,
        blocked: int | None = None,
    ) -> InventoryLineDTO:
        """Set the total stock of a product, creating its ledger if needed."""
        ledger = self._ledger_service.upsert_capacity(
            ProductKey(product_id), quantity, tracked, low_stock_threshold, blocked
        )
        return to_line_dto(ledger)


class SetRoomInventoryHandler:

    def __init__(self, ledger_service: ResourceLedgerService) -> None:
        self._ledger_service = ledger_service

    def handle(
        self,
        property_id: str,
        room_type_id: str,
        start: date,
        end: date,
        rooms: int,
        blocked: int | None = None,
    ) -> list[InventoryLineDTO]:
        """Set the room count (and blocked rooms) for every night in ``[start, end)``."""
        ledgers = self._ledger_service.provision_stay_range(
            property_id, room_type_id, start, end, rooms, blocked
        )
        return [to_line_dto(ledger) for ledger in ledgers]

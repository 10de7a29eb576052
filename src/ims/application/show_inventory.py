"""Application service: Show Inventory use cases (queries)."""

from __future__ import annotations

from ims.application.dto import InventoryLineDTO, StatusDTO
from ims.domain.model.capacity import InventoryStatus
from ims.domain.model.ledger import ResourceLedger
from ims.domain.model.value_objects import parse_resource_key
from ims.domain.service.availability import available_quantity
from ims.domain.service.reservation_manager import ReservationManager
from ims.domain.service.resource_ledger import ResourceLedgerService


def to_line_dto(ledger: ResourceLedger) -> InventoryLineDTO:
    return InventoryLineDTO(
        resource_key=str(ledger.key),
        total=ledger.total_capacity,
        reserved=ledger.reserved_capacity,
        blocked=ledger.blocked_capacity,
        available=str(available_quantity(ledger)),
        tracked=ledger.track_capacity,
        low_stock=ledger.is_low_stock,
    )


def to_status_dto(status: InventoryStatus) -> StatusDTO:
    return StatusDTO(
        resource_key=str(status.resource_key),
        total=status.total_quantity,
        reserved=status.reserved_quantity,
        blocked=status.blocked_quantity,
        available=str(status.available_quantity),
        tracked=status.track_quantity,
        held=status.held_quantity,
        active_reservations=status.active_reservations,
        low_stock=status.is_low_stock,
        oversold=status.is_oversold,
    )


class ShowInventoryHandler:

    def __init__(self, ledger_service: ResourceLedgerService) -> None:
        self._ledger_service = ledger_service

    def handle(self, low_stock_only: bool = False) -> list[InventoryLineDTO]:
        if low_stock_only:
            ledgers = self._ledger_service.list_low_stock()
        else:
            ledgers = self._ledger_service.list_ledgers()
        return [to_line_dto(ledger) for ledger in ledgers]


class ShowStatusHandler:

    def __init__(self, manager: ReservationManager) -> None:
        self._manager = manager

    def handle(self, raw_key: str) -> StatusDTO:
        """Status of one key, with overdue holds already excluded."""
        return to_status_dto(self._manager.get_status(parse_resource_key(raw_key)))

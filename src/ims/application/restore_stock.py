"""Application service: Restore Stock use case (returns and cancelled orders)."""

from __future__ import annotations

from ims.application.dto import StatusDTO
from ims.application.show_inventory import to_status_dto
from ims.domain.model.value_objects import ProductKey
from ims.domain.service.reservation_manager import ReservationManager


class RestoreStockHandler:

    def __init__(self, manager: ReservationManager) -> None:
        self._manager = manager

    def handle(self, product_id: str, quantity: int) -> StatusDTO:
        """Give ``quantity`` sold units of a product back to stock."""
        status = self._manager.restore_stock(ProductKey(product_id), quantity)
        return to_status_dto(status)

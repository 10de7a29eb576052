"""Application service: Confirm Reservation use case.

Called once the holder's order or booking is paid; the held capacity
becomes sold stock.
"""

from __future__ import annotations

from ims.application.dto import ReservationLineDTO
from ims.application.reserve_stock import to_reservation_line
from ims.domain.service.reservation_manager import ReservationManager


class ConfirmReservationHandler:

    def __init__(self, manager: ReservationManager) -> None:
        self._manager = manager

    def handle(self, reservation_id: str, order_id: str | None = None) -> list[ReservationLineDTO]:
        confirmed = self._manager.confirm_reservation(reservation_id, order_id)
        return [to_reservation_line(reservation) for reservation in confirmed]

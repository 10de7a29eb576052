"""Application service: Show Reservations use case (query by holder)."""

from __future__ import annotations

from ims.application.dto import ReservationLineDTO
from ims.application.reserve_stock import to_reservation_line
from ims.domain.service.reservation_manager import ReservationManager


class ShowReservationsHandler:

    def __init__(self, manager: ReservationManager) -> None:
        self._manager = manager

    def handle(self, holder_id: str) -> list[ReservationLineDTO]:
        return [
            to_reservation_line(reservation)
            for reservation in self._manager.list_holder_reservations(holder_id)
        ]

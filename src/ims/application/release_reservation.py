"""Application service: Release Reservation use case (cancellation)."""

from __future__ import annotations

from ims.domain.service.reservation_manager import ReservationManager


class ReleaseReservationHandler:

    def __init__(self, manager: ReservationManager) -> None:
        self._manager = manager

    def handle(self, reservation_id: str) -> int:
        """Release a reservation; returns how many keys were given back."""
        return self._manager.release_reservation(reservation_id)

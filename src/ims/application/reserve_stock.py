"""Application service: Reserve Stock use case.

Turns product and stay specs into reservation items and runs them as one
batch.  A partial result keeps its held keys; callers that want
all-or-nothing pass ``all_or_nothing=True`` and the handler releases the
partial hold itself.
"""

from __future__ import annotations

from datetime import timedelta

from ims.application.dto import (
    ProductItemSpec,
    ReservationDTO,
    ReservationLineDTO,
    ShortfallDTO,
    StayItemSpec,
)
from ims.domain.model.capacity import BatchReservationResult
from ims.domain.model.reservation import Reservation, ReservationItem
from ims.domain.model.value_objects import ProductKey, StayRange
from ims.domain.service.reservation_manager import ReservationManager


def to_reservation_line(reservation: Reservation) -> ReservationLineDTO:
    return ReservationLineDTO(
        reservation_id=reservation.group_id,
        resource_key=str(reservation.resource_key),
        quantity=reservation.quantity,
        status=reservation.status.value,
        expires_at=reservation.expires_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        order_id=reservation.order_id,
    )


class ReserveStockHandler:

    def __init__(self, manager: ReservationManager) -> None:
        self._manager = manager

    def handle(
        self,
        holder_id: str,
        products: list[ProductItemSpec] | None = None,
        stays: list[StayItemSpec] | None = None,
        ttl_minutes: int | None = None,
        all_or_nothing: bool = False,
    ) -> ReservationDTO:
        items = [
            ReservationItem(ProductKey(spec.product_id), spec.quantity)
            for spec in products or []
        ]
        items += [
            ReservationItem(
                StayRange(spec.property_id, spec.room_type_id, spec.check_in, spec.check_out),
                spec.quantity,
            )
            for spec in stays or []
        ]
        ttl = None if ttl_minutes is None else timedelta(minutes=ttl_minutes)

        result = self._manager.reserve_batch(items, holder_id, ttl)

        if not result.success and all_or_nothing and result.reservation_id:
            self._manager.release_reservation(result.reservation_id)
            return self._to_dto(holder_id, result, compensated=True)
        return self._to_dto(holder_id, result)

    # --- Mapping --------------------------------------------------------------

    @staticmethod
    def _to_dto(
        holder_id: str, result: BatchReservationResult, compensated: bool = False
    ) -> ReservationDTO:
        return ReservationDTO(
            reservation_id=None if compensated else result.reservation_id,
            success=result.success,
            holder_id=holder_id,
            expires_at=(
                result.expires_at.strftime("%Y-%m-%d %H:%M:%S UTC")
                if result.expires_at and result.reservation_id and not compensated
                else None
            ),
            lines=[] if compensated else [to_reservation_line(r) for r in result.reservations],
            shortfalls=[
                ShortfallDTO(
                    resource_key=str(failure.resource_key),
                    requested=failure.requested,
                    available=str(failure.available),
                    reason=failure.reason,
                )
                for failure in result.failures
            ],
        )

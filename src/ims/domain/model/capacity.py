"""Read models and results returned by the reservation services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Union

from ims.domain.model.reservation import Reservation
from ims.domain.model.value_objects import ResourceKey

UNLIMITED: Literal["unlimited"] = "unlimited"

Availability = Union[int, Literal["unlimited"]]

INSUFFICIENT_CAPACITY = "Insufficient capacity"
NOT_PROVISIONED = "Not provisioned"


@dataclass(frozen=True)
class CapacityFailure:
    """A shortfall for one item of a batch: "3 requested, 2 available"."""

    resource_key: ResourceKey
    requested: int
    available: Availability
    reason: str = INSUFFICIENT_CAPACITY

    @property
    def shortfall(self) -> int:
        if self.available == UNLIMITED:
            return 0
        return max(self.requested - max(self.available, 0), 0)


@dataclass(frozen=True)
class BatchReservationResult:
    """Outcome of ``reserve_batch``.

    ``reservation_id`` is the group id whenever at least one key was held,
    even when ``success`` is False: the caller releases it to compensate.
    """

    success: bool
    reservation_id: str | None
    failures: list[CapacityFailure] = field(default_factory=list)
    reservations: list[Reservation] = field(default_factory=list)
    expires_at: datetime | None = None


@dataclass(frozen=True)
class CapacitySnapshot:
    total: int
    reserved: int
    blocked: int
    available: Availability
    track_capacity: bool


@dataclass(frozen=True)
class InventoryStatus:
    """Ledger counters with stale (expired, unswept) holds excluded."""

    resource_key: ResourceKey
    total_quantity: int
    reserved_quantity: int
    blocked_quantity: int
    available_quantity: Availability
    track_quantity: bool
    held_quantity: int
    active_reservations: int
    low_stock_threshold: int
    is_low_stock: bool
    is_oversold: bool


@dataclass(frozen=True)
class SweepResult:
    released_count: int
    released_quantity: int = 0

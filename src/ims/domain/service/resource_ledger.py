"""Domain service: Resource Ledger.

Provisioning and read access for capacity counters.  This service never
touches ``reserved_capacity``; that counter only moves through the atomic
operations used by the reservation manager.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from ims.domain.exceptions import NotFoundError, ValidationError
from ims.domain.model.capacity import UNLIMITED, CapacitySnapshot
from ims.domain.model.ledger import DEFAULT_LOW_STOCK_THRESHOLD, ResourceLedger
from ims.domain.model.value_objects import ResourceKey, StayRange
from ims.domain.repository.ledger_repository import LedgerRepository
from ims.domain.service.availability import available_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityUpdate:
    """One row of a bulk capacity update."""

    key: ResourceKey
    total_capacity: int
    track_capacity: bool = True
    low_stock_threshold: int | None = None
    blocked_capacity: int | None = None


def _validate_total(total_capacity: int) -> None:
    if not isinstance(total_capacity, int) or isinstance(total_capacity, bool):
        raise ValidationError("Total capacity must be an integer")
    if total_capacity < 0:
        raise ValidationError(f"Total capacity cannot be negative, got {total_capacity}")


def _validate_blocked(blocked_capacity: int | None) -> None:
    if blocked_capacity is None:
        return
    if not isinstance(blocked_capacity, int) or isinstance(blocked_capacity, bool):
        raise ValidationError("Blocked capacity must be an integer")
    if blocked_capacity < 0:
        raise ValidationError(f"Blocked capacity cannot be negative, got {blocked_capacity}")


class ResourceLedgerService:

    def __init__(self, ledger_repo: LedgerRepository) -> None:
        self._ledger_repo = ledger_repo

    def upsert_capacity(
        self,
        key: ResourceKey,
        total_capacity: int,
        track_capacity: bool = True,
        low_stock_threshold: int | None = None,
        blocked_capacity: int | None = None,
    ) -> ResourceLedger:
        """Create the ledger for a key, or update its capacity settings.

        ``blocked_capacity`` of None keeps the stored value (0 for a new
        ledger).
        """
        _validate_total(total_capacity)
        _validate_blocked(blocked_capacity)
        ledger = self._ledger_repo.get(key)
        if ledger is None:
            ledger = ResourceLedger(
                key=key,
                total_capacity=total_capacity,
                blocked_capacity=blocked_capacity or 0,
                track_capacity=track_capacity,
                low_stock_threshold=(
                    DEFAULT_LOW_STOCK_THRESHOLD
                    if low_stock_threshold is None
                    else low_stock_threshold
                ),
            )
        else:
            ledger.total_capacity = total_capacity
            ledger.track_capacity = track_capacity
            if blocked_capacity is not None:
                ledger.blocked_capacity = blocked_capacity
            if low_stock_threshold is not None:
                if low_stock_threshold < 0:
                    raise ValidationError("Low stock threshold cannot be negative")
                ledger.low_stock_threshold = low_stock_threshold
        self._ledger_repo.save(ledger)
        logger.info(
            "Capacity set for %s: total=%d blocked=%d tracked=%s",
            key, total_capacity, ledger.blocked_capacity, track_capacity,
        )
        return ledger

    def get_capacity(self, key: ResourceKey, require_tracked: bool = False) -> CapacitySnapshot:
        """Snapshot of the stored counters.

        An unknown key is unlimited stock unless the caller requires a
        tracked ledger, in which case it is a NotFoundError.
        """
        ledger = self._ledger_repo.get(key)
        if ledger is None:
            if require_tracked:
                raise NotFoundError(f"No capacity record for {key}")
            return CapacitySnapshot(
                total=0, reserved=0, blocked=0, available=UNLIMITED, track_capacity=False
            )
        if require_tracked and not ledger.track_capacity:
            raise NotFoundError(f"Capacity is not tracked for {key}")
        return CapacitySnapshot(
            total=ledger.total_capacity,
            reserved=ledger.reserved_capacity,
            blocked=ledger.blocked_capacity,
            available=available_quantity(ledger),
            track_capacity=ledger.track_capacity,
        )

    def bulk_upsert(self, updates: list[CapacityUpdate]) -> list[ResourceLedger]:
        """Apply several capacity updates.

        Every update is validated before the first one is written.
        """
        if not updates:
            raise ValidationError("Updates cannot be empty")
        for update in updates:
            _validate_total(update.total_capacity)
            _validate_blocked(update.blocked_capacity)
            if update.low_stock_threshold is not None and update.low_stock_threshold < 0:
                raise ValidationError("Low stock threshold cannot be negative")

        return [
            self.upsert_capacity(
                update.key,
                update.total_capacity,
                update.track_capacity,
                update.low_stock_threshold,
                update.blocked_capacity,
            )
            for update in updates
        ]

    def provision_stay_range(
        self,
        property_id: str,
        room_type_id: str,
        start: date,
        end: date,
        total_rooms: int,
        blocked_rooms: int | None = None,
    ) -> list[ResourceLedger]:
        """Set the room count of a room type for every night in ``[start, end)``.

        ``blocked_rooms`` (maintenance, owner use) is taken out of what can
        be sold; None keeps whatever each night already has blocked.
        """
        stay = StayRange(property_id, room_type_id, start, end)
        _validate_total(total_rooms)
        _validate_blocked(blocked_rooms)
        return self.bulk_upsert(
            [
                CapacityUpdate(
                    key=night, total_capacity=total_rooms, blocked_capacity=blocked_rooms
                )
                for night in stay.nights()
            ]
        )

    def list_low_stock(self) -> list[ResourceLedger]:
        return [ledger for ledger in self._ledger_repo.list_all() if ledger.is_low_stock]

    def list_ledgers(self) -> list[ResourceLedger]:
        return self._ledger_repo.list_all()

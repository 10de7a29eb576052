"""In-memory fakes for testing.

``FakeInventoryStore`` implements the same abstract interface as the SQL
store but keeps everything in dicts.  A single lock plays the part of the
database's row locking, so ``hold`` and ``finish`` stay atomic when tests
drive the store from several threads.  Every read returns a copy, like
rows loaded from a database.
"""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from ims.domain.exceptions import ConcurrentModificationError, ConflictError
from ims.domain.model.ledger import ResourceLedger
from ims.domain.model.reservation import Reservation, ReservationStatus
from ims.domain.model.value_objects import ResourceKey, RoomNightKey
from ims.domain.repository.inventory_store import InventoryStore


class FakeClock:

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 11, 20, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeInventoryStore(InventoryStore):

    def __init__(self, ledgers: list[ResourceLedger] | None = None) -> None:
        self._lock = threading.Lock()
        self._ledgers: dict[ResourceKey, ResourceLedger] = {}
        self._reservations: dict[str, Reservation] = {}
        for ledger in ledgers or []:
            self._ledgers[ledger.key] = replace(ledger)

    # --- LedgerRepository -----------------------------------------------------

    def get(self, key: ResourceKey) -> ResourceLedger | None:
        with self._lock:
            ledger = self._ledgers.get(key)
            return None if ledger is None else replace(ledger)

    def list_all(self) -> list[ResourceLedger]:
        with self._lock:
            return [replace(l) for l in sorted(self._ledgers.values(), key=lambda l: str(l.key))]

    def list_room_nights(
        self, property_id: str, room_type_id: str, start: date, end: date
    ) -> list[ResourceLedger]:
        with self._lock:
            nights = [
                replace(l)
                for l in self._ledgers.values()
                if isinstance(l.key, RoomNightKey)
                and l.key.property_id == property_id
                and l.key.room_type_id == room_type_id
                and start <= l.key.date < end
            ]
        return sorted(nights, key=lambda l: l.key.date)

    def save(self, ledger: ResourceLedger) -> None:
        with self._lock:
            existing = self._ledgers.get(ledger.key)
            if existing is None:
                self._ledgers[ledger.key] = replace(ledger)
                return
            existing.total_capacity = ledger.total_capacity
            existing.blocked_capacity = ledger.blocked_capacity
            existing.track_capacity = ledger.track_capacity
            existing.low_stock_threshold = ledger.low_stock_threshold

    def create_if_missing(self, ledger: ResourceLedger) -> None:
        with self._lock:
            self._ledgers.setdefault(ledger.key, replace(ledger))

    # --- ReservationRepository ------------------------------------------------

    def list_by_group(self, group_id: str) -> list[Reservation]:
        return self._select(lambda r: r.group_id == group_id, key=lambda r: str(r.resource_key))

    def list_by_holder(self, holder_id: str) -> list[Reservation]:
        rows = self._select(lambda r: r.holder_id == holder_id, key=lambda r: str(r.resource_key))
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def list_active(self, key: ResourceKey) -> list[Reservation]:
        return self._select(
            lambda r: r.resource_key == key and r.status is ReservationStatus.ACTIVE,
            key=lambda r: r.expires_at,
        )

    def list_expired(
        self,
        now: datetime,
        key: ResourceKey | None = None,
        limit: int | None = None,
    ) -> list[Reservation]:
        rows = self._select(
            lambda r: r.is_expired(now) and (key is None or r.resource_key == key),
            key=lambda r: r.expires_at,
        )
        return rows if limit is None else rows[:limit]

    # --- Atomic operations ----------------------------------------------------

    def hold(self, reservation: Reservation) -> Reservation | None:
        with self._lock:
            ledger = self._ledgers.get(reservation.resource_key)
            if ledger is None:
                return None
            if ledger.track_capacity:
                if not ledger.can_reserve(reservation.quantity):
                    return None
                ledger.reserved_capacity += reservation.quantity
            stored = replace(
                reservation,
                status=ReservationStatus.ACTIVE,
                counted=ledger.track_capacity,
            )
            self._reservations[stored.id] = stored
            return replace(stored)

    def finish(
        self,
        reservation_id: str,
        status: ReservationStatus,
        at: datetime,
        order_id: str | None = None,
    ) -> Reservation | None:
        with self._lock:
            reservation = self._reservations.get(reservation_id)
            if reservation is None or reservation.is_terminal:
                return None
            updated = replace(reservation)
            updated.transition(status, at, order_id)
            if status.restores_capacity and updated.counted:
                ledger = self._ledgers[updated.resource_key]
                if ledger.reserved_capacity < updated.quantity:
                    raise ConflictError(
                        f"Ledger {updated.resource_key} cannot give back {updated.quantity} unit(s)"
                    )
                ledger.reserved_capacity -= updated.quantity
            self._reservations[reservation_id] = updated
            return replace(updated)

    def restore(self, key: ResourceKey, quantity: int, at: datetime) -> bool:
        with self._lock:
            ledger = self._ledgers.get(key)
            if ledger is None or not ledger.track_capacity:
                return False
            held = sum(
                r.quantity
                for r in self._reservations.values()
                if r.resource_key == key and r.status is ReservationStatus.ACTIVE and r.counted
            )
            if ledger.reserved_capacity - quantity < held:
                return False
            ledger.reserved_capacity -= quantity
            ledger.updated_at = at
            return True

    # --- Test helpers ---------------------------------------------------------

    def all_reservations(self) -> list[Reservation]:
        return self._select(lambda r: True, key=lambda r: r.created_at)

    def _select(self, predicate, key) -> list[Reservation]:
        with self._lock:
            rows = [replace(r) for r in self._reservations.values() if predicate(r)]
        return sorted(rows, key=key)


class FlakyInventoryStore(FakeInventoryStore):
    """Fails the next ``failures`` holds with a transient conflict."""

    def __init__(self, ledgers: list[ResourceLedger] | None = None, failures: int = 0) -> None:
        super().__init__(ledgers)
        self.failures = failures
        self.hold_attempts = 0

    def hold(self, reservation: Reservation) -> Reservation | None:
        self.hold_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConcurrentModificationError("simulated lock timeout")
        return super().hold(reservation)


class LockedKeyInventoryStore(FakeInventoryStore):
    """Every hold on ``locked_key`` hits a lock timeout, forever."""

    def __init__(self, ledgers: list[ResourceLedger] | None = None, locked_key=None) -> None:
        super().__init__(ledgers)
        self.locked_key = locked_key

    def hold(self, reservation: Reservation) -> Reservation | None:
        if reservation.resource_key == self.locked_key:
            raise ConcurrentModificationError("simulated lock timeout")
        return super().hold(reservation)


class FlakyReadInventoryStore(FakeInventoryStore):
    """Fails the next ``failures`` ledger reads with a transient conflict."""

    def __init__(self, ledgers: list[ResourceLedger] | None = None, failures: int = 0) -> None:
        super().__init__(ledgers)
        self.failures = failures
        self.read_attempts = 0

    def get(self, key: ResourceKey) -> ResourceLedger | None:
        self.read_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConcurrentModificationError("simulated read timeout")
        return super().get(key)


class SlowReadInventoryStore(FakeInventoryStore):
    """Pauses after each ledger read so concurrent callers see the same snapshot."""

    def __init__(self, ledgers: list[ResourceLedger] | None = None, delay: float = 0.05) -> None:
        super().__init__(ledgers)
        self._delay = delay

    def get(self, key: ResourceKey) -> ResourceLedger | None:
        ledger = super().get(key)
        time.sleep(self._delay)
        return ledger

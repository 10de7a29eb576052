"""Domain service: Reservation Manager.

Coordinates check -> reserve for a batch of items, plus release, confirm,
stock adjustment and status reads.

Atomicity is per ledger key: each key is taken through the store's
conditional ``hold``, so two callers racing for the last units of a key
can never both succeed.  A batch is *not* atomic across keys.  Items that
fall short are reported in ``failures`` while the others stay held under
the batch's group id; a caller that needs all-or-nothing releases that
group id to compensate.  The exception is a storage conflict that
outlives every retry: the whole batch is given back before the
ConflictError reaches the caller.

A stay (several nights of one room type) is a single item: the scarcest
night is checked before any night is held, and if a night is lost to a
concurrent caller the nights already held for that stay are given back.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from ims.domain.clock import Clock, utc_now
from ims.domain.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ims.domain.model.capacity import (
    NOT_PROVISIONED,
    BatchReservationResult,
    CapacityFailure,
    InventoryStatus,
)
from ims.domain.model.ledger import ResourceLedger
from ims.domain.model.reservation import (
    Reservation,
    ReservationItem,
    ReservationStatus,
    new_group_id,
    new_reservation_id,
)
from ims.domain.model.value_objects import ProductKey, Quantity, ResourceKey, StayRange
from ims.domain.repository.inventory_store import InventoryStore
from ims.domain.service.availability import (
    available_quantity,
    binding_ledger,
    is_available,
    is_range_available,
)
from ims.domain.service.expiry_sweeper import ExpirySweeper

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = timedelta(minutes=30)
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 0.1  # seconds


class ReservationManager:

    def __init__(
        self,
        store: InventoryStore,
        clock: Clock = utc_now,
        default_ttl: timedelta = DEFAULT_TTL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        auto_provision: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if default_ttl <= timedelta(0):
            raise ValidationError("Default TTL must be positive")
        if max_retries < 0:
            raise ValidationError("max_retries cannot be negative")
        self._store = store
        self._clock = clock
        self._default_ttl = default_ttl
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._auto_provision = auto_provision
        self._sleep = sleep
        self._sweeper = ExpirySweeper(store, clock)

    # --- Reserve ---------------------------------------------------------------

    def reserve_batch(
        self,
        items: list[ReservationItem],
        holder_id: str,
        ttl: timedelta | None = None,
    ) -> BatchReservationResult:
        """Reserve every item for ``holder_id`` until ``now + ttl``.

        Steps, per item:
          1. Lazily expire overdue holds on the item's keys.
          2. Load the ledgers (auto-provisioning unknown products as
             untracked) and check the scarcest one.
          3. Hold each key through the store's conditional update.

        Capacity shortfalls are collected into ``failures``; they never
        raise.  Validation errors raise before storage is touched.
        """
        ttl = self._validate_batch(items, holder_id, ttl)
        holder_id = holder_id.strip()
        now = self._clock()
        expires_at = now + ttl
        group_id = new_group_id()

        held: list[Reservation] = []
        failures: list[CapacityFailure] = []
        try:
            for item in items:
                reservations, failure = self._reserve_item(
                    item, group_id, holder_id, now, expires_at
                )
                held.extend(reservations)
                if failure is not None:
                    failures.append(failure)
        except ConflictError:
            # Storage kept failing: nothing of this batch may stay held
            self._give_back(held, now)
            raise

        success = not failures
        if success:
            logger.info(
                "Reservation %s created for %s: %d key(s), expires %s",
                group_id, holder_id, len(held), expires_at.isoformat(),
            )
        else:
            logger.info(
                "Reservation %s for %s incomplete: %d key(s) held, %d item(s) short",
                group_id, holder_id, len(held), len(failures),
            )

        return BatchReservationResult(
            success=success,
            reservation_id=group_id if held else None,
            failures=failures,
            reservations=held,
            expires_at=expires_at,
        )

    def _reserve_item(
        self,
        item: ReservationItem,
        group_id: str,
        holder_id: str,
        now: datetime,
        expires_at: datetime,
    ) -> tuple[list[Reservation], CapacityFailure | None]:
        # Phase 1: load every ledger of the item and check the binding one
        ledgers: list[ResourceLedger] = []
        for key in item.keys():
            self._retrying(self._sweeper.sweep_key, key)
            ledger = self._load_ledger(key)
            if ledger is None:
                return [], CapacityFailure(key, item.quantity, 0, NOT_PROVISIONED)
            ledgers.append(ledger)

        if not is_range_available(ledgers, item.quantity):
            scarcest = binding_ledger(ledgers)
            return [], CapacityFailure(
                scarcest.key, item.quantity, max(scarcest.available_capacity, 0)
            )

        # Phase 2: hold each key; the store re-checks capacity atomically
        held: list[Reservation] = []
        for ledger in ledgers:
            reservation = Reservation(
                id=new_reservation_id(),
                group_id=group_id,
                resource_key=ledger.key,
                quantity=item.quantity,
                holder_id=holder_id,
                expires_at=expires_at,
                created_at=now,
            )
            try:
                stored = self._retrying(self._store.hold, reservation)
            except ConflictError:
                self._give_back(held, now)
                raise
            if stored is None:
                # Lost a race for this key since phase 1
                self._give_back(held, now)
                current = self._retrying(self._store.get, ledger.key)
                available = 0 if current is None else available_quantity(current)
                if isinstance(available, int):
                    available = max(available, 0)
                return [], CapacityFailure(ledger.key, item.quantity, available)
            held.append(stored)
        return held, None

    def _load_ledger(self, key: ResourceKey) -> ResourceLedger | None:
        ledger = self._retrying(self._store.get, key)
        if ledger is None and self._auto_provision and isinstance(key, ProductKey):
            # Unknown products are unlimited stock until someone provisions them
            self._retrying(
                self._store.create_if_missing,
                ResourceLedger(key=key, total_capacity=0, track_capacity=False),
            )
            ledger = self._retrying(self._store.get, key)
        return ledger

    def _give_back(self, held: list[Reservation], now: datetime) -> None:
        for reservation in held:
            self._retrying(self._store.finish, reservation.id, ReservationStatus.RELEASED, now)

    # --- Release / confirm -----------------------------------------------------

    def release_reservation(self, reservation_id: str) -> int:
        """Release every ACTIVE row of a reservation and restore its capacity.

        Idempotent: unknown ids and terminal rows are skipped silently.
        Returns the number of rows released by this call.
        """
        if not reservation_id or not reservation_id.strip():
            raise ValidationError("Reservation ID is required")
        now = self._clock()
        released = 0
        for reservation in self._retrying(self._store.list_by_group, reservation_id.strip()):
            if reservation.is_terminal:
                continue
            finished = self._retrying(
                self._store.finish, reservation.id, ReservationStatus.RELEASED, now
            )
            if finished is not None:
                released += 1
        if released:
            logger.info("Reservation %s released (%d key(s))", reservation_id, released)
        return released

    def confirm_reservation(
        self, reservation_id: str, order_id: str | None = None
    ) -> list[Reservation]:
        """Turn a reservation into sold stock.

        Capacity stays reserved for good.  Raises NotFoundError for an
        unknown id, ConflictError if any row is terminal or overdue (overdue
        rows are expired on the way out).
        """
        if not reservation_id or not reservation_id.strip():
            raise ValidationError("Reservation ID is required")
        reservation_id = reservation_id.strip()
        rows = self._retrying(self._store.list_by_group, reservation_id)
        if not rows:
            raise NotFoundError(f"Reservation {reservation_id} not found")

        terminal = [row for row in rows if row.is_terminal]
        if terminal:
            raise ConflictError(
                f"Reservation {reservation_id} is already {terminal[0].status.value}"
            )

        now = self._clock()
        overdue = [row for row in rows if row.is_expired(now)]
        if overdue:
            for row in overdue:
                self._retrying(self._store.finish, row.id, ReservationStatus.EXPIRED, now)
            raise ConflictError(
                f"Reservation {reservation_id} expired at {overdue[0].expires_at.isoformat()}"
            )

        confirmed: list[Reservation] = []
        for row in rows:
            finished = self._retrying(
                self._store.finish, row.id, ReservationStatus.CONFIRMED, now, order_id
            )
            if finished is None:
                raise ConflictError(
                    f"Reservation {reservation_id} changed state while being confirmed"
                )
            confirmed.append(finished)
        logger.info("Reservation %s confirmed (order=%s)", reservation_id, order_id)
        return confirmed

    # --- Stock and status ------------------------------------------------------

    def adjust_stock(self, key: ResourceKey, new_total: int) -> InventoryStatus:
        """Set the total capacity of a key, creating a tracked ledger if needed.

        Outstanding reservations are untouched.  Lowering the total below
        what is reserved leaves the ledger oversold; that is reported on
        the returned status, never clamped.
        """
        if not isinstance(new_total, int) or isinstance(new_total, bool):
            raise ValidationError("Total capacity must be an integer")
        if new_total < 0:
            raise ValidationError(f"Total capacity cannot be negative, got {new_total}")

        ledger = self._retrying(self._store.get, key)
        if ledger is None:
            ledger = ResourceLedger(key=key, total_capacity=new_total)
        else:
            ledger.total_capacity = new_total
        self._retrying(self._store.save, ledger)

        status = self.get_status(key)
        if status.is_oversold:
            logger.warning(
                "Stock for %s set to %d below %d reserved: ledger is oversold",
                key, new_total, status.reserved_quantity,
            )
        return status

    def restore_stock(self, key: ResourceKey, quantity: int) -> InventoryStatus:
        """Put sold units back on the shelf (returns, cancelled orders).

        Only confirmed stock can come back: units held by live or overdue
        ACTIVE reservations are never freed here.  Untracked ledgers have
        nothing to restore and are left alone.
        """
        Quantity(quantity)
        ledger = self._retrying(self._store.get, key)
        if ledger is None:
            raise NotFoundError(f"No inventory record for {key}")
        if not ledger.track_capacity:
            logger.debug("Ignoring restore of %d unit(s) on untracked %s", quantity, key)
            return self.get_status(key)

        if not self._retrying(self._store.restore, key, quantity, self._clock()):
            raise ConflictError(
                f"Cannot restore {quantity} unit(s) of {key}: fewer sold units on record"
            )
        logger.info("Restored %d unit(s) of %s", quantity, key)
        return self.get_status(key)

    def get_status(self, key: ResourceKey) -> InventoryStatus:
        ledger = self._retrying(self._store.get, key)
        if ledger is None:
            raise NotFoundError(f"No inventory record for {key}")
        now = self._clock()
        active = self._retrying(self._store.list_active, key)
        live = [reservation for reservation in active if reservation.is_live(now)]
        effective = self._without_stale(ledger, active, now)
        return InventoryStatus(
            resource_key=key,
            total_quantity=effective.total_capacity,
            reserved_quantity=effective.reserved_capacity,
            blocked_quantity=effective.blocked_capacity,
            available_quantity=available_quantity(effective),
            track_quantity=effective.track_capacity,
            held_quantity=sum(reservation.quantity for reservation in live),
            active_reservations=len(live),
            low_stock_threshold=effective.low_stock_threshold,
            is_low_stock=effective.is_low_stock,
            is_oversold=effective.is_oversold,
        )

    def check_availability(self, resource: ProductKey | StayRange, quantity: int) -> bool:
        """Read-only: could ``quantity`` units be reserved right now?"""
        item = ReservationItem(resource, quantity)
        now = self._clock()
        if isinstance(resource, ProductKey):
            ledger = self._retrying(self._store.get, resource)
            if ledger is None:
                return self._auto_provision
            active = self._retrying(self._store.list_active, resource)
            return is_available(self._without_stale(ledger, active, now), item.quantity)

        nights = self._retrying(
            self._store.list_room_nights,
            resource.property_id,
            resource.room_type_id,
            resource.check_in,
            resource.check_out,
        )
        if len(nights) != resource.night_count:
            # A night without a ledger cannot be booked
            return False
        ledgers = [
            self._without_stale(night, self._retrying(self._store.list_active, night.key), now)
            for night in nights
        ]
        return is_range_available(ledgers, item.quantity)

    def list_holder_reservations(self, holder_id: str) -> list[Reservation]:
        if not holder_id or not holder_id.strip():
            raise ValidationError("Holder ID is required")
        return self._retrying(self._store.list_by_holder, holder_id.strip())

    # --- Internal helpers ------------------------------------------------------

    @staticmethod
    def _without_stale(
        ledger: ResourceLedger, active: list[Reservation], now: datetime
    ) -> ResourceLedger:
        """The ledger as it will look once overdue holds are swept."""
        stale = sum(
            reservation.quantity
            for reservation in active
            if reservation.counted and reservation.is_expired(now)
        )
        if not stale:
            return ledger
        return replace(ledger, reserved_capacity=max(ledger.reserved_capacity - stale, 0))

    def _validate_batch(
        self,
        items: list[ReservationItem],
        holder_id: str,
        ttl: timedelta | None,
    ) -> timedelta:
        if not holder_id or not holder_id.strip():
            raise ValidationError("Holder ID is required")
        if not items:
            raise ValidationError("At least one item is required")
        for item in items:
            if not isinstance(item, ReservationItem):
                raise ValidationError(f"Invalid reservation item: {item!r}")
        if ttl is None:
            return self._default_ttl
        if ttl <= timedelta(0):
            raise ValidationError("Reservation TTL must be positive")
        return ttl

    def _retrying(self, operation: Callable[..., T], *args) -> T:
        """Run a store operation, retrying transient conflicts with jittered back-off."""
        retrying = Retrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_random_exponential(multiplier=self._retry_backoff),
            retry=retry_if_exception_type(ConcurrentModificationError),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(operation, *args)
        except ConcurrentModificationError as exc:
            logger.error("Giving up after %d attempt(s): %s", self._max_retries + 1, exc)
            raise ConflictError(
                f"Concurrent modification detected, retries exhausted: {exc}"
            ) from exc


def _log_retry(retry_state: RetryCallState) -> None:
    logger.debug(
        "Retrying after conflict (attempt %d, %.3fs): %s",
        retry_state.attempt_number,
        retry_state.next_action.sleep,
        retry_state.outcome.exception(),
    )

"""Domain service: Expiry Sweeper.

Turns ACTIVE reservations past their deadline into EXPIRED ones and gives
their capacity back.  Scheduling is left to the caller (cron, CLI, worker);
this module only owns the correctness of a sweep.

Safe to run concurrently with itself and with live release calls: capacity
is only restored by the store's compare-and-set out of ACTIVE, so whichever
caller wins the transition restores it, exactly once.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ims.domain.clock import Clock, utc_now
from ims.domain.exceptions import ConcurrentModificationError
from ims.domain.model.capacity import SweepResult
from ims.domain.model.reservation import Reservation, ReservationStatus
from ims.domain.model.value_objects import ResourceKey
from ims.domain.repository.inventory_store import InventoryStore

logger = logging.getLogger(__name__)


class ExpirySweeper:

    def __init__(self, store: InventoryStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def sweep_expired(self, limit: int | None = None) -> SweepResult:
        """Expire every overdue reservation (at most ``limit`` per call)."""
        now = self._clock()
        result = self._expire(self._store.list_expired(now, limit=limit), now)
        if result.released_count:
            logger.info(
                "Swept %d expired reservation(s), %d unit(s) restored",
                result.released_count, result.released_quantity,
            )
        return result

    def sweep_key(self, key: ResourceKey) -> SweepResult:
        """Expire overdue reservations of one key (lazy expiry on the reserve path)."""
        now = self._clock()
        return self._expire(self._store.list_expired(now, key=key), now)

    def _expire(self, candidates: list[Reservation], now: datetime) -> SweepResult:
        count = 0
        quantity = 0
        for reservation in candidates:
            try:
                expired = self._store.finish(reservation.id, ReservationStatus.EXPIRED, now)
            except ConcurrentModificationError:
                # The row stays ACTIVE and overdue; the next sweep picks it up.
                logger.warning("Could not expire reservation %s, will retry", reservation.id)
                continue
            if expired is not None:
                count += 1
                quantity += expired.quantity
        return SweepResult(released_count=count, released_quantity=quantity)

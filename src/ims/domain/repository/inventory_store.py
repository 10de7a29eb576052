"""Transactional persistence port for the reservation core.

Defined in the domain layer so the domain never depends on
infrastructure.  Concrete implementations (SQL, in-memory) live
elsewhere; both must make ``hold`` and ``finish`` atomic with respect
to concurrent callers on the same key, across processes where the
backing store is shared.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime

from ims.domain.model.reservation import Reservation, ReservationStatus
from ims.domain.model.value_objects import ResourceKey
from ims.domain.repository.ledger_repository import LedgerRepository
from ims.domain.repository.reservation_repository import ReservationRepository


class InventoryStore(LedgerRepository, ReservationRepository):

    @abstractmethod
    def hold(self, reservation: Reservation) -> Reservation | None:
        """Conditionally take capacity and record the reservation, atomically.

        For a tracked ledger: ``reserved += quantity`` only where
        ``reserved + blocked + quantity <= total``; the stored row has ``counted=True``.
        For an untracked ledger the counter is left alone and ``counted=False``.

        Returns the stored reservation, or None when the ledger is missing
        or has insufficient capacity (nothing is written in that case).
        Raises ConcurrentModificationError on transient storage conflicts.
        """

    @abstractmethod
    def finish(
        self,
        reservation_id: str,
        status: ReservationStatus,
        at: datetime,
        order_id: str | None = None,
    ) -> Reservation | None:
        """Compare-and-set ACTIVE -> ``status``, atomically.

        When ``status`` releases capacity and the row is counted, the
        ledger's reserved counter is decremented in the same transaction.
        Returns the updated reservation, or None if the row is missing or
        already terminal (so capacity is restored at most once).
        """

    @abstractmethod
    def restore(self, key: ResourceKey, quantity: int, at: datetime) -> bool:
        """Give sold units of a tracked ledger back to stock, atomically.

        ``reserved -= quantity`` only where the result still covers every
        counted ACTIVE hold on the key, so live reservations keep their
        capacity.  Returns False (nothing written) when the ledger is
        missing, untracked, or has fewer sold units than ``quantity``.
        """

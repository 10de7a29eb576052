"""Abstract repository for Reservation rows (the reservation registry)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ims.domain.model.reservation import Reservation
from ims.domain.model.value_objects import ResourceKey


class ReservationRepository(ABC):

    @abstractmethod
    def list_by_group(self, group_id: str) -> list[Reservation]:
        """Return every row of a batch reservation."""

    @abstractmethod
    def list_by_holder(self, holder_id: str) -> list[Reservation]:
        """Return every row owned by a holder, newest first."""

    @abstractmethod
    def list_active(self, key: ResourceKey) -> list[Reservation]:
        """Return ACTIVE rows for a key, including ones past their deadline."""

    @abstractmethod
    def list_expired(
        self,
        now: datetime,
        key: ResourceKey | None = None,
        limit: int | None = None,
    ) -> list[Reservation]:
        """Return ACTIVE rows with ``expires_at <= now``, oldest deadline first."""

"""Application service: Sweep Expired Reservations use case."""

from __future__ import annotations

from ims.domain.model.capacity import SweepResult
from ims.domain.service.expiry_sweeper import ExpirySweeper


class SweepExpiredHandler:

    def __init__(self, sweeper: ExpirySweeper) -> None:
        self._sweeper = sweeper

    def handle(self, limit: int | None = None) -> SweepResult:
        return self._sweeper.sweep_expired(limit)

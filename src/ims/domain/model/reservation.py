"""Reservation — a time-bounded hold against one ledger's capacity.

A batch reservation is stored as one row per ledger key (one per night
for stays), all sharing the same ``group_id``.  The group id is the handle
returned to callers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ims.domain.exceptions import ConflictError, ValidationError
from ims.domain.model.value_objects import ProductKey, Quantity, ResourceKey, StayRange


class ReservationStatus(Enum):
    ACTIVE = "ACTIVE"
    CONFIRMED = "CONFIRMED"
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not ReservationStatus.ACTIVE

    @property
    def restores_capacity(self) -> bool:
        return self in (ReservationStatus.RELEASED, ReservationStatus.EXPIRED)


def new_group_id() -> str:
    return f"res_{uuid.uuid4().hex}"


def new_reservation_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ReservationItem:
    """Input: one line of a batch — a product or a stay, and how many units."""

    resource: ProductKey | StayRange
    quantity: int

    def __post_init__(self) -> None:
        if not isinstance(self.resource, (ProductKey, StayRange)):
            raise ValidationError("Resource key is required")
        Quantity(self.quantity)

    def keys(self) -> list[ResourceKey]:
        if isinstance(self.resource, StayRange):
            return list(self.resource.nights())
        return [self.resource]


@dataclass
class Reservation:
    """One hold on one ledger key.

    ``counted`` is set by the store: True when the hold incremented the
    ledger's reserved counter (tracked ledgers), False otherwise.  Only
    counted holds give capacity back when they end.
    """

    id: str
    group_id: str
    resource_key: ResourceKey
    quantity: int
    holder_id: str
    expires_at: datetime
    created_at: datetime
    status: ReservationStatus = ReservationStatus.ACTIVE
    counted: bool = True
    order_id: str | None = None
    closed_at: datetime | None = field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_expired(self, now: datetime) -> bool:
        """True for ACTIVE holds whose deadline has passed, swept or not."""
        return self.status is ReservationStatus.ACTIVE and self.expires_at <= now

    def is_live(self, now: datetime) -> bool:
        return self.status is ReservationStatus.ACTIVE and self.expires_at > now

    def transition(
        self,
        status: ReservationStatus,
        at: datetime,
        order_id: str | None = None,
    ) -> None:
        """Move ACTIVE -> CONFIRMED / RELEASED / EXPIRED.  Terminal states are final."""
        if self.is_terminal:
            raise ConflictError(
                f"Reservation {self.id} is already {self.status.value}"
            )
        if not status.is_terminal:
            raise ConflictError("A reservation can only move to a terminal status")
        self.status = status
        self.closed_at = at
        if order_id is not None:
            self.order_id = order_id

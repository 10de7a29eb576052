"""Availability calculator — pure functions over ledger snapshots.

Nothing here touches storage.  Callers are expected to have already
excluded stale holds from the ledgers they pass in.
"""

from __future__ import annotations

from collections.abc import Sequence

from ims.domain.exceptions import ValidationError
from ims.domain.model.capacity import UNLIMITED, Availability
from ims.domain.model.ledger import ResourceLedger


def _require_positive(requested_quantity: int) -> None:
    if (
        not isinstance(requested_quantity, int)
        or isinstance(requested_quantity, bool)
        or requested_quantity <= 0
    ):
        raise ValidationError("Requested quantity must be a positive integer")


def available_quantity(ledger: ResourceLedger) -> Availability:
    if not ledger.track_capacity:
        return UNLIMITED
    return ledger.available_capacity


def is_available(ledger: ResourceLedger, requested_quantity: int) -> bool:
    _require_positive(requested_quantity)
    return ledger.can_reserve(requested_quantity)


def binding_ledger(ledgers: Sequence[ResourceLedger]) -> ResourceLedger | None:
    """The scarcest tracked ledger of a range, or None if none is tracked."""
    tracked = [ledger for ledger in ledgers if ledger.track_capacity]
    if not tracked:
        return None
    return min(tracked, key=lambda ledger: ledger.available_capacity)


def range_available(ledgers: Sequence[ResourceLedger]) -> Availability:
    """Availability over several nights is the minimum across them."""
    if not ledgers:
        raise ValidationError("A range needs at least one ledger")
    scarcest = binding_ledger(ledgers)
    if scarcest is None:
        return UNLIMITED
    return scarcest.available_capacity


def is_range_available(ledgers: Sequence[ResourceLedger], requested_quantity: int) -> bool:
    _require_positive(requested_quantity)
    available = range_available(ledgers)
    return available == UNLIMITED or requested_quantity <= available

"""ResourceLedger — capacity counters per resource key.

One ledger row exists per product, and one per room type per night.
The counters are the authoritative totals; ``Reservation`` rows are the
itemized breakdown that makes per-holder release possible.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from ims.domain.exceptions import ValidationError
from ims.domain.model.value_objects import ResourceKey

DEFAULT_LOW_STOCK_THRESHOLD = 10


@dataclass
class ResourceLedger:
    """Capacity counters for one resource key.

    ``blocked_capacity`` is capacity taken out of sale by the operator
    (rooms under maintenance, an allotment held back); it is set like the
    total, never by reservations.

    Invariants (for tracked ledgers):
    - ``reserved_capacity + blocked_capacity <= total_capacity`` on every hold
    - ``available_capacity == total_capacity - reserved_capacity - blocked_capacity``

    ``total_capacity`` may be lowered (or ``blocked_capacity`` raised) below
    what is reserved; the ledger then reports ``is_oversold`` instead of
    clamping.
    """

    key: ResourceKey
    total_capacity: int
    reserved_capacity: int = 0
    blocked_capacity: int = 0
    track_capacity: bool = True
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.total_capacity < 0:
            raise ValidationError("Total capacity cannot be negative")
        if self.reserved_capacity < 0:
            raise ValidationError("Reserved capacity cannot be negative")
        if self.blocked_capacity < 0:
            raise ValidationError("Blocked capacity cannot be negative")
        if self.low_stock_threshold < 0:
            raise ValidationError("Low stock threshold cannot be negative")

    @property
    def available_capacity(self) -> int:
        return self.total_capacity - self.reserved_capacity - self.blocked_capacity

    @property
    def is_oversold(self) -> bool:
        return self.track_capacity and self.available_capacity < 0

    @property
    def is_low_stock(self) -> bool:
        return self.track_capacity and self.available_capacity <= self.low_stock_threshold

    def can_reserve(self, quantity: int) -> bool:
        if not self.track_capacity:
            return True
        return quantity <= self.available_capacity

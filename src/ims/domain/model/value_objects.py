"""Value Objects shared across the domain.

Value Objects are immutable and compared by value, not identity.
They encapsulate validation so invalid values can never exist.

A *resource key* identifies one capacity pool.  It is either a
``ProductKey`` (flat per-product stock) or a ``RoomNightKey`` (one room
type on one night).  A ``StayRange`` is not a key itself: it expands to
the ``RoomNightKey`` of every night in ``[check_in, check_out)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Union

from ims.domain.exceptions import ValidationError

_SEPARATOR = ":"


def _require_id(value: str, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required")
    if _SEPARATOR in value:
        raise ValidationError(f"{label} must not contain '{_SEPARATOR}'")
    return value.strip()


@dataclass(frozen=True)
class Quantity:
    """A positive integer quantity.

    Enforces the invariant that you cannot reserve zero or negative units.
    """

    value: int

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise ValidationError(
                f"Quantity must be an integer, got {type(self.value).__name__}"
            )
        if self.value <= 0:
            raise ValidationError("Quantity must be positive")

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class ProductKey:
    """Capacity pool of a single product."""

    product_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "product_id", _require_id(self.product_id, "Product ID"))

    def __str__(self) -> str:
        return f"product{_SEPARATOR}{self.product_id}"


@dataclass(frozen=True)
class RoomNightKey:
    """Capacity pool of one room type at one property on one night."""

    property_id: str
    room_type_id: str
    date: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "property_id", _require_id(self.property_id, "Property ID"))
        object.__setattr__(self, "room_type_id", _require_id(self.room_type_id, "Room type ID"))
        if not isinstance(self.date, date):
            raise ValidationError("Date is required")

    def __str__(self) -> str:
        return _SEPARATOR.join(
            ("room", self.property_id, self.room_type_id, self.date.isoformat())
        )


ResourceKey = Union[ProductKey, RoomNightKey]


def parse_resource_key(raw: str) -> ResourceKey:
    """Inverse of ``str(key)``: ``product:P1`` or ``room:H1:R1:2024-12-01``."""
    parts = raw.strip().split(_SEPARATOR) if raw else []
    if len(parts) == 2 and parts[0] == "product":
        return ProductKey(parts[1])
    if len(parts) == 4 and parts[0] == "room":
        try:
            night = date.fromisoformat(parts[3])
        except ValueError as exc:
            raise ValidationError(f"Invalid date in resource key: {raw!r}") from exc
        return RoomNightKey(parts[1], parts[2], night)
    raise ValidationError(f"Invalid resource key: {raw!r}")


@dataclass(frozen=True)
class StayRange:
    """A room type booked from ``check_in`` up to (not including) ``check_out``."""

    property_id: str
    room_type_id: str
    check_in: date
    check_out: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "property_id", _require_id(self.property_id, "Property ID"))
        object.__setattr__(self, "room_type_id", _require_id(self.room_type_id, "Room type ID"))
        if not isinstance(self.check_in, date):
            raise ValidationError("Check-in date is required")
        if not isinstance(self.check_out, date):
            raise ValidationError("Check-out date is required")
        if self.check_out <= self.check_in:
            raise ValidationError("Check-out date must be after check-in date")

    @property
    def night_count(self) -> int:
        return (self.check_out - self.check_in).days

    def nights(self) -> list[RoomNightKey]:
        return [
            RoomNightKey(
                self.property_id,
                self.room_type_id,
                self.check_in + timedelta(days=offset),
            )
            for offset in range(self.night_count)
        ]

    def __str__(self) -> str:
        return (
            f"{self.property_id}/{self.room_type_id} "
            f"{self.check_in.isoformat()}..{self.check_out.isoformat()}"
        )

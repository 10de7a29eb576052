"""Data Transfer Objects — plain containers that cross layer boundaries.

DTOs carry data between the CLI and application layers without
exposing domain internals to the outside world.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class ProductItemSpec:
    """Input: units of one product."""

    product_id: str
    quantity: int


@dataclass(frozen=True)
class StayItemSpec:
    """Input: rooms of one room type for a stay."""

    property_id: str
    room_type_id: str
    check_in: date
    check_out: date
    quantity: int


@dataclass(frozen=True)
class InventoryLineDTO:
    resource_key: str
    total: int
    reserved: int
    blocked: int
    available: str  # a number, or "unlimited"
    tracked: bool
    low_stock: bool


@dataclass(frozen=True)
class StatusDTO:
    resource_key: str
    total: int
    reserved: int
    blocked: int
    available: str
    tracked: bool
    held: int
    active_reservations: int
    low_stock: bool
    oversold: bool


@dataclass(frozen=True)
class ShortfallDTO:
    """Output: "3 requested, 2 available" for one item."""

    resource_key: str
    requested: int
    available: str
    reason: str


@dataclass(frozen=True)
class ReservationLineDTO:
    reservation_id: str
    resource_key: str
    quantity: int
    status: str
    expires_at: str
    order_id: str | None = None


@dataclass(frozen=True)
class ReservationDTO:
    reservation_id: str | None
    success: bool
    holder_id: str
    expires_at: str | None
    lines: list[ReservationLineDTO]
    shortfalls: list[ShortfallDTO]

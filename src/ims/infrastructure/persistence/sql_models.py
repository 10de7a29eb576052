"""SQLAlchemy table mappings for ledgers and reservations."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class LedgerRow(Base):
    __tablename__ = "resource_ledgers"
    __table_args__ = (
        CheckConstraint("total_capacity >= 0", name="ck_ledger_total_non_negative"),
        CheckConstraint("reserved_capacity >= 0", name="ck_ledger_reserved_non_negative"),
        CheckConstraint("blocked_capacity >= 0", name="ck_ledger_blocked_non_negative"),
        Index("ix_ledger_room_nights", "property_id", "room_type_id", "stay_date"),
    )

    # Canonical string form of the resource key, e.g. "product:P1"
    resource_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16))
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    property_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    room_type_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    stay_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_capacity: Mapped[int] = mapped_column(Integer)
    reserved_capacity: Mapped[int] = mapped_column(Integer, default=0)
    blocked_capacity: Mapped[int] = mapped_column(Integer, default=0)
    track_capacity: Mapped[bool] = mapped_column(Boolean, default=True)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, default=10)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ReservationRow(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reservation_quantity_positive"),
        Index("ix_reservations_status_expires", "status", "expires_at"),
        Index("ix_reservations_key_status", "resource_key", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(64), index=True)
    resource_key: Mapped[str] = mapped_column(
        String(255), ForeignKey("resource_ledgers.resource_key")
    )
    quantity: Mapped[int] = mapped_column(Integer)
    holder_id: Mapped[str] = mapped_column(String(128), index=True)
    status: Mapped[str] = mapped_column(String(16))
    counted: Mapped[bool] = mapped_column(Boolean, default=True)
    order_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

"""SQLAlchemy-backed implementation of InventoryStore.

Capacity is taken and given back with single conditional UPDATE
statements, so correctness holds across any number of service
instances sharing the database:

    UPDATE resource_ledgers
       SET reserved_capacity = reserved_capacity + :q
     WHERE resource_key = :key
       AND track_capacity
       AND reserved_capacity + blocked_capacity + :q <= total_capacity

Reservation status changes are compare-and-set on ``status = 'ACTIVE'``;
the ledger decrement only runs in the transaction that won that update.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ims.domain.exceptions import ConcurrentModificationError, ConflictError
from ims.domain.model.ledger import ResourceLedger
from ims.domain.model.reservation import Reservation, ReservationStatus
from ims.domain.model.value_objects import (
    ProductKey,
    ResourceKey,
    RoomNightKey,
    parse_resource_key,
)
from ims.domain.repository.inventory_store import InventoryStore
from ims.infrastructure.persistence.sql_models import LedgerRow, ReservationRow

_ACTIVE = ReservationStatus.ACTIVE.value


class SqlInventoryStore(InventoryStore):

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # --- LedgerRepository interface -------------------------------------------

    def get(self, key: ResourceKey) -> ResourceLedger | None:
        with self._transaction() as session:
            row = session.get(LedgerRow, str(key))
            return None if row is None else self._ledger_to_domain(row)

    def list_all(self) -> list[ResourceLedger]:
        with self._transaction() as session:
            rows = session.scalars(select(LedgerRow).order_by(LedgerRow.resource_key))
            return [self._ledger_to_domain(row) for row in rows]

    def list_room_nights(
        self, property_id: str, room_type_id: str, start: date, end: date
    ) -> list[ResourceLedger]:
        stmt = (
            select(LedgerRow)
            .where(
                LedgerRow.property_id == property_id,
                LedgerRow.room_type_id == room_type_id,
                LedgerRow.stay_date >= start,
                LedgerRow.stay_date < end,
            )
            .order_by(LedgerRow.stay_date)
        )
        with self._transaction() as session:
            return [self._ledger_to_domain(row) for row in session.scalars(stmt)]

    def save(self, ledger: ResourceLedger) -> None:
        key = str(ledger.key)
        now = datetime.now(timezone.utc)
        with self._transaction() as session:
            result = session.execute(
                update(LedgerRow)
                .where(LedgerRow.resource_key == key)
                .values(
                    total_capacity=ledger.total_capacity,
                    blocked_capacity=ledger.blocked_capacity,
                    track_capacity=ledger.track_capacity,
                    low_stock_threshold=ledger.low_stock_threshold,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.add(self._ledger_to_row(ledger, now))

    def create_if_missing(self, ledger: ResourceLedger) -> None:
        with self._transaction() as session:
            if session.get(LedgerRow, str(ledger.key)) is None:
                # A concurrent insert surfaces as IntegrityError -> retried
                session.add(self._ledger_to_row(ledger, datetime.now(timezone.utc)))

    # --- ReservationRepository interface --------------------------------------

    def list_by_group(self, group_id: str) -> list[Reservation]:
        return self._select_reservations(
            select(ReservationRow)
            .where(ReservationRow.group_id == group_id)
            .order_by(ReservationRow.resource_key)
        )

    def list_by_holder(self, holder_id: str) -> list[Reservation]:
        return self._select_reservations(
            select(ReservationRow)
            .where(ReservationRow.holder_id == holder_id)
            .order_by(ReservationRow.created_at.desc(), ReservationRow.resource_key)
        )

    def list_active(self, key: ResourceKey) -> list[Reservation]:
        return self._select_reservations(
            select(ReservationRow)
            .where(
                ReservationRow.resource_key == str(key),
                ReservationRow.status == _ACTIVE,
            )
            .order_by(ReservationRow.expires_at)
        )

    def list_expired(
        self,
        now: datetime,
        key: ResourceKey | None = None,
        limit: int | None = None,
    ) -> list[Reservation]:
        stmt = select(ReservationRow).where(
            ReservationRow.status == _ACTIVE,
            ReservationRow.expires_at <= _utc(now),
        )
        if key is not None:
            stmt = stmt.where(ReservationRow.resource_key == str(key))
        stmt = stmt.order_by(ReservationRow.expires_at)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._select_reservations(stmt)

    # --- Atomic operations -----------------------------------------------------

    def hold(self, reservation: Reservation) -> Reservation | None:
        key = str(reservation.resource_key)
        quantity = reservation.quantity
        with self._transaction() as session:
            taken = session.execute(
                update(LedgerRow)
                .where(
                    LedgerRow.resource_key == key,
                    LedgerRow.track_capacity.is_(True),
                    LedgerRow.reserved_capacity + LedgerRow.blocked_capacity + quantity
                    <= LedgerRow.total_capacity,
                )
                .values(
                    reserved_capacity=LedgerRow.reserved_capacity + quantity,
                    updated_at=_utc(reservation.created_at),
                )
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount == 1:
                counted = True
            else:
                ledger = session.get(LedgerRow, key)
                if ledger is None or ledger.track_capacity:
                    return None
                counted = False

            stored = replace(reservation, status=ReservationStatus.ACTIVE, counted=counted)
            session.add(self._reservation_to_row(stored))
        return stored

    def finish(
        self,
        reservation_id: str,
        status: ReservationStatus,
        at: datetime,
        order_id: str | None = None,
    ) -> Reservation | None:
        with self._transaction() as session:
            row = session.get(ReservationRow, reservation_id)
            if row is None:
                return None
            reservation = self._reservation_to_domain(row)
            if reservation.is_terminal:
                return None
            reservation.transition(status, at, order_id)

            won = session.execute(
                update(ReservationRow)
                .where(ReservationRow.id == reservation_id, ReservationRow.status == _ACTIVE)
                .values(
                    status=reservation.status.value,
                    closed_at=_utc(at),
                    order_id=reservation.order_id,
                )
                .execution_options(synchronize_session=False)
            )
            if won.rowcount == 0:
                # Another caller finished it between our read and the update
                return None

            if status.restores_capacity and reservation.counted:
                key = str(reservation.resource_key)
                restored = session.execute(
                    update(LedgerRow)
                    .where(
                        LedgerRow.resource_key == key,
                        LedgerRow.reserved_capacity >= reservation.quantity,
                    )
                    .values(
                        reserved_capacity=LedgerRow.reserved_capacity - reservation.quantity,
                        updated_at=_utc(at),
                    )
                    .execution_options(synchronize_session=False)
                )
                if restored.rowcount == 0:
                    raise ConflictError(
                        f"Ledger {key} cannot give back {reservation.quantity} unit(s)"
                    )
        return reservation

    def restore(self, key: ResourceKey, quantity: int, at: datetime) -> bool:
        raw_key = str(key)
        held = (
            select(func.coalesce(func.sum(ReservationRow.quantity), 0))
            .where(
                ReservationRow.resource_key == raw_key,
                ReservationRow.status == _ACTIVE,
                ReservationRow.counted.is_(True),
            )
            .scalar_subquery()
        )
        with self._transaction() as session:
            result = session.execute(
                update(LedgerRow)
                .where(
                    LedgerRow.resource_key == raw_key,
                    LedgerRow.track_capacity.is_(True),
                    LedgerRow.reserved_capacity - quantity >= held,
                )
                .values(
                    reserved_capacity=LedgerRow.reserved_capacity - quantity,
                    updated_at=_utc(at),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    # --- Session helpers -------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        """One committed transaction; lock and constraint failures become retryable."""
        try:
            with self._session_factory.begin() as session:
                yield session
        except (OperationalError, IntegrityError) as exc:
            raise ConcurrentModificationError(str(exc.orig or exc)) from exc

    def _select_reservations(self, stmt) -> list[Reservation]:
        with self._transaction() as session:
            return [self._reservation_to_domain(row) for row in session.scalars(stmt)]

    # --- Mapping ---------------------------------------------------------------

    @staticmethod
    def _ledger_to_row(ledger: ResourceLedger, now: datetime) -> LedgerRow:
        key = ledger.key
        row = LedgerRow(
            resource_key=str(key),
            total_capacity=ledger.total_capacity,
            reserved_capacity=ledger.reserved_capacity,
            blocked_capacity=ledger.blocked_capacity,
            track_capacity=ledger.track_capacity,
            low_stock_threshold=ledger.low_stock_threshold,
            updated_at=now,
        )
        if isinstance(key, ProductKey):
            row.kind = "product"
            row.product_id = key.product_id
        elif isinstance(key, RoomNightKey):
            row.kind = "room"
            row.property_id = key.property_id
            row.room_type_id = key.room_type_id
            row.stay_date = key.date
        return row

    @staticmethod
    def _ledger_to_domain(row: LedgerRow) -> ResourceLedger:
        return ResourceLedger(
            key=parse_resource_key(row.resource_key),
            total_capacity=row.total_capacity,
            reserved_capacity=row.reserved_capacity,
            blocked_capacity=row.blocked_capacity,
            track_capacity=row.track_capacity,
            low_stock_threshold=row.low_stock_threshold,
            updated_at=_aware(row.updated_at),
        )

    @staticmethod
    def _reservation_to_row(reservation: Reservation) -> ReservationRow:
        return ReservationRow(
            id=reservation.id,
            group_id=reservation.group_id,
            resource_key=str(reservation.resource_key),
            quantity=reservation.quantity,
            holder_id=reservation.holder_id,
            status=reservation.status.value,
            counted=reservation.counted,
            order_id=reservation.order_id,
            expires_at=_utc(reservation.expires_at),
            created_at=_utc(reservation.created_at),
            closed_at=None if reservation.closed_at is None else _utc(reservation.closed_at),
        )

    @staticmethod
    def _reservation_to_domain(row: ReservationRow) -> Reservation:
        return Reservation(
            id=row.id,
            group_id=row.group_id,
            resource_key=parse_resource_key(row.resource_key),
            quantity=row.quantity,
            holder_id=row.holder_id,
            expires_at=_aware(row.expires_at),
            created_at=_aware(row.created_at),
            status=ReservationStatus(row.status),
            counted=row.counted,
            order_id=row.order_id,
            closed_at=None if row.closed_at is None else _aware(row.closed_at),
        )


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

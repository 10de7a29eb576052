"""Tests for the SQLAlchemy inventory store on SQLite (in-memory, and a file for threads)."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

import pytest

from ims.domain.exceptions import ConcurrentModificationError, ConflictError
from ims.domain.model.ledger import ResourceLedger
from ims.domain.model.reservation import (
    Reservation,
    ReservationItem,
    ReservationStatus,
    new_group_id,
    new_reservation_id,
)
from ims.domain.model.value_objects import ProductKey, RoomNightKey, StayRange
from ims.domain.service.expiry_sweeper import ExpirySweeper
from ims.domain.service.reservation_manager import ReservationManager
from ims.infrastructure.persistence.database import (
    create_engine_for,
    create_session_factory,
    init_models,
)
from ims.infrastructure.persistence.sql_inventory_store import SqlInventoryStore
from tests.fakes import FakeClock

NOW = datetime(2024, 11, 20, 12, 0, tzinfo=timezone.utc)
P1 = ProductKey("P1")


@pytest.fixture
def store():
    engine = create_engine_for("sqlite://")
    init_models(engine)
    yield SqlInventoryStore(create_session_factory(engine))
    engine.dispose()


def _reservation(key=P1, quantity=3, expires_in=timedelta(minutes=30), **overrides):
    fields = dict(
        id=new_reservation_id(),
        group_id=new_group_id(),
        resource_key=key,
        quantity=quantity,
        holder_id="alice",
        expires_at=NOW + expires_in,
        created_at=NOW,
    )
    fields.update(overrides)
    return Reservation(**fields)


class TestLedgerPersistence:

    def test_save_and_get_product_ledger(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10, low_stock_threshold=2))

        ledger = store.get(P1)

        assert ledger.key == P1
        assert ledger.total_capacity == 10
        assert ledger.reserved_capacity == 0
        assert ledger.low_stock_threshold == 2
        assert ledger.updated_at.tzinfo is not None

    def test_get_missing_ledger(self, store):
        assert store.get(P1) is None

    def test_save_does_not_touch_reserved(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        store.hold(_reservation(quantity=4))

        store.save(ResourceLedger(key=P1, total_capacity=3))

        ledger = store.get(P1)
        assert ledger.total_capacity == 3
        assert ledger.reserved_capacity == 4
        assert ledger.is_oversold

    def test_save_updates_blocked(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        store.save(ResourceLedger(key=P1, total_capacity=10, blocked_capacity=2))
        assert store.get(P1).blocked_capacity == 2

    def test_create_if_missing_keeps_existing(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        store.create_if_missing(ResourceLedger(key=P1, total_capacity=0, track_capacity=False))
        assert store.get(P1).track_capacity

    def test_room_nights_by_range(self, store):
        for day in (1, 2, 3, 5):
            store.save(
                ResourceLedger(key=RoomNightKey("H1", "DLX", date(2024, 12, day)), total_capacity=4)
            )
        store.save(ResourceLedger(key=RoomNightKey("H1", "STD", date(2024, 12, 2)), total_capacity=9))

        nights = store.list_room_nights("H1", "DLX", date(2024, 12, 2), date(2024, 12, 5))

        assert [n.key.date for n in nights] == [date(2024, 12, 2), date(2024, 12, 3)]
        assert len(store.list_all()) == 5


class TestHold:

    def test_hold_takes_capacity(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))

        stored = store.hold(_reservation(quantity=3))

        assert stored.counted
        assert stored.status is ReservationStatus.ACTIVE
        assert store.get(P1).reserved_capacity == 3
        [row] = store.list_by_group(stored.group_id)
        assert row.expires_at == NOW + timedelta(minutes=30)

    def test_hold_exactly_remaining(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10, reserved_capacity=0))
        store.hold(_reservation(quantity=7))
        assert store.hold(_reservation(quantity=3)) is not None
        assert store.get(P1).available_capacity == 0

    def test_hold_beyond_capacity_writes_nothing(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=2))
        reservation = _reservation(quantity=3)

        assert store.hold(reservation) is None
        assert store.get(P1).reserved_capacity == 0
        assert store.list_by_group(reservation.group_id) == []

    def test_blocked_capacity_is_not_sold(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10, blocked_capacity=7))

        assert store.hold(_reservation(quantity=4)) is None
        assert store.hold(_reservation(quantity=3)) is not None
        assert store.get(P1).available_capacity == 0

    def test_hold_on_missing_ledger(self, store):
        assert store.hold(_reservation()) is None

    def test_hold_on_untracked_ledger_is_not_counted(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=0, track_capacity=False))

        stored = store.hold(_reservation(quantity=500))

        assert stored is not None
        assert not stored.counted
        assert store.get(P1).reserved_capacity == 0

    def test_failed_insert_rolls_back_the_counter(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        reservation = _reservation(quantity=2)
        store.hold(reservation)

        # Same primary key again: the insert fails, so the increment must too
        with pytest.raises(ConcurrentModificationError):
            store.hold(reservation)

        assert store.get(P1).reserved_capacity == 2


class TestFinish:

    def test_release_restores_capacity_once(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        held = store.hold(_reservation(quantity=4))

        released = store.finish(held.id, ReservationStatus.RELEASED, NOW)

        assert released.status is ReservationStatus.RELEASED
        assert released.closed_at == NOW
        assert store.get(P1).reserved_capacity == 0
        assert store.finish(held.id, ReservationStatus.EXPIRED, NOW) is None
        assert store.get(P1).reserved_capacity == 0

    def test_confirm_keeps_capacity(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        held = store.hold(_reservation(quantity=4))

        confirmed = store.finish(held.id, ReservationStatus.CONFIRMED, NOW, order_id="ORD-1")

        assert confirmed.order_id == "ORD-1"
        assert store.get(P1).reserved_capacity == 4

    def test_release_of_untracked_hold_leaves_counter(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=0, track_capacity=False))
        held = store.hold(_reservation(quantity=5))

        assert store.finish(held.id, ReservationStatus.RELEASED, NOW) is not None
        assert store.get(P1).reserved_capacity == 0

    def test_finish_unknown_reservation(self, store):
        assert store.finish("missing", ReservationStatus.RELEASED, NOW) is None

    def test_finish_to_active_rejected(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        held = store.hold(_reservation(quantity=2))

        with pytest.raises(ConflictError):
            store.finish(held.id, ReservationStatus.ACTIVE, NOW)

        [row] = store.list_by_group(held.group_id)
        assert row.status is ReservationStatus.ACTIVE
        assert store.get(P1).reserved_capacity == 2


class TestRestore:

    def test_restore_gives_sold_units_back(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        held = store.hold(_reservation(quantity=4))
        store.finish(held.id, ReservationStatus.CONFIRMED, NOW)

        assert store.restore(P1, 3, NOW)
        assert store.get(P1).reserved_capacity == 1

    def test_restore_never_frees_active_holds(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        sold = store.hold(_reservation(quantity=2))
        store.finish(sold.id, ReservationStatus.CONFIRMED, NOW)
        store.hold(_reservation(quantity=5))

        assert not store.restore(P1, 3, NOW)
        assert store.restore(P1, 2, NOW)
        assert store.get(P1).reserved_capacity == 5

    def test_restore_on_missing_or_untracked_ledger(self, store):
        assert not store.restore(P1, 1, NOW)
        store.save(ResourceLedger(key=P1, total_capacity=0, track_capacity=False))
        assert not store.restore(P1, 1, NOW)


class TestReservationQueries:

    def test_list_expired_by_key_and_limit(self, store):
        other = ProductKey("P2")
        store.save(ResourceLedger(key=P1, total_capacity=10))
        store.save(ResourceLedger(key=other, total_capacity=10))
        store.hold(_reservation(P1, 1, expires_in=timedelta(minutes=1)))
        store.hold(_reservation(P1, 1, expires_in=timedelta(minutes=2)))
        store.hold(_reservation(other, 1, expires_in=timedelta(minutes=1)))
        store.hold(_reservation(P1, 1, expires_in=timedelta(hours=1)))
        later = NOW + timedelta(minutes=5)

        assert len(store.list_expired(later)) == 3
        assert len(store.list_expired(later, key=P1)) == 2
        assert len(store.list_expired(later, limit=1)) == 1
        assert all(r.expires_at.tzinfo is not None for r in store.list_expired(later))

    def test_list_by_group_and_holder(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        first = store.hold(_reservation(group_id="res_a", holder_id="alice"))
        store.hold(_reservation(group_id="res_b", holder_id="bob"))

        assert [r.id for r in store.list_by_group("res_a")] == [first.id]
        assert [r.group_id for r in store.list_by_holder("bob")] == ["res_b"]
        assert len(store.list_active(P1)) == 2


class TestManagerOnSql:

    def test_sequential_holders_until_stock_runs_out(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        manager = ReservationManager(store, clock=FakeClock(), sleep=lambda s: None)

        assert manager.reserve_batch([ReservationItem(P1, 3)], "A").success
        assert manager.reserve_batch([ReservationItem(P1, 5)], "B").success
        third = manager.reserve_batch([ReservationItem(P1, 5)], "C")

        assert not third.success
        assert third.failures[0].available == 2
        assert store.get(P1).available_capacity == 2

    def test_stay_release_restores_every_night(self, store):
        for day, rooms in ((1, 5), (2, 2)):
            store.save(
                ResourceLedger(key=RoomNightKey("H1", "R1", date(2024, 12, day)), total_capacity=rooms)
            )
        manager = ReservationManager(store, clock=FakeClock(), sleep=lambda s: None)
        stay = StayRange("H1", "R1", date(2024, 12, 1), date(2024, 12, 3))

        short = manager.reserve_batch([ReservationItem(stay, 3)], "guest")
        assert short.failures[0].resource_key == RoomNightKey("H1", "R1", date(2024, 12, 2))

        held = manager.reserve_batch([ReservationItem(stay, 2)], "guest")
        manager.release_reservation(held.reservation_id)

        nights = store.list_room_nights("H1", "R1", date(2024, 12, 1), date(2024, 12, 3))
        assert [n.reserved_capacity for n in nights] == [0, 0]

    def test_expired_hold_is_swept(self, store):
        store.save(ResourceLedger(key=P1, total_capacity=10))
        clock = FakeClock()
        manager = ReservationManager(store, clock=clock, sleep=lambda s: None)
        manager.reserve_batch([ReservationItem(P1, 3)], "A", ttl=timedelta(milliseconds=1))
        clock.advance(milliseconds=2)

        result = ExpirySweeper(store, clock).sweep_expired()

        assert result.released_count == 1
        assert store.get(P1).available_capacity == 10

    def test_unknown_product_auto_provisioned(self, store):
        manager = ReservationManager(store, clock=FakeClock(), sleep=lambda s: None)

        result = manager.reserve_batch([ReservationItem(ProductKey("NEW"), 99)], "A")

        assert result.success
        assert not store.get(ProductKey("NEW")).track_capacity


class TestConcurrencyOnSql:
    """Several threads, each with its own connection, on one SQLite file."""

    @pytest.fixture
    def file_store(self, tmp_path):
        engine = create_engine_for(f"sqlite:///{tmp_path / 'inventory.db'}")
        init_models(engine)
        yield SqlInventoryStore(create_session_factory(engine))
        engine.dispose()

    @staticmethod
    def _run_together(count, fn):
        barrier = threading.Barrier(count)

        def call(index):
            barrier.wait()
            return fn(index)

        with ThreadPoolExecutor(max_workers=count) as pool:
            return list(pool.map(call, range(count)))

    def test_never_oversells_under_contention(self, file_store):
        file_store.save(ResourceLedger(key=P1, total_capacity=10))
        manager = ReservationManager(
            file_store, clock=FakeClock(), max_retries=10, retry_backoff=0.01
        )

        results = self._run_together(
            20, lambda i: manager.reserve_batch([ReservationItem(P1, 1)], f"holder-{i}")
        )

        assert sum(1 for r in results if r.success) == 10
        assert file_store.get(P1).reserved_capacity == 10
        assert len(file_store.list_active(P1)) == 10

    def test_release_racing_sweep_restores_once(self, file_store):
        file_store.save(ResourceLedger(key=P1, total_capacity=10))
        clock = FakeClock()
        manager = ReservationManager(file_store, clock=clock, max_retries=10, retry_backoff=0.01)
        expiring = [
            manager.reserve_batch([ReservationItem(P1, 1)], f"holder-{i}", ttl=timedelta(minutes=1))
            for i in range(5)
        ]
        manager.reserve_batch([ReservationItem(P1, 2)], "keeper", ttl=timedelta(hours=1))
        clock.advance(minutes=2)
        sweeper = ExpirySweeper(file_store, clock)

        def race(index):
            if index == len(expiring):
                return sweeper.sweep_expired().released_count
            return manager.release_reservation(expiring[index].reservation_id)

        finished = self._run_together(len(expiring) + 1, race)

        # Each overdue hold went out through exactly one of the racers
        assert sum(finished) == len(expiring)
        assert file_store.get(P1).reserved_capacity == 2
        assert file_store.list_expired(clock()) == []

"""Composition root — wires concrete implementations to domain interfaces.

This is the only place in the codebase that knows about *all* layers.
Every other module depends only on abstractions.
"""

from __future__ import annotations

from datetime import timedelta

from ims.domain.service.expiry_sweeper import ExpirySweeper
from ims.domain.service.reservation_manager import ReservationManager
from ims.domain.service.resource_ledger import ResourceLedgerService
from ims.infrastructure.config import Settings, get_settings
from ims.infrastructure.persistence.database import (
    create_engine_for,
    create_session_factory,
    init_models,
)
from ims.infrastructure.persistence.sql_inventory_store import SqlInventoryStore


def inventory_store(settings: Settings | None = None) -> SqlInventoryStore:
    settings = settings or get_settings()
    engine = create_engine_for(settings.database_url)
    init_models(engine)
    return SqlInventoryStore(create_session_factory(engine))


def reservation_manager(
    store: SqlInventoryStore, settings: Settings | None = None
) -> ReservationManager:
    settings = settings or get_settings()
    return ReservationManager(
        store,
        default_ttl=timedelta(minutes=settings.reservation_ttl_minutes),
        max_retries=settings.max_retries,
        retry_backoff=settings.retry_backoff_ms / 1000,
        auto_provision=settings.auto_provision_products,
    )


def ledger_service(store: SqlInventoryStore) -> ResourceLedgerService:
    return ResourceLedgerService(store)


def expiry_sweeper(store: SqlInventoryStore) -> ExpirySweeper:
    return ExpirySweeper(store)

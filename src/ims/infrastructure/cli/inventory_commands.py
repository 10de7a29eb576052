"""CLI commands for inventory management."""

from __future__ import annotations

import click

from ims.application.restore_stock import RestoreStockHandler
from ims.application.set_inventory import SetInventoryHandler, SetRoomInventoryHandler
from ims.application.show_inventory import ShowInventoryHandler, ShowStatusHandler
from ims.domain.exceptions import DomainException
from ims.infrastructure.bootstrap import inventory_store, ledger_service, reservation_manager


@click.command("set")
@click.option("--product", required=True, help="Product ID.")
@click.option("--quantity", required=True, type=int, help="Total quantity in stock.")
@click.option("--untracked", is_flag=True, help="Do not limit reservations for this product.")
@click.option("--low-stock", type=int, default=None, help="Low stock alert threshold.")
@click.option("--blocked", type=int, default=None, help="Units held back from sale.")
def inventory_set(
    product: str, quantity: int, untracked: bool, low_stock: int | None, blocked: int | None
) -> None:
    """Set inventory level for a product."""
    handler = SetInventoryHandler(ledger_service(inventory_store()))

    try:
        line = handler.handle(
            product_id=product,
            quantity=quantity,
            tracked=not untracked,
            low_stock_threshold=low_stock,
            blocked=blocked,
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Inventory for '{line.resource_key}' set to {line.total}")


@click.command("set-rooms")
@click.option("--property", "property_id", required=True, help="Property ID.")
@click.option("--room-type", "room_type_id", required=True, help="Room type ID.")
@click.option("--from", "start", required=True, type=click.DateTime(["%Y-%m-%d"]), help="First night.")
@click.option("--to", "end", required=True, type=click.DateTime(["%Y-%m-%d"]), help="Day after the last night.")
@click.option("--rooms", required=True, type=int, help="Rooms available each night.")
@click.option("--blocked", type=int, default=None, help="Rooms out of service each night.")
def inventory_set_rooms(
    property_id: str, room_type_id: str, start, end, rooms: int, blocked: int | None
) -> None:
    """Set the room count of a room type for a range of nights."""
    handler = SetRoomInventoryHandler(ledger_service(inventory_store()))

    try:
        lines = handler.handle(
            property_id, room_type_id, start.date(), end.date(), rooms, blocked
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Set {rooms} room(s) on {len(lines)} night(s) for {property_id}/{room_type_id}")


@click.command("show")
@click.option("--low-stock", is_flag=True, help="Only show low stock entries.")
def inventory_show(low_stock: bool) -> None:
    """Show current inventory levels."""
    handler = ShowInventoryHandler(ledger_service(inventory_store()))
    lines = handler.handle(low_stock_only=low_stock)

    if not lines:
        click.echo("No inventory records found.")
        return

    click.echo(f"{'Resource':<36} {'Total':>8} {'Reserved':>10} {'Available':>10}")
    click.echo("-" * 67)
    for line in lines:
        flag = "  LOW" if line.low_stock else ""
        click.echo(
            f"{line.resource_key:<36} {line.total:>8} {line.reserved:>10} {line.available:>10}{flag}"
        )


@click.command("status")
@click.argument("resource_key")
def inventory_status(resource_key: str) -> None:
    """Show live status of one resource (e.g. product:P1, room:H1:DLX:2024-12-01)."""
    store = inventory_store()
    handler = ShowStatusHandler(reservation_manager(store))

    try:
        status = handler.handle(resource_key)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Resource:   {status.resource_key}")
    click.echo(f"Tracked:    {'yes' if status.tracked else 'no'}")
    click.echo(f"Total:      {status.total}")
    click.echo(f"Reserved:   {status.reserved}")
    if status.blocked:
        click.echo(f"Blocked:    {status.blocked}")
    click.echo(f"Available:  {status.available}")
    click.echo(f"Held:       {status.held} in {status.active_reservations} active reservation(s)")
    if status.oversold:
        click.echo("WARNING: reserved exceeds total (oversold)")
    elif status.low_stock:
        click.echo("Low stock")


@click.command("restore")
@click.option("--product", required=True, help="Product ID.")
@click.option("--quantity", required=True, type=int, help="Sold units coming back to stock.")
def inventory_restore(product: str, quantity: int) -> None:
    """Return sold units of a product to stock (returns, cancelled orders)."""
    handler = RestoreStockHandler(reservation_manager(inventory_store()))

    try:
        status = handler.handle(product, quantity)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(
        f"Restored {quantity} unit(s) of '{status.resource_key}', {status.available} available"
    )

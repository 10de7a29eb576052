"""CLI commands for reservations."""

from __future__ import annotations

from datetime import date

import click

from ims.application.confirm_reservation import ConfirmReservationHandler
from ims.application.dto import ProductItemSpec, ReservationDTO, StayItemSpec
from ims.application.release_reservation import ReleaseReservationHandler
from ims.application.reserve_stock import ReserveStockHandler
from ims.application.show_reservations import ShowReservationsHandler
from ims.application.sweep_expired import SweepExpiredHandler
from ims.domain.exceptions import DomainException
from ims.infrastructure.bootstrap import expiry_sweeper, inventory_store, reservation_manager


def _parse_quantity(raw: str, label: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise click.BadParameter(f"Invalid quantity '{raw}' for '{label}'.")


def _parse_products(raw_items: tuple[str, ...]) -> list[ProductItemSpec]:
    """Parse 'P1:3' options into ProductItemSpec list."""
    specs: list[ProductItemSpec] = []
    for raw in raw_items:
        if ":" not in raw:
            raise click.BadParameter(
                f"Invalid item format '{raw}'. Expected 'ProductId:Quantity'."
            )
        product_id, qty_str = raw.rsplit(":", 1)
        specs.append(
            ProductItemSpec(product_id=product_id.strip(), quantity=_parse_quantity(qty_str, product_id))
        )
    return specs


def _parse_stays(raw_stays: tuple[str, ...]) -> list[StayItemSpec]:
    """Parse 'H1:DLX:2024-12-01:2024-12-03:2' options into StayItemSpec list."""
    specs: list[StayItemSpec] = []
    for raw in raw_stays:
        parts = raw.split(":")
        if len(parts) != 5:
            raise click.BadParameter(
                f"Invalid stay format '{raw}'. "
                "Expected 'Property:RoomType:CheckIn:CheckOut:Quantity'."
            )
        property_id, room_type_id, check_in, check_out, qty_str = parts
        try:
            nights = date.fromisoformat(check_in), date.fromisoformat(check_out)
        except ValueError:
            raise click.BadParameter(f"Invalid dates in stay '{raw}'. Use YYYY-MM-DD.")
        specs.append(
            StayItemSpec(
                property_id=property_id,
                room_type_id=room_type_id,
                check_in=nights[0],
                check_out=nights[1],
                quantity=_parse_quantity(qty_str, raw),
            )
        )
    return specs


def _display_reservation(dto: ReservationDTO) -> None:
    if dto.success:
        click.echo(f"Reservation {dto.reservation_id} created for {dto.holder_id}")
    elif dto.reservation_id:
        click.echo(f"Reservation {dto.reservation_id} is INCOMPLETE for {dto.holder_id}")
    else:
        click.echo(f"Nothing reserved for {dto.holder_id}")

    if dto.lines:
        click.echo(f"Expires:  {dto.expires_at}")
        click.echo()
        click.echo(f"  {'Resource':<36} {'Qty':>5}")
        click.echo(f"  {'-'*42}")
        for line in dto.lines:
            click.echo(f"  {line.resource_key:<36} {line.quantity:>5}")

    for shortfall in dto.shortfalls:
        click.echo(
            f"  SHORT {shortfall.resource_key}: {shortfall.requested} requested, "
            f"{shortfall.available} available ({shortfall.reason})"
        )


@click.command("create")
@click.option("--holder", required=True, help="Customer, session or booking draft ID.")
@click.option("--item", "items", multiple=True, help="Product as 'ProductId:Qty'. Repeatable.")
@click.option(
    "--stay", "stays", multiple=True,
    help="Stay as 'Property:RoomType:CheckIn:CheckOut:Qty'. Repeatable.",
)
@click.option("--ttl-minutes", type=int, default=None, help="Hold duration (default from settings).")
@click.option("--all-or-nothing", is_flag=True, help="Release everything if any item is short.")
def reservation_create(holder: str, items, stays, ttl_minutes, all_or_nothing: bool) -> None:
    """Reserve products and/or rooms for a holder."""
    products = _parse_products(items)
    stay_specs = _parse_stays(stays)

    handler = ReserveStockHandler(reservation_manager(inventory_store()))

    try:
        dto = handler.handle(
            holder_id=holder,
            products=products,
            stays=stay_specs,
            ttl_minutes=ttl_minutes,
            all_or_nothing=all_or_nothing,
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_reservation(dto)
    if not dto.success:
        raise SystemExit(1)


@click.command("confirm")
@click.argument("reservation_id")
@click.option("--order", "order_id", default=None, help="Order or booking ID to attach.")
def reservation_confirm(reservation_id: str, order_id: str | None) -> None:
    """Confirm a reservation: held stock becomes sold."""
    handler = ConfirmReservationHandler(reservation_manager(inventory_store()))

    try:
        lines = handler.handle(reservation_id, order_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Reservation {reservation_id} confirmed ({len(lines)} line(s))")


@click.command("release")
@click.argument("reservation_id")
def reservation_release(reservation_id: str) -> None:
    """Release a reservation and restore its capacity."""
    handler = ReleaseReservationHandler(reservation_manager(inventory_store()))

    try:
        released = handler.handle(reservation_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    if released:
        click.echo(f"Reservation {reservation_id} released ({released} line(s))")
    else:
        click.echo(f"Reservation {reservation_id} had nothing to release")


@click.command("list")
@click.option("--holder", required=True, help="Holder ID.")
def reservation_list(holder: str) -> None:
    """List a holder's reservations."""
    handler = ShowReservationsHandler(reservation_manager(inventory_store()))

    try:
        lines = handler.handle(holder)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    if not lines:
        click.echo(f"No reservations for {holder}.")
        return

    click.echo(f"{'Reservation':<38} {'Resource':<30} {'Qty':>5} {'Status':<10} Expires")
    click.echo("-" * 110)
    for line in lines:
        click.echo(
            f"{line.reservation_id:<38} {line.resource_key:<30} {line.quantity:>5} "
            f"{line.status:<10} {line.expires_at}"
        )


@click.command("sweep")
@click.option("--limit", type=int, default=None, help="Maximum reservations to expire.")
def reservation_sweep(limit: int | None) -> None:
    """Expire overdue reservations and restore their capacity."""
    handler = SweepExpiredHandler(expiry_sweeper(inventory_store()))

    try:
        result = handler.handle(limit)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(
        f"Expired {result.released_count} reservation(s), "
        f"{result.released_quantity} unit(s) restored"
    )

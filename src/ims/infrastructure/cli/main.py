import click

from ims.infrastructure.cli.inventory_commands import (
    inventory_restore,
    inventory_set,
    inventory_set_rooms,
    inventory_show,
    inventory_status,
)
from ims.infrastructure.cli.reservation_commands import (
    reservation_confirm,
    reservation_create,
    reservation_list,
    reservation_release,
    reservation_sweep,
)
from ims.infrastructure.config import get_settings
from ims.infrastructure.logging_config import setup_logging


@click.group()
@click.option("--verbose", is_flag=True, help="Log at DEBUG level.")
def cli(verbose: bool) -> None:
    """IMS — Inventory reservation and allocation"""
    settings = get_settings()
    setup_logging("DEBUG" if verbose else settings.log_level, settings.log_json)


@cli.group()
def inventory() -> None:
    """Manage stock and room inventory."""


@cli.group()
def reservation() -> None:
    """Manage reservations."""


# Register subcommands
inventory.add_command(inventory_restore)
inventory.add_command(inventory_set)
inventory.add_command(inventory_set_rooms)
inventory.add_command(inventory_show)
inventory.add_command(inventory_status)
reservation.add_command(reservation_confirm)
reservation.add_command(reservation_create)
reservation.add_command(reservation_list)
reservation.add_command(reservation_release)
reservation.add_command(reservation_sweep)

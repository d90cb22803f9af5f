"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryBookingStore
from ..adapters.rest_store import RestBookingStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingConflictError, SchedulingError
from ..domain.models import Booking
from ..services.availability_service import AvailabilityService

app = typer.Typer(
    name="slotbooker",
    help="Compute available appointment slots and book them",
    add_completion=False
)

console = Console()

CONFLICT_EXIT_CODE = 2


class _Context:
    def __init__(self, config_path: Path):
        self.config_path = config_path


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Availability and booking engine for salons and barbershops.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    ctx.obj = _Context(config_file or get_default_config_path())


def _load_config(ctx: typer.Context) -> AppConfig:
    try:
        return AppConfig.load_from_yaml(ctx.obj.config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _build_store(config: AppConfig):
    if config.store.backend == "rest":
        return RestBookingStore(
            base_url=config.store.url,
            business_id=config.business.id,
            api_key=config.store.api_key,
            default_timezone=config.business.timezone,
            business_hours=config.business_working_hours(),
            default_buffer_minutes=config.booking.buffer_minutes,
        )
    return InMemoryBookingStore.from_config(config, data_file=config.store.data_file)


def _persist(config: AppConfig, store) -> None:
    """Write demo bookings back when running on the in-memory store."""
    if isinstance(store, InMemoryBookingStore) and config.store.data_file is not None:
        store.save_json(config.store.data_file)


def _resolve_resource(config: AppConfig, identifier: str) -> str:
    resource = config.find_resource(identifier)
    return resource.id if resource else identifier


def _resolve_service(config: AppConfig, identifier: str) -> str:
    service = config.find_service(identifier)
    return service.id if service else identifier


def _fail(error: SchedulingError) -> None:
    console.print(f"[bold red]Error:[/bold red] {error.message}")
    if isinstance(error, BookingConflictError):
        console.print("[yellow]Run 'slotbooker slots' again and pick another time.[/yellow]")
        raise typer.Exit(CONFLICT_EXIT_CODE)
    raise typer.Exit(1)


def _print_booking(booking: Booking, timezone: str, title: str) -> None:
    start = booking.range.start.in_timezone(timezone)
    end = booking.range.end.in_timezone(timezone)
    console.print(Panel.fit(
        f"[bold]ID:[/bold] {booking.id}\n"
        f"[bold]Resource:[/bold] {booking.resource_id}\n"
        f"[bold]Client:[/bold] {booking.client_id}\n"
        f"[bold]When:[/bold] {start.format('ddd DD.MM.YYYY HH:mm')} - {end.format('HH:mm')} ({timezone})\n"
        f"[bold]Status:[/bold] {booking.status.value}",
        title=title
    ))


@app.command()
def slots(
    ctx: typer.Context,
    resource: Annotated[str, typer.Argument(help="Resource id or name")],
    service: Annotated[str, typer.Argument(help="Service id or name")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD). Defaults to today.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print ISO-8601 instants as JSON.")] = False,
):
    """
    Show the offerable start times of a resource for a service on a date.

    Examples:

        slotbooker slots ana haircut --date 2026-11-04

        slotbooker slots Ana "Corte" --json
    """
    config = _load_config(ctx)
    store = _build_store(config)
    service_api = AvailabilityService(store, config.booking)

    resource_id = _resolve_resource(config, resource)
    service_id = _resolve_service(config, service)
    day = date or pendulum.now(config.business.timezone).to_date_string()

    try:
        found = service_api.compute_slots(resource_id, day, service_id)
        timezone = store.get_resource(resource_id).timezone
    except SchedulingError as e:
        _fail(e)

    if as_json:
        console.print_json(data={
            "resource_id": resource_id,
            "service_id": service_id,
            "date": day,
            "slots": [slot.to_iso() for slot in found],
        })
        return

    if not found:
        console.print(
            "[yellow]⚠ No available slots.[/yellow]\n"
            "The resource is closed or fully booked on this date."
        )
        return

    table = Table(
        title=f"{resource_id} · {service_id} · {day}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Start", style="bold yellow")
    table.add_column("ISO-8601 (UTC)", style="dim")

    for slot in found:
        table.add_row(slot.format_local(timezone), slot.to_iso())

    console.print()
    console.print(table)
    console.print(f"[green]✓ {len(found)} slot(s) available ({timezone})[/green]\n")


@app.command()
def book(
    ctx: typer.Context,
    resource: Annotated[str, typer.Argument(help="Resource id or name")],
    service: Annotated[str, typer.Argument(help="Service id or name")],
    start: Annotated[str, typer.Argument(help="Slot start, ISO-8601. Without offset it is read in the resource's timezone.")],
    client: Annotated[str, typer.Option("--client", help="Client id")],
):
    """
    Book a slot for a client.

    Exits with code 2 if the slot was taken in the meantime.
    """
    config = _load_config(ctx)
    store = _build_store(config)
    service_api = AvailabilityService(store, config.booking)

    resource_id = _resolve_resource(config, resource)

    try:
        booking = service_api.book(resource_id, _resolve_service(config, service), start, client)
        timezone = store.get_resource(resource_id).timezone
    except SchedulingError as e:
        _fail(e)

    _persist(config, store)
    _print_booking(booking, timezone, "✓ Booked")


def _transition(ctx: typer.Context, booking_id: str, confirm: bool) -> None:
    config = _load_config(ctx)
    store = _build_store(config)
    service_api = AvailabilityService(store, config.booking)

    try:
        if confirm:
            booking = service_api.confirm_booking(booking_id)
        else:
            booking = service_api.cancel_booking(booking_id)
        resource = store.get_resource(booking.resource_id)
    except SchedulingError as e:
        _fail(e)

    _persist(config, store)
    timezone = resource.timezone if resource else config.business.timezone
    _print_booking(booking, timezone, "✓ Confirmed" if confirm else "✓ Canceled")


@app.command()
def confirm(
    ctx: typer.Context,
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
):
    """
    Confirm a pending booking.
    """
    _transition(ctx, booking_id, confirm=True)


@app.command()
def cancel(
    ctx: typer.Context,
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
):
    """
    Cancel a booking and free its time.
    """
    _transition(ctx, booking_id, confirm=False)


@app.command()
def list_resources(ctx: typer.Context):
    """
    List all configured resources.
    """
    config = _load_config(ctx)

    if not config.resources:
        console.print("[yellow]No resources defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured resources",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Timezone", style="dim")
    table.add_column("Buffer", justify="right")

    for resource in config.resources:
        buffer_minutes = resource.buffer_minutes
        table.add_row(
            resource.id,
            resource.name,
            resource.timezone or config.business.timezone,
            f"{buffer_minutes} min" if buffer_minutes is not None else "default"
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def list_services(ctx: typer.Context):
    """
    List all configured services.
    """
    config = _load_config(ctx)

    if not config.services:
        console.print("[yellow]No services defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured services",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Duration", justify="right")
    table.add_column("Buffer", justify="right")

    for service in config.build_services():
        table.add_row(
            service.id,
            service.name,
            f"{service.duration_minutes} min",
            f"{service.buffer_minutes} min"
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbooker[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()

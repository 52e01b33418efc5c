"""
Main CLI application using Typer.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.database import Database
from ..adapters.seed import load_catalog_file, seed_catalog
from ..adapters.webhook_client import WebhookClient
from ..config import AppConfig, get_default_config_path
from ..domain.booking import AppointmentStatus, NotificationType
from ..domain.exceptions import BookingError
from ..services.availability import AvailabilityService
from ..services.booking import AppointmentInput, AppointmentPatch, BookingResult, BookingService
from ..services.dispatch import NotificationDispatcher
from ..services.notifications import NotificationScheduler

app = typer.Typer(
    name="salonbooking",
    help="Book salon appointments, query availability and relay notifications",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@dataclass
class Services:
    config: AppConfig
    database: Database
    scheduler: NotificationScheduler
    booking: BookingService
    availability: AvailabilityService


def configure_logging(verbose: bool = False) -> None:
    """Route log records through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if config_file is None and not config_path.exists():
        # Defaults are usable for a local SQLite database
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def build_services(config: AppConfig) -> Services:
    """Wire the store, scheduler and services from configuration."""
    database = Database.from_config(config)
    scheduler = NotificationScheduler(
        database=database,
        scheduling=config.scheduling,
        notifications=config.notifications,
        timezone=config.timezone,
    )
    return Services(
        config=config,
        database=database,
        scheduler=scheduler,
        booking=BookingService(
            database=database,
            notifications=scheduler,
            scheduling=config.scheduling,
            timezone=config.timezone,
        ),
        availability=AvailabilityService(
            database=database,
            scheduling=config.scheduling,
            timezone=config.timezone,
        ),
    )


def _services(config_file: Optional[Path]) -> Services:
    try:
        return build_services(_load_config(config_file))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _parse_datetime(value: Optional[str], tz: str, label: str):
    if value is None:
        return None
    try:
        return pendulum.parse(value, tz=tz)
    except Exception as e:
        console.print(f"[red]Could not parse {label} {value!r}: {e}[/red]")
        raise typer.Exit(1)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _print_result(title: str, result: BookingResult) -> None:
    appointment = result.appointment
    console.print(f"[green]✓ {title}[/green] {appointment.id}")
    console.print(f"   Time: {appointment.time_range}")
    console.print(f"   Status: {appointment.status.value}")
    console.print(f"   Price: {appointment.price}")
    if result.notification_ids:
        console.print(f"   Notifications scheduled: {len(result.notification_ids)}")
    for warning in result.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
):
    configure_logging(verbose)


@app.command()
def init_db(config_file: ConfigOption = None):
    """
    Create the database schema.
    """
    services = _services(config_file)
    try:
        services.database.create_all()
    except Exception as e:
        _fail(e)
    console.print("[green]✓ Database schema created[/green]")


@app.command()
def seed(
    catalog_file: Annotated[Path, typer.Argument(help="YAML file with salons, services, professionals and clients")],
    config_file: ConfigOption = None,
):
    """
    Load salons, services, professionals and clients from a YAML file.
    """
    services = _services(config_file)
    try:
        services.database.create_all()
        counts = seed_catalog(services.database, load_catalog_file(catalog_file))
    except (FileNotFoundError, ValueError, BookingError) as e:
        _fail(e)

    summary = ", ".join(f"{count} {kind}" for kind, count in counts.items())
    console.print(f"[green]✓ Loaded {summary}[/green]")


@app.command()
def availability(
    salon_id: Annotated[str, typer.Argument(help="Salon id")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    professional: Annotated[Optional[str], typer.Option("--professional", "-p", help="Professional id")] = None,
    service: Annotated[Optional[str], typer.Option("--service", "-s", help="Service id")] = None,
    config_file: ConfigOption = None,
):
    """
    Show bookable slots for a salon on one day.
    """
    services = _services(config_file)
    try:
        result = services.availability.get_availability(
            salon_id,
            day,
            professional_id=professional,
            service_id=service,
            now=pendulum.now(services.config.timezone),
        )
    except BookingError as e:
        _fail(e)

    if result.is_empty():
        console.print("[yellow]⚠ No bookable slots found.[/yellow]")
        return

    table = Table(
        title=f"Availability {result.day} ({result.duration_minutes} min, every {result.interval_minutes} min)",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Professional", style="bold yellow")
    table.add_column("Slots")

    for professional_id, slots in result.by_professional.items():
        starts = " ".join(slot.start.format("HH:mm") for slot in slots) or "-"
        table.add_row(professional_id, starts)

    console.print()
    console.print(table)
    console.print()


@app.command()
def book(
    salon_id: Annotated[str, typer.Option("--salon", help="Salon id")],
    client_id: Annotated[str, typer.Option("--client", help="Client id")],
    professional_id: Annotated[str, typer.Option("--professional", "-p", help="Professional id")],
    service_id: Annotated[str, typer.Option("--service", "-s", help="Service id")],
    start: Annotated[str, typer.Option("--start", help="Start (YYYY-MM-DD HH:mm)")],
    end: Annotated[Optional[str], typer.Option("--end", help="End; defaults to the service duration")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notes")] = None,
    config_file: ConfigOption = None,
):
    """
    Book an appointment.
    """
    services = _services(config_file)
    tz = services.config.timezone
    data = AppointmentInput(
        salon_id=salon_id,
        client_id=client_id,
        professional_id=professional_id,
        service_id=service_id,
        start_time=_parse_datetime(start, tz, "start"),
        end_time=_parse_datetime(end, tz, "end"),
        notes=notes,
    )
    try:
        result = services.booking.create_appointment(data)
    except BookingError as e:
        _fail(e)
    _print_result("Appointment booked", result)


@app.command()
def reschedule(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    start: Annotated[str, typer.Option("--start", help="New start (YYYY-MM-DD HH:mm)")],
    end: Annotated[Optional[str], typer.Option("--end", help="New end; keeps the current duration by default")] = None,
    config_file: ConfigOption = None,
):
    """
    Move an appointment to a new time.
    """
    services = _services(config_file)
    tz = services.config.timezone
    new_start = _parse_datetime(start, tz, "start")
    new_end = _parse_datetime(end, tz, "end")
    try:
        if new_end is None:
            current = services.booking.get_appointment(appointment_id)
            new_end = new_start.add(minutes=current.time_range.duration_minutes())
        result = services.booking.update_appointment(
            appointment_id, AppointmentPatch(start_time=new_start, end_time=new_end)
        )
    except BookingError as e:
        _fail(e)
    _print_result("Appointment rescheduled", result)


@app.command()
def set_status(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    status: Annotated[AppointmentStatus, typer.Argument(help="New status")],
    config_file: ConfigOption = None,
):
    """
    Move an appointment through its lifecycle (CONFIRMED, COMPLETED, NO_SHOW, ...).
    """
    services = _services(config_file)
    try:
        result = services.booking.update_appointment(appointment_id, AppointmentPatch(status=status))
    except BookingError as e:
        _fail(e)
    _print_result("Appointment updated", result)


@app.command()
def cancel(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Cancellation reason")] = None,
    config_file: ConfigOption = None,
):
    """
    Cancel an appointment and notify the client.
    """
    services = _services(config_file)
    try:
        result = services.booking.cancel_appointment(appointment_id, reason=reason)
    except BookingError as e:
        _fail(e)
    _print_result("Appointment cancelled", result)


@app.command()
def delete(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
    config_file: ConfigOption = None,
):
    """
    Permanently delete an appointment with its history and notifications.
    """
    if not yes:
        typer.confirm(f"Delete appointment {appointment_id} permanently?", abort=True)

    services = _services(config_file)
    try:
        services.booking.delete_appointment(appointment_id)
    except BookingError as e:
        _fail(e)
    console.print(f"[green]✓ Appointment {appointment_id} deleted[/green]")


@app.command()
def appointments(
    salon_id: Annotated[Optional[str], typer.Option("--salon", help="Salon id")] = None,
    professional_id: Annotated[Optional[str], typer.Option("--professional", "-p", help="Professional id")] = None,
    status: Annotated[Optional[AppointmentStatus], typer.Option("--status", help="Status filter")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="From (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Until (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
):
    """
    List appointments.
    """
    services = _services(config_file)
    tz = services.config.timezone
    start_dt = _parse_datetime(start, tz, "start")
    end_dt = _parse_datetime(end, tz, "end")
    try:
        found = services.booking.list_appointments(
            salon_id=salon_id,
            professional_id=professional_id,
            status=status,
            start=start_dt.start_of("day") if start_dt else None,
            end=end_dt.end_of("day") if end_dt else None,
        )
    except BookingError as e:
        _fail(e)

    if not found:
        console.print("[yellow]No appointments found.[/yellow]")
        return

    table = Table(title="Appointments", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="dim")
    table.add_column("Time", style="bold")
    table.add_column("Professional")
    table.add_column("Client")
    table.add_column("Status")
    table.add_column("Price", justify="right")

    for appointment in found:
        table.add_row(
            appointment.id,
            str(appointment.time_range),
            appointment.professional_id,
            appointment.client_id,
            appointment.status.value,
            str(appointment.price),
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def notifications(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    config_file: ConfigOption = None,
):
    """
    List notifications of an appointment.
    """
    services = _services(config_file)
    try:
        found = services.scheduler.list_for_appointment(appointment_id)
    except BookingError as e:
        _fail(e)

    table = Table(title=f"Notifications of {appointment_id}", show_header=True, header_style="bold cyan")
    table.add_column("Type", style="bold yellow")
    table.add_column("Scheduled for")
    table.add_column("Status")
    table.add_column("Error", style="dim")

    for notification in found:
        scheduled = notification.scheduled_for.format("DD.MM.YYYY HH:mm") if notification.scheduled_for else "immediately"
        table.add_row(
            notification.type.value,
            scheduled,
            notification.status.value,
            notification.last_error or "",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def notify(
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    notification_type: Annotated[NotificationType, typer.Argument(help="Notification type")],
    at: Annotated[Optional[str], typer.Option("--at", help="Fire time (YYYY-MM-DD HH:mm); default immediately")] = None,
    config_file: ConfigOption = None,
):
    """
    Schedule a single notification for an appointment.
    """
    services = _services(config_file)
    scheduled_for = _parse_datetime(at, services.config.timezone, "fire time")
    try:
        notification_id = services.scheduler.schedule(appointment_id, notification_type, scheduled_for)
    except BookingError as e:
        _fail(e)
    console.print(f"[green]✓ Notification {notification_id} scheduled[/green]")


@app.command()
def dispatch(
    config_file: ConfigOption = None,
):
    """
    Send all due notifications to the relay webhook.
    """
    services = _services(config_file)
    settings = services.config.notifications
    client = (
        WebhookClient(settings.webhook_url, timeout=settings.timeout_seconds)
        if settings.webhook_url
        else None
    )
    dispatcher = NotificationDispatcher(
        scheduler=services.scheduler,
        client=client,
        instance_name=settings.instance_name,
    )
    try:
        report = dispatcher.dispatch_due()
    except BookingError as e:
        _fail(e)

    if report.unreported:
        console.print(f"[yellow]⚠ {len(report.unreported)} notification(s) could not be recorded[/yellow]")
    if not report.total:
        console.print("[dim]Nothing to dispatch.[/dim]")
        return
    console.print(f"[green]✓ {len(report.sent)} sent[/green], [red]{len(report.failed)} failed[/red]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]salonbooking[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()

"""Main CLI entry point for the viewings command."""

import os
import click
from datetime import date, time
from pathlib import Path
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from typing import Optional

from .. import __version__
from ..core.config import ConfigManager
from ..core.errors import ViewingEngineError
from ..scheduling.engine import BookingEngine
from ..storage.models import AppointmentStatus
from ..storage.seed import clock_for, load_seed, populate, replay_bookings

console = Console()

STATUS_STYLES = {
    AppointmentStatus.QUEUED: "yellow",
    AppointmentStatus.PENDING: "cyan",
    AppointmentStatus.PENDING_APPROVAL: "cyan",
    AppointmentStatus.ACCEPTED: "green",
    AppointmentStatus.SCHEDULED: "green",
    AppointmentStatus.CANCELLED: "dim",
    AppointmentStatus.REJECTED: "red",
    AppointmentStatus.SOLD: "bold magenta",
    AppointmentStatus.RENTED: "bold magenta",
}


def get_engine(seed_path: str, config_path: Optional[str] = None) -> BookingEngine:
    """Build an in-process engine from a seed file, replaying its bookings."""
    data = load_seed(seed_path)
    config = ConfigManager(Path(config_path) if config_path else None).config
    engine = BookingEngine(config=config, clock=clock_for(data))
    populate(engine, data)
    replay_bookings(engine, data)
    return engine


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not a YYYY-MM-DD date")


def _parse_time(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not an HH:MM time")


def _status(appointment) -> str:
    style = STATUS_STYLES.get(appointment.status, "")
    value = appointment.status.value
    return f"[{style}]{value}[/{style}]" if style else value


seed_option = click.option(
    "--seed", "seed_path", required=True, type=click.Path(exists=True, dir_okay=False),
    help="JSON seed file with agents, customers, properties and bookings",
)
config_option = click.option("--config", "config_path", help="Engine config JSON file")


@click.group()
@click.version_option(version=__version__, prog_name="viewings")
def cli():
    """Viewing Engine - property viewing bookings, waitlists and purchase priority.

    \b
    Quick Start:
      viewings slots agent-1 --seed seed.json              # Bookable start times
      viewings book --seed seed.json -p prop-5 -c cust-a \\
          -a agent-1 -d 2024-06-01 -t 10:00                # Book a viewing
      viewings priority prop-5 --seed seed.json            # Purchase priority
      viewings serve --seed seed.json                      # Run the HTTP API
    """
    pass


@cli.command()
@click.argument("agent_id")
@seed_option
@config_option
@click.option("--property", "-p", "property_id", help="Show waitlist slots for this property")
@click.option("--as-of", help="Resolve as of this date (YYYY-MM-DD)")
def slots(agent_id: str, seed_path: str, config_path: Optional[str], property_id: Optional[str], as_of: Optional[str]):
    """List an agent's bookable start times."""
    engine = get_engine(seed_path, config_path)
    try:
        starts = engine.resolve_available_start_times(
            agent_id,
            as_of=_parse_date(as_of) if as_of else None,
            property_id=property_id,
        )
    except ViewingEngineError as e:
        console.print(f"[red]{e.detail}[/red]")
        raise SystemExit(1)

    if not starts:
        console.print(f"[yellow]No bookable start times for {agent_id}.[/yellow]")
        return

    table = Table(title=f"Available start times - {agent_id}")
    table.add_column("Date")
    table.add_column("Start", style="bold")
    table.add_column("End")
    table.add_column("Waitlist", justify="center")

    for start in starts:
        row = start.to_dict()
        table.add_row(
            row["date"],
            row["start_time"],
            row["end_time"] or "-",
            "[yellow]yes[/yellow]" if start.waitlist else "",
        )

    console.print(table)


@cli.command()
@seed_option
@config_option
@click.option("--property", "-p", "property_id", required=True, help="Property ID")
@click.option("--customer", "-c", "customer_id", required=True, help="Customer ID")
@click.option("--agent", "-a", "agent_id", required=True, help="Agent ID")
@click.option("--date", "-d", "on_date", required=True, help="Viewing date (YYYY-MM-DD)")
@click.option("--time", "-t", "start_time", required=True, help="Start time (HH:MM)")
def book(seed_path: str, config_path: Optional[str], property_id: str, customer_id: str,
         agent_id: str, on_date: str, start_time: str):
    """Book a viewing on top of the seed's bookings."""
    engine = get_engine(seed_path, config_path)
    try:
        appointment = engine.create_booking(
            property_id, customer_id, agent_id, _parse_date(on_date), _parse_time(start_time)
        )
    except ViewingEngineError as e:
        console.print(f"[red]✗ Booking failed:[/red] {e.detail}")
        raise SystemExit(1)

    lines = [
        f"[green]✓ Booked {appointment.id}[/green]\n",
        f"Status:          {_status(appointment)}",
        f"Viewing rights:  {'yes' if appointment.has_viewing_rights else 'no'}",
        f"Purchase rights: {'yes' if appointment.has_purchase_rights else 'no'}",
    ]
    if appointment.queue_position:
        lines.append(f"Waitlist:        position {appointment.queue_position}")
    console.print(Panel.fit("\n".join(lines), title="Booking"))


@cli.command()
@click.argument("property_id")
@seed_option
@config_option
@click.option("--agent", "-a", "agent_id", required=True, help="Agent ID")
@click.option("--date", "-d", "on_date", required=True, help="Viewing date (YYYY-MM-DD)")
@click.option("--time", "-t", "start_time", required=True, help="Start time (HH:MM)")
def waitlist(property_id: str, seed_path: str, config_path: Optional[str], agent_id: str,
             on_date: str, start_time: str):
    """Show the waitlist for an exclusive property slot."""
    engine = get_engine(seed_path, config_path)
    entries = engine.get_waitlist(property_id, agent_id, _parse_date(on_date), _parse_time(start_time))

    if not entries:
        console.print("[yellow]Nobody is waiting for this slot.[/yellow]")
        return

    table = Table(title=f"Waitlist - {property_id} / {agent_id} {on_date} {start_time}")
    table.add_column("Pos", justify="right", style="bold")
    table.add_column("Customer", style="cyan")
    table.add_column("Attempted at")
    table.add_column("Appointment", style="dim")

    for entry in entries:
        table.add_row(
            str(entry.queue_position),
            entry.customer_id,
            entry.booking_attempt_timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.id,
        )

    console.print(table)


@cli.command()
@click.argument("property_id")
@seed_option
@config_option
def priority(property_id: str, seed_path: str, config_path: Optional[str]):
    """Show purchase priority for a property."""
    engine = get_engine(seed_path, config_path)
    try:
        queue = engine.get_purchase_priority_queue(property_id)
    except ViewingEngineError as e:
        console.print(f"[red]{e.detail}[/red]")
        raise SystemExit(1)

    if not queue:
        console.print(f"[yellow]No active viewings for {property_id}.[/yellow]")
        return

    table = Table(title=f"Purchase priority - {property_id}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Customer", style="cyan")
    table.add_column("Agent")
    table.add_column("Viewing")
    table.add_column("Status")
    table.add_column("Rights", justify="center")

    for rank, appointment in enumerate(queue):
        if appointment.has_purchase_rights:
            rights = "[green]purchase[/green]"
        elif appointment.purchase_declined:
            rights = "[dim]declined[/dim]"
        else:
            rights = "view only"
        table.add_row(
            str(rank),
            appointment.customer_id,
            appointment.agent_id,
            f"{appointment.date.isoformat()} {appointment.start_time.strftime('%H:%M')}",
            _status(appointment),
            rights,
        )

    console.print(table)


@cli.command()
@seed_option
@click.option("--config", "config_path", help="Engine config JSON file")
@click.option("--host", default=None, help="Bind host (default VIEWINGS_API_HOST or 0.0.0.0)")
@click.option("--port", default=None, type=int, help="Bind port (default VIEWINGS_API_PORT or 8000)")
def serve(seed_path: str, config_path: Optional[str], host: Optional[str], port: Optional[int]):
    """Run the HTTP API over a seeded engine."""
    import uvicorn
    from ..website_api.config import reload_settings

    os.environ["VIEWINGS_SEED_PATH"] = str(Path(seed_path).resolve())
    if config_path:
        os.environ["VIEWINGS_CONFIG_PATH"] = str(Path(config_path).resolve())
    settings = reload_settings()
    from ..website_api.main import create_app

    console.print(f"[green]Serving viewing engine API on {host or settings.host}:{port or settings.port}[/green]")
    uvicorn.run(create_app(), host=host or settings.host, port=port or settings.port)


@cli.command("config")
@config_option
def show_config(config_path: Optional[str]):
    """Show the effective engine configuration."""
    config = ConfigManager(Path(config_path) if config_path else None).config

    table = Table(title="Engine configuration")
    table.add_column("Setting")
    table.add_column("Value", style="bold")
    for key, value in config.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    cli()

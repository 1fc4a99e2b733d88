import json

import click
from rich.console import Console
from rich.json import JSON
from rich.table import Table

from upswatch.registration import DeviceValidationError, NewDevice, register_device
from upswatch.sync.snapshot import sort_by_numeric_id
from .utils import api_client, handle_async_command, styled

console = Console()


@click.group(name='devices')
def devices_cli():
    """UPS device commands."""
    pass


def _fmt(value, suffix: str = "") -> str:
    return "-" if value is None else f"{value:g}{suffix}"


@devices_cli.command(name="list")
@click.option('--status', type=click.Choice(["healthy", "warning", "risky", "failed"]), help='Filter by status.')
@click.option('--location', help='Filter by location.')
@click.option('--search', help='Search by UPS ID or location.')
@click.option('--limit', type=int, help='Maximum number of devices.')
@click.option('--offset', type=int, help='Number of devices to skip.')
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@handle_async_command
async def list_devices(status, location, search, limit, offset, json_output: bool) -> None:
    """Lists UPS devices."""
    async with api_client() as api:
        page = await api.list_ups(status=status, location=location, search=search, limit=limit, offset=offset)

    devices = sort_by_numeric_id(page.data)
    if json_output:
        console.print(JSON(json.dumps([d.model_dump(by_alias=True, mode="json", exclude={"events", "alerts"}) for d in devices])))
        return

    table = Table(title=f"UPS Devices ({len(devices)} of {page.total})")
    for column in ("UPS ID", "Name", "Location", "Status", "Battery", "Temp", "Load", "Risk"):
        table.add_column(column)
    for ups in devices:
        table.add_row(
            ups.ups_id,
            ups.name,
            ups.location,
            styled(ups.status),
            _fmt(ups.battery_level, "%"),
            _fmt(ups.temperature, "°C"),
            _fmt(ups.load, "%"),
            "-" if ups.failure_risk is None else f"{ups.failure_risk:.0%}",
        )
    console.print(table)


@devices_cli.command()
@click.argument('ups_id')
@click.option('--events', 'event_limit', default=10, show_default=True, help='Number of recent events to show.')
@handle_async_command
async def show(ups_id: str, event_limit: int) -> None:
    """Shows one UPS device with its latest status and events."""
    async with api_client() as api:
        ups = await api.get_ups(ups_id)
        snapshot = await api.get_ups_status(ups_id)
        events = await api.get_ups_events(ups_id, limit=event_limit)

    console.print(f"[bold blue]{ups.ups_id}[/bold blue] {ups.name} ({ups.location})")
    console.print(f"[cyan]Status[/cyan]: {styled(snapshot.status)}  [cyan]Last checked[/cyan]: {snapshot.last_checked or '-'}")
    console.print(
        f"[cyan]Battery[/cyan]: {_fmt(snapshot.battery_level, '%')}  "
        f"[cyan]Temperature[/cyan]: {_fmt(snapshot.temperature, '°C')}  "
        f"[cyan]Input[/cyan]: {_fmt(snapshot.power_input, 'W')}  "
        f"[cyan]Output[/cyan]: {_fmt(snapshot.power_output, 'W')}"
    )

    active = ups.active_alerts
    console.print(f"[bold]Active Alerts ({len(active)})[/bold]")
    for alert in active:
        console.print(f"- {styled(alert.severity)} {alert.type}: {alert.message} ({alert.timestamp})")

    console.print(f"[bold]Recent Events ({len(events.data)})[/bold]")
    for event in events.data:
        console.print(f"- {event.timestamp} {styled(event.type)} {event.message}")


@devices_cli.command()
@click.option('--ups-id', required=True, help='Unique UPS ID.')
@click.option('--name', required=True, help='Display name.')
@click.option('--location', required=True, help='Installation location.')
@click.option('--manufacturer', default='', help='Manufacturer.')
@click.option('--model', default='', help='Model.')
@click.option('--serial-number', default='', help='Serial number.')
@click.option('--capacity', type=float, default=0, help='Capacity (VA).')
@click.option('--critical-load', type=float, default=0, help='Critical load (W).')
@click.option('--installation-date', default='', help='Installation date (YYYY-MM-DD).')
@click.option('--warranty-expiry', default='', help='Warranty expiry (YYYY-MM-DD).')
@click.option('--maintenance-schedule', default='monthly', show_default=True,
              type=click.Choice(["weekly", "monthly", "quarterly", "yearly"]))
@click.option('--next-maintenance', default='', help='Next maintenance date (YYYY-MM-DD).')
@handle_async_command
async def add(**fields) -> None:
    """Adds a new UPS device."""
    device = NewDevice(**fields)
    console.print(f"[bold blue]Adding UPS: {device.ups_id}[/bold blue]")
    try:
        async with api_client() as api:
            created = await register_device(api, device)
    except DeviceValidationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise SystemExit(1)
    console.print(f"[green]✅ UPS {device.name} ({created.ups_id}) has been added to the system.[/green]")

import click
from rich.console import Console
from rich.table import Table

from upswatch.core.bus import ALERT_NOTIFICATION, STATS_UPDATED
from upswatch.dashboard import Dashboard
from upswatch.models import DashboardStats
from upswatch.sync.predictions import PredictionPoller
from upswatch.sync.snapshot import DeviceSnapshotStore
from upswatch.sync.stats import compute_dashboard_stats
from .alerts import print_notification
from .utils import api_client, duration_option, get_settings, handle_async_command, run_for

console = Console()


def stats_table(stats: DashboardStats) -> Table:
    table = Table(title="Dashboard Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total UPS", str(stats.total_ups))
    table.add_row("Healthy", f"[green]{stats.healthy_ups}[/green]")
    table.add_row("Warning", f"[yellow]{stats.warning_ups}[/yellow]")
    table.add_row("Risky", f"[dark_orange]{stats.risky_ups}[/dark_orange]")
    table.add_row("Failed", f"[red]{stats.failed_ups}[/red]")
    table.add_row("Alerts (24h, estimated)", str(stats.alerts_last_24h))
    table.add_row("Predictions", str(stats.predictions_count))
    return table


@click.command()
@handle_async_command
async def health() -> None:
    """Checks backend health."""
    async with api_client() as api:
        status = await api.health()

    if status.status == "healthy":
        console.print(f"[green]✅ Backend is healthy[/green] (db: {'ok' if status.db else 'unavailable'})")
        return
    console.print(f"[red]❌ Backend reports {status.status}[/red]")
    if status.error:
        console.print(f"[red]{status.error}[/red]")
    raise SystemExit(1)


@click.command()
@click.option('--server', is_flag=True, help='Show the backend-computed statistics instead.')
@handle_async_command
async def stats(server: bool) -> None:
    """Shows fleet statistics derived from the current device snapshot."""
    settings = get_settings()
    async with api_client() as api:
        if server:
            console.print(stats_table(await api.dashboard_stats()))
            return

        store = DeviceSnapshotStore(api, interval=settings.SNAPSHOT_INTERVAL)
        predictions = PredictionPoller(api, interval=settings.PREDICTIONS_INTERVAL, limit=settings.PREDICTIONS_LIMIT)
        await store.refetch()
        await predictions.refresh()

    if store.error:
        console.print(f"[red]{store.error}[/red]")
        raise SystemExit(1)
    if predictions.error:
        console.print(f"[yellow]Predictions unavailable: {predictions.error}[/yellow]")
    console.print(stats_table(compute_dashboard_stats(store.records, predictions.count)))


@click.command()
@click.option('--duration', callback=lambda ctx, param, value: duration_option(value),
              help='Stop after this long (e.g. 30s, 10m). Runs until Ctrl-C by default.')
@click.option('--no-stream', is_flag=True, help='Do not open the live alert stream.')
@handle_async_command
async def monitor(duration, no_stream: bool) -> None:
    """Runs the dashboard data sources and prints updates as they arrive."""
    dashboard = Dashboard(get_settings(), enable_stream=not no_stream)

    async def on_stats(stats: DashboardStats) -> None:
        console.print(
            f"[bold]{stats.total_ups} UPS[/bold]: "
            f"[green]{stats.healthy_ups} healthy[/green], "
            f"[yellow]{stats.warning_ups} warning[/yellow], "
            f"[dark_orange]{stats.risky_ups} risky[/dark_orange], "
            f"[red]{stats.failed_ups} failed[/red]; "
            f"{stats.predictions_count} predictions"
        )

    async def on_notification(notification) -> None:
        print_notification(notification)

    dashboard.bus.subscribe(STATS_UPDATED, on_stats)
    dashboard.bus.subscribe(ALERT_NOTIFICATION, on_notification)

    console.print(f"[bold blue]Monitoring {dashboard.api.base_url}[/bold blue]")
    async with dashboard:
        await run_for(duration)
        if dashboard.devices.error:
            console.print(f"[red]{dashboard.devices.error}[/red]")

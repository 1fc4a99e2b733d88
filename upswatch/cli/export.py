from pathlib import Path

import click
from rich.console import Console

from upswatch.export import EXPORT_FORMATS, ExportOptions, export_devices
from upswatch.sync.snapshot import DeviceSnapshotStore, filter_devices, sort_by_numeric_id
from .utils import api_client, get_settings, handle_async_command

console = Console()


@click.command(name='export')
@click.option('--format', 'fmt', type=click.Choice(EXPORT_FORMATS), default='csv', show_default=True,
              help='Export format.')
@click.option('--output', '-o', type=click.Path(file_okay=False, path_type=Path), default=Path('.'),
              show_default=True, help='Directory to write the export into.')
@click.option('--status', default='all', help='Only export devices with this status.')
@click.option('--location', default='all', help='Only export devices at this location.')
@click.option('--search', default='', help='Only export devices whose ID or location matches.')
@click.option('--include-events', is_flag=True, help='Include events (JSON only).')
@click.option('--include-alerts', is_flag=True, help='Include alerts (JSON only).')
@click.option('--include-performance-history', is_flag=True, help='Include performance history (JSON only).')
@handle_async_command
async def export_cmd(fmt, output: Path, status, location, search,
                     include_events, include_alerts, include_performance_history) -> None:
    """Exports the current device snapshot."""
    async with api_client() as api:
        store = DeviceSnapshotStore(api, interval=get_settings().SNAPSHOT_INTERVAL)
        await store.refetch()

    if store.error:
        console.print(f"[red]{store.error}[/red]")
        raise SystemExit(1)

    records = sort_by_numeric_id(filter_devices(store.records, search=search, status=status, location=location))
    options = ExportOptions(
        format=fmt,
        include_events=include_events,
        include_alerts=include_alerts,
        include_performance_history=include_performance_history,
    )
    path = export_devices(records, output, options)
    console.print(f"[green]✅ Exported {len(records)} devices to {path}[/green]")

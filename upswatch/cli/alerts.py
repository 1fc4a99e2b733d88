import click
from rich.console import Console
from rich.table import Table

from upswatch.core.bus import ALERT_NOTIFICATION, STREAM_STATE, EventBus
from upswatch.sync.alert_stream import LiveAlertStream, Notification
from upswatch.sync.predictions import (
    RISK_LEVELS,
    PredictionPoller,
    alert_counts_by_level,
    classify_prediction,
    failure_reasons,
)
from .utils import api_client, duration_option, get_settings, handle_async_command, run_for, styled

console = Console()


@click.group(name='alerts')
def alerts_cli():
    """Alert and prediction commands."""
    pass


def print_notification(notification: Notification) -> None:
    style = "bold red" if notification.level == "critical" else "bold yellow"
    console.print(f"[{style}]{notification.title}[/{style}] {notification.description}")


@alerts_cli.command()
@handle_async_command
async def counts() -> None:
    """Shows alert counts per risk level."""
    async with api_client() as api:
        payload = await api.alert_counts()
    for level, count in alert_counts_by_level(payload).items():
        console.print(f"[cyan]{level.title()} risk[/cyan]: {count}")


@alerts_cli.command()
@click.option('--duration', callback=lambda ctx, param, value: duration_option(value),
              help='Stop after this long (e.g. 30s, 10m). Runs until Ctrl-C by default.')
@handle_async_command
async def watch(duration) -> None:
    """Streams live alerts from the backend."""
    settings = get_settings()
    bus = EventBus()
    stream = LiveAlertStream.from_settings(settings, bus=bus)

    async def on_notification(notification: Notification) -> None:
        print_notification(notification)

    async def on_state(state) -> None:
        console.print(f"[dim]alert stream {state.value}[/dim]")

    bus.subscribe(ALERT_NOTIFICATION, on_notification)
    bus.subscribe(STREAM_STATE, on_state)

    console.print(f"[bold blue]Watching alerts on {settings.WS_URL}[/bold blue]")
    await stream.start()
    try:
        await run_for(duration)
    finally:
        await stream.stop()
    console.print(f"Received {stream.unread_count} new alerts; {len(stream.alerts)} in buffer.")


@click.command(name='predictions')
@click.option('--risk-level', type=click.Choice([*RISK_LEVELS, "all"]), default="all", show_default=True,
              help='Only show predictions with this risk level.')
@click.option('--limit', type=int, default=None, help='Maximum number of predictions.')
@click.option('--reasons/--no-reasons', default=True, help='Show failure reasons.')
@handle_async_command
async def predictions_cmd(risk_level: str, limit, reasons: bool) -> None:
    """Shows ML failure predictions with their severity."""
    settings = get_settings()
    async with api_client() as api:
        poller = PredictionPoller(
            api,
            interval=settings.ALERTS_PAGE_PREDICTIONS_INTERVAL,
            limit=limit or settings.PREDICTIONS_LIMIT,
        )
        await poller.set_risk_filter(risk_level)

    if poller.error:
        console.print(f"[red]Failed to fetch predictions: {poller.error}[/red]")
        raise SystemExit(1)
    if not poller.predictions:
        console.print("[magenta]No ML Predictions Yet[/magenta]")
        return

    table = Table(title=f"Predictions ({poller.count})")
    for column in ("UPS ID", "Severity", "Failure probability", "Confidence", "Risk level"):
        table.add_column(column)
    if reasons:
        table.add_column("Reasons")
    for prediction in poller.predictions:
        row = [
            prediction.ups_id or "-",
            styled(classify_prediction(prediction).value),
            f"{prediction.probability_failure:.0%}",
            "-" if prediction.confidence is None else f"{prediction.confidence:.0%}",
            prediction.risk_level or "-",
        ]
        if reasons:
            row.append("\n".join(failure_reasons(prediction)))
        table.add_row(*row)
    console.print(table)

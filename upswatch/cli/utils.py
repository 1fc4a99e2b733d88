import asyncio
import functools
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import click
from rich.console import Console

from upswatch.config import ConfigurationError, Settings, load_settings
from upswatch.gateway.client import RequestFailure, UPSApiClient
from upswatch.utils.timeparse import parse_duration

console = Console()

STATUS_STYLES = {
    "healthy": "green",
    "warning": "yellow",
    "risky": "dark_orange",
    "failed": "red",
    "critical": "red",
    "info": "blue",
}


def handle_async_command(async_func):
    """Decorator to handle async CLI commands."""
    @functools.wraps(async_func)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(async_func(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except ConfigurationError as e:
            console.print("[red]Environment Configuration Error[/red]")
            console.print(f"[red]{e}[/red]")
            console.print("Set the backend URLs, e.g.:")
            console.print('  export UPSWATCH_API_BASE_URL="http://localhost:10000/api"')
            console.print('  export UPSWATCH_WS_URL="ws://localhost:10000/ws/ups-updates"')
            sys.exit(1)
        except RequestFailure as e:
            console.print(f"[red]Error: {e.detail or e}[/red]")
            sys.exit(1)
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)
    return wrapper


def get_settings() -> Settings:
    """Settings for the current invocation, loaded once and kept on the click context."""
    ctx = click.get_current_context(silent=True)
    if ctx is not None:
        obj = ctx.find_root().ensure_object(dict)
        if obj.get("SETTINGS") is None:
            obj["SETTINGS"] = load_settings()
        return obj["SETTINGS"]
    return load_settings()


@asynccontextmanager
async def api_client() -> AsyncIterator[UPSApiClient]:
    client = UPSApiClient.from_settings(get_settings())
    try:
        yield client
    finally:
        await client.close()


def duration_option(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


async def run_for(duration: Optional[float]) -> None:
    """Sleep for ``duration`` seconds, or until cancelled when it is None."""
    if duration is None:
        await asyncio.Event().wait()
    else:
        await asyncio.sleep(duration)


def styled(value: str) -> str:
    style = STATUS_STYLES.get(value)
    return f"[{style}]{value}[/{style}]" if style else value

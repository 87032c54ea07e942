import asyncio
import functools
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator

import click
from rich.console import Console

from podshare.config import settings
from podshare.sharing.orchestrator import SharingOrchestrator
from podshare.transports.base import StaticTokenProvider
from podshare.transports.http_adapter import PodHttpClient

console = Console()


def handle_async_command(async_func):
    """Decorator to handle async CLI commands."""
    @functools.wraps(async_func)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(async_func(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except click.ClickException:
            raise
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)
    return wrapper


def current_webid() -> str:
    """The session's WebID from PODSHARE_WEBID."""
    if not settings.WEBID:
        raise click.UsageError("No WebID configured; set PODSHARE_WEBID")
    return settings.WEBID


@asynccontextmanager
async def pod_session() -> AsyncIterator[SharingOrchestrator]:
    """Orchestrator bound to an HTTP client using the configured token pair."""
    tokens = StaticTokenProvider(settings.ACCESS_TOKEN or "", settings.DPOP_PROOF or "")
    async with PodHttpClient(tokens, cfg=settings) as client:
        yield SharingOrchestrator(client, cfg=settings)

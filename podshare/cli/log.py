import click
import json
from typing import Iterable, Optional

from rich.json import JSON
from rich.table import Table

from podshare.audit.models import AuditEntry
from podshare.audit.query import filter_by_resource, latest_per_resource, newest_first
from podshare.identity.principal import display_name
from .utils import console, current_webid, handle_async_command, pod_session


@click.group(name='log')
def log_cli():
    """Permission log commands."""
    pass


def _print_entries(title: str, entries: Iterable[AuditEntry], json_output: bool) -> None:
    entries = list(entries)
    if json_output:
        console.print(JSON(json.dumps([e.model_dump(mode="json") for e in entries])))
        return

    console.print(f"[bold blue]{title}[/bold blue]")
    if not entries:
        console.print("[yellow]No entries.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("When", style="cyan")
    table.add_column("Type")
    table.add_column("Resource")
    table.add_column("Granter")
    table.add_column("Recipient")
    table.add_column("Permissions")
    table.add_column("Expires")
    for e in entries:
        table.add_row(
            e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            "[green]grant[/green]" if e.is_grant else "[red]revoke[/red]",
            e.resource,
            display_name(e.granter),
            display_name(e.recipient),
            ", ".join(p.value for p in e.permissions),
            e.expiry.isoformat() if e.expiry else "-",
        )
    console.print(table)


@log_cli.command(name="list")
@click.option('--principal', help='Whose log to read (defaults to PODSHARE_WEBID).')
@click.option('--resource', help='Only entries whose resource contains this text.')
@click.option('--latest', is_flag=True, help='Only the newest entry per resource.')
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@handle_async_command
async def list_entries(principal: Optional[str], resource: Optional[str], latest: bool, json_output: bool) -> None:
    """Lists permission log entries."""
    principal = principal or current_webid()
    async with pod_session() as orchestrator:
        entries = await orchestrator.audit_log.read(principal)
    if resource:
        entries = filter_by_resource(entries, resource)
    if latest:
        entries = newest_first(latest_per_resource(entries).values())
    _print_entries(f"Permission Log: {display_name(principal)}", entries, json_output)


@log_cli.command(name="shared-with-me")
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@handle_async_command
async def shared_with_me_cmd(json_output: bool) -> None:
    """Lists resources others shared with you."""
    webid = current_webid()
    async with pod_session() as orchestrator:
        entries = await orchestrator.shared_with(webid)
    _print_entries("Shared With Me", entries, json_output)


@log_cli.command(name="shared-by-me")
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@handle_async_command
async def shared_by_me_cmd(json_output: bool) -> None:
    """Lists resources you shared with others."""
    webid = current_webid()
    async with pod_session() as orchestrator:
        entries = await orchestrator.shared_by(webid)
    _print_entries("Shared By Me", entries, json_output)

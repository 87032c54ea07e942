import click
from datetime import datetime, timezone
from typing import Optional, Tuple

from rich.table import Table

from podshare.identity.principal import display_name
from podshare.policy.models import Permission, SharePattern, ShareOptions
from podshare.sharing.models import ShareResult
from podshare.utils.timeparse import parse_timedelta
from .utils import console, current_webid, handle_async_command, pod_session

PERMISSION_CHOICES = click.Choice([p.value for p in Permission])
PATTERN_CHOICES = click.Choice([p.value for p in SharePattern])


def _print_result(result: ShareResult) -> None:
    table = Table(title="Share Outcome", show_header=True, header_style="bold cyan")
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    table.add_row("Policy", "[green]applied[/green]")
    for role, ok in sorted(result.audit_outcome.items()):
        table.add_row(f"Audit ({role})", "[green]written[/green]" if ok else "[red]failed[/red]")
    if result.entry is not None and result.entry.is_grant:
        table.add_row("Notification", "[green]delivered[/green]" if result.notified else "[yellow]skipped[/yellow]")
        table.add_row("Outbox", "[green]recorded[/green]" if result.outgoing_logged else "[yellow]skipped[/yellow]")
    table.add_row("State", result.state.value)
    console.print(table)
    for warning in result.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


@click.command()
@click.argument('resource')
@click.argument('recipient')
@click.option('--permission', '-p', 'permissions', multiple=True, type=PERMISSION_CHOICES,
              default=('read',), show_default=True, help='Permission to grant (repeatable).')
@click.option('--pattern', type=PATTERN_CHOICES, default='basic', show_default=True, help='Share pattern.')
@click.option('--owner', help='Resource owner WebID (defaults to PODSHARE_WEBID).')
@click.option('--public-read', is_flag=True, help='Also grant read to everyone.')
@click.option('--valid-for', help='Grant lifetime, e.g. 24h or 7d (implies time_limited for basic shares).')
@click.option('--client-id', help='Client identifier for app_scoped shares.')
@click.option('--contractor', 'contractors', multiple=True, help='Extra reader for delegated shares (repeatable).')
@click.option('--message', help='Note included in the notification.')
@handle_async_command
async def share(resource: str, recipient: str, permissions: Tuple[str, ...], pattern: str,
                owner: Optional[str], public_read: bool, valid_for: Optional[str],
                client_id: Optional[str], contractors: Tuple[str, ...], message: Optional[str]) -> None:
    """Shares RESOURCE with RECIPIENT."""
    webid = current_webid()
    valid_until = None
    if valid_for:
        try:
            valid_until = datetime.now(timezone.utc) + parse_timedelta(valid_for)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint='--valid-for')
        if pattern == SharePattern.BASIC.value:
            pattern = SharePattern.TIME_LIMITED.value

    options = ShareOptions(
        public_read=public_read,
        valid_until=valid_until,
        client_id=client_id,
        contractors=list(contractors),
    )
    console.print(f"[bold blue]Sharing {resource} with {display_name(recipient)}[/bold blue]")
    async with pod_session() as orchestrator:
        result = await orchestrator.share(
            resource, owner or webid, recipient, permissions, pattern, options,
            granter=webid, message=message,
        )
    _print_result(result)
    console.print("[green]✅ Resource shared successfully![/green]")


@click.command()
@click.argument('resource')
@click.argument('recipient')
@click.option('--permission', '-p', 'permissions', multiple=True, type=PERMISSION_CHOICES,
              default=('read', 'write', 'append', 'control'), help='Permission being revoked (repeatable).')
@click.option('--owner', help='Resource owner WebID (defaults to PODSHARE_WEBID).')
@handle_async_command
async def revoke(resource: str, recipient: str, permissions: Tuple[str, ...], owner: Optional[str]) -> None:
    """Revokes RECIPIENT's access to RESOURCE (leaves the resource owner-only)."""
    webid = current_webid()
    console.print(f"[bold blue]Revoking access to {resource} for {display_name(recipient)}[/bold blue]")
    async with pod_session() as orchestrator:
        result = await orchestrator.revoke(resource, owner or webid, recipient, permissions, granter=webid)
    _print_result(result)
    console.print("[green]✅ Access revoked.[/green]")

import click
from rich.syntax import Syntax
from rich.table import Table

from podshare.core.errors import NotFound
from .utils import console, current_webid, handle_async_command, pod_session


@click.group(name='policy')
def policy_cli():
    """Access control policy commands."""
    pass


@policy_cli.command()
@click.argument('resource')
@click.option('--raw', is_flag=True, help='Print the policy document.')
@handle_async_command
async def show(resource: str, raw: bool) -> None:
    """Shows the access control policy of a resource."""
    console.print(f"[bold blue]Policy for {resource}[/bold blue]")
    async with pod_session() as orchestrator:
        try:
            policy = await orchestrator.policy_store.fetch(resource, missing_ok=False)
        except NotFound:
            console.print("[yellow]No access control policy found.[/yellow]")
            return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Mode", style="cyan")
    table.add_column("Mentioned")
    for mode, present in policy.flags.model_dump().items():
        table.add_row(mode, "[green]yes[/green]" if present else "no")
    console.print(table)
    console.print(f"Location: {policy.url}")
    if raw:
        console.print(Syntax(policy.body, "turtle"))


@policy_cli.command()
@click.argument('resource')
@handle_async_command
async def private(resource: str) -> None:
    """Makes a resource accessible to its owner only."""
    webid = current_webid()
    async with pod_session() as orchestrator:
        await orchestrator.make_private(resource, webid)
    console.print(f"[green]✅ {resource} is now private.[/green]")


@policy_cli.command()
@click.argument('resource')
@click.option('--yes', is_flag=True, help='Skip confirmation.')
@handle_async_command
async def delete(resource: str, yes: bool) -> None:
    """Deletes the access control policy of a resource."""
    if not yes and not click.confirm(f"Delete the access control policy of {resource}?"):
        console.print("[yellow]Aborted.[/yellow]")
        return
    async with pod_session() as orchestrator:
        await orchestrator.policy_store.delete(resource)
    console.print(f"[green]✅ Policy for {resource} deleted.[/green]")

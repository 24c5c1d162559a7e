"""Main CLI implementation using Typer."""

from typing import Any, Callable, Optional

import typer
from rich.console import Console

from prismsync.cli.client import IPCClient, IPCError
from prismsync.cli.commands import (
    LIST_COLUMNS,
    agent_reload,
    list_resources,
    refresh_clouds,
    show_status,
)


app = typer.Typer(
    name="prismctl",
    help="prismsync - Prism Element inventory reconciliation",
    add_completion=False,
)

console = Console()


def _run_cli_command(handler: Callable[..., Any], socket: Optional[str], **kwargs: Any):
    """Helper to run a CLI command with an IPC client and error handling."""
    try:
        client = IPCClient(socket_path=socket)
        handler(client, **kwargs)
    except IPCError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command("status")
def status_command(
    socket: Optional[str] = typer.Option(
        None, "--socket", "-s", help="Agent socket path"
    ),
):
    """Show sync status of every cloud."""
    _run_cli_command(show_status, socket=socket)


@app.command("list")
def list_command(
    resource_type: str = typer.Argument(
        ..., help="Resource type (hosts, vms, networks, pools, images, locations, snapshots, datastores)"
    ),
    cloud: Optional[str] = typer.Option(None, "--cloud", "-c", help="Only records of this cloud"),
    socket: Optional[str] = typer.Option(
        None, "--socket", "-s", help="Agent socket path"
    ),
):
    """List inventory records."""
    if resource_type not in LIST_COLUMNS:
        console.print(f"[red]Error:[/red] Unknown resource type: {resource_type}")
        raise typer.Exit(1)
    _run_cli_command(list_resources, socket=socket, resource_type=resource_type, cloud=cloud)


@app.command("refresh")
def refresh_command(
    cloud: Optional[str] = typer.Argument(None, help="Cloud to refresh"),
    all: bool = typer.Option(False, "--all", help="Refresh every enabled cloud"),
    socket: Optional[str] = typer.Option(
        None, "--socket", "-s", help="Agent socket path"
    ),
):
    """Refresh one cloud or all of them."""
    if not cloud and not all:
        console.print("[red]Error:[/red] Specify cloud name or use --all")
        raise typer.Exit(1)
    _run_cli_command(refresh_clouds, socket=socket, cloud=None if all else cloud)


# Agent subcommands
agent_app = typer.Typer(help="Agent management commands")
app.add_typer(agent_app, name="agent")


@agent_app.command("reload")
def agent_reload_command(
    socket: Optional[str] = typer.Option(
        None, "--socket", "-s", help="Agent socket path"
    ),
):
    """Reload agent configuration."""
    _run_cli_command(agent_reload, socket=socket)


def main():
    """Main entry point for CLI."""
    app()

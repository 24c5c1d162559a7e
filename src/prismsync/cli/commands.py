"""Command implementations for CLI."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from prismsync.cli.client import IPCClient


console = Console()

STATUS_COLORS = {
    "ok": "green",
    "syncing": "cyan",
    "offline": "red",
    "error": "red",
}

# Columns shown per resource type: (header, record field)
LIST_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "hosts": [("ID", "id"), ("Name", "name"), ("External ID", "external_id"), ("Power", "power_state"),
              ("Cores", "max_cores"), ("Memory", "max_memory"), ("Used Memory", "used_memory")],
    "vms": [("ID", "id"), ("Name", "name"), ("External ID", "external_id"), ("Power", "power_state"),
            ("Status", "status"), ("IP", "internal_ip"), ("Host", "parent_server_id")],
    "networks": [("ID", "id"), ("Name", "name"), ("External ID", "external_id"), ("Type", "type_code"),
                 ("VLAN", "vlan_id"), ("Subnet", "subnet_address"), ("Pool", "pool_id")],
    "pools": [("ID", "id"), ("Name", "name"), ("External ID", "external_id"), ("Type", "type_code"),
              ("Gateway", "gateway"), ("Cloud", "ref_id")],
    "images": [("ID", "id"), ("Name", "name"), ("External ID", "external_id"), ("Type", "image_type"),
               ("Status", "status")],
    "locations": [("ID", "id"), ("Image Name", "image_name"), ("External ID", "external_id"),
                  ("Image", "virtual_image_id"), ("Cloud", "ref_id")],
    "snapshots": [("ID", "id"), ("Name", "name"), ("External ID", "external_id"), ("Server", "server_id"),
                  ("Created", "snapshot_created")],
    "datastores": [("ID", "id"), ("Name", "name"), ("External ID", "external_id"), ("Size", "storage_size"),
                   ("Free", "free_space"), ("Active", "active")],
}


def _format(value: Any) -> str:
    if value is None:
        return "-"
    return str(value)


def _run_action(client: IPCClient, description: str, command: str, args: Dict[str, Any]) -> Dict[str, Any]:
    """Helper to run an IPC action with a progress spinner."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(description, total=None)
        response = client.request(command, args)
        progress.update(task, completed=True)
    return response


def show_status(client: IPCClient):
    """Show per-cloud sync status."""
    response = client.request("status", {})
    clouds = response.get("clouds", {})

    if not clouds:
        console.print("[yellow]No clouds configured[/yellow]")
        return

    table = Table(title="Clouds")
    table.add_column("Name", style="cyan")
    table.add_column("ID")
    table.add_column("Status")
    table.add_column("Message")
    table.add_column("Last Sync")
    table.add_column("Region", style="dim", max_width=16)

    for name, info in clouds.items():
        status = info.get("status") or "unknown"
        if info.get("refreshing"):
            status = "syncing"
        if not info.get("enabled", True):
            status = "disabled"
        color = STATUS_COLORS.get(status, "yellow")
        last_sync = info.get("last_sync")
        table.add_row(
            name,
            str(info.get("id")),
            f"[{color}]{status}[/{color}]",
            info.get("alarm") or info.get("message") or "",
            datetime.fromisoformat(last_sync).strftime('%Y-%m-%d %H:%M:%S') if last_sync else "Never",
            info.get("region_code") or "-",
        )

    console.print(table)


def list_resources(client: IPCClient, resource_type: str, cloud: Optional[str] = None):
    """List inventory records of one type."""
    args = {"type": resource_type}
    if cloud:
        args["cloud"] = cloud
    response = client.request("list", args)

    items = response.get("items", [])
    columns = LIST_COLUMNS.get(resource_type, [("ID", "id"), ("External ID", "external_id")])

    title = resource_type.capitalize() if not cloud else f"{resource_type.capitalize()} ({cloud})"
    table = Table(title=title)
    for header, _ in columns:
        table.add_column(header, style="cyan" if header == "Name" else None)
    for item in items:
        table.add_row(*[_format(item.get(field)) for _, field in columns])

    console.print(table)
    console.print(f"{len(items)} {resource_type}")


def refresh_clouds(client: IPCClient, cloud: Optional[str] = None):
    """Trigger a refresh and print the per-pass outcome."""
    description = f"Refreshing {cloud}..." if cloud else "Refreshing all clouds..."
    response = _run_action(client, description, "refresh", {"cloud": cloud} if cloud else {})

    for name, report in response.get("results", {}).items():
        status = report.get("status")
        color = STATUS_COLORS.get(status, "yellow")
        message = f" ({report['message']})" if report.get("message") else ""
        console.print(f"[bold]{name}[/bold]: [{color}]{status}[/{color}]{message}")
        for pass_name, ok in report.get("passes", {}).items():
            mark = "[green]✓[/green]" if ok else "[red]✗[/red]"
            console.print(f"  {mark} {pass_name}")


def agent_reload(client: IPCClient):
    """Reload agent configuration."""
    response = _run_action(client, "Reloading configuration...", "reload", {})
    clouds = response.get("clouds", [])
    console.print(f"[green]✓[/green] Configuration reloaded ({len(clouds)} cloud(s))")

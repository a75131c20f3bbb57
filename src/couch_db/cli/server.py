"""Server level commands."""

import json

import click
from rich.console import Console
from rich.table import Table

from ..client import Couch

console = Console()


@click.command()
@click.option("--connection", "-c", "name", help="Connection name (default: the configured one)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def info(name: str | None, as_json: bool):
    """Show server details and version."""
    with Couch() as couch:
        server = couch.server(name)
        result = server.server_info(cached="NEVER")

        if not result:
            console.print(f"[red]Cannot reach {server.connection.server}:[/red] {result.message}")
            raise click.Abort()

        if as_json:
            console.print_json(json.dumps(result.answer()))
            return

        values = result.values()
        console.print(f"[bold]Server:[/bold] {server.connection.server}")
        console.print(f"[bold]Version:[/bold] {values.get('version', 'unknown')}")
        vendor = (values.get("vendor") or {}).get("name")
        if vendor:
            console.print(f"[bold]Vendor:[/bold] {vendor}")
        features = values.get("features") or []
        if features:
            console.print(f"[bold]Features:[/bold] {', '.join(features)}")


@click.command()
@click.argument("count", type=int, default=1)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def uuids(count: int, as_json: bool):
    """Get COUNT fresh UUIDs from the server."""
    with Couch() as couch:
        result = couch.request_uuids(count)

        if not result:
            console.print(f"[red]Cannot get uuids:[/red] {result.message}")
            raise click.Abort()

        collected = result.values().get("uuids", [])
        if as_json:
            console.print_json(json.dumps(collected))
            return

        for uuid in collected:
            console.print(uuid)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def dbs(as_json: bool):
    """List the databases."""
    with Couch() as couch:
        result = couch.server().database_names()

        if not result:
            console.print(f"[red]Cannot list databases:[/red] {result.message}")
            raise click.Abort()

        names = result.values() or []
        if as_json:
            console.print_json(json.dumps(names))
            return

        if not names:
            console.print("[yellow]No databases found.[/yellow]")
            return

        table = Table(title="Databases")
        table.add_column("Name", style="cyan")
        for db_name in names:
            table.add_row(db_name)

        console.print(table)

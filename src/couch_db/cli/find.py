"""Find command."""

import json

import click
from rich.console import Console
from rich.table import Table

from ..client import Couch, PagingOptions, UsageError

console = Console()


def _summary(doc: dict) -> str:
    rest = {key: value for key, value in doc.items() if key not in ("_id", "_rev")}
    text = json.dumps(rest, separators=(",", ":"), default=str)
    return text if len(text) <= 60 else text[:57] + "..."


@click.command()
@click.argument("db_name")
@click.argument("selector", default="{}")
@click.option("--page-size", "-p", type=int, default=None, help="Documents per page (default: configured)")
@click.option("--pages", type=int, default=1, help="Number of pages to show")
@click.option("--all", "all_docs", is_flag=True, help="Collect all matching documents")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def find(db_name: str, selector: str, page_size: int | None, pages: int, all_docs: bool, as_json: bool):
    """Find documents in DB_NAME matching a Mango SELECTOR (JSON)."""
    try:
        search = {"selector": json.loads(selector)}
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid selector JSON: {e}[/red]")
        raise click.Abort()

    with Couch() as couch:
        try:
            db = couch.db(db_name)
        except UsageError as e:
            console.print(f"[red]{e}[/red]")
            raise click.Abort()

        result = db.find(search, paging=PagingOptions(page_size=page_size, all=all_docs))
        collected = []
        while True:
            if not result:
                console.print(f"[red]Find failed:[/red] {result.message}")
                raise click.Abort()

            collected.extend(result.page)
            pages -= 1
            if all_docs or pages < 1 or result.is_last_page():
                break
            result = db.find(search, paging=PagingOptions(succeed=result))

        if as_json:
            console.print_json(json.dumps(collected, default=str))
            return

        if not collected:
            console.print("[yellow]No documents found.[/yellow]")
            return

        table = Table(title=f"{db_name}: {len(collected)} documents")
        table.add_column("ID", style="cyan")
        table.add_column("Revision")
        table.add_column("Content")
        for doc in collected:
            table.add_row(str(doc.get("_id", "")), str(doc.get("_rev", "")), _summary(doc))

        console.print(table)
        if not result.is_last_page():
            console.print("[dim]More documents available: use --pages or --all[/dim]")

"""Cache commands: catalyst cache clear|path|show."""

from __future__ import annotations

import click
from rich import box
from rich.table import Table

from catalyst.cli.main import console
from catalyst.config import get_settings
from catalyst.graph.cache import GraphCache, project_key


@click.group()
def cache():
    """Inspect or clear the project graph cache."""


@cache.command("path")
def cache_path():
    """Print the graph cache directory."""
    console.print(str(get_settings().graphs_dir), markup=False, highlight=False)


@cache.command("clear")
@click.option("--project", "project_only", is_flag=True, default=False,
              help="Only drop the entry for the current project")
@click.pass_context
def cache_clear(ctx: click.Context, project_only: bool):
    """Remove cached graphs."""
    graph_cache = GraphCache(get_settings().graphs_dir)
    if project_only:
        key = project_key(ctx.obj["project_path"])
        if graph_cache.invalidate(key):
            console.print(f"Removed cached graph [bold]{key}[/bold]")
        else:
            console.print(f"[dim]No cached graph for {key}[/dim]")
        return
    removed = graph_cache.clear()
    console.print(f"Removed [bold]{removed}[/bold] cached graph(s)")


@cache.command("show")
def cache_show():
    """List cached graphs."""
    graph_cache = GraphCache(get_settings().graphs_dir)
    keys = graph_cache.keys()
    if not keys:
        console.print("[dim]Graph cache is empty.[/dim]")
        return

    table = Table(title="Graph Cache", box=box.ROUNDED)
    table.add_column("Key", style="bold", no_wrap=True)
    table.add_column("Project")
    table.add_column("Targets", justify="right")
    table.add_column("Tool", no_wrap=True)
    table.add_column("Created", style="dim")
    for key in keys:
        entry = graph_cache.load_entry(key)
        if entry is None:
            table.add_row(key, "[red]unreadable[/red]", "", "", "")
            continue
        table.add_row(
            key,
            entry.project_root,
            str(len(entry.graph.targets)),
            entry.tool_version or "[dim]unknown[/dim]",
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)

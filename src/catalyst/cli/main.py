"""Catalyst CLI: main entry point and shared utilities."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.table import Table

from catalyst.build.pipeline import CatalystPipeline
from catalyst.config import get_settings
from catalyst.core.errors import CatalystError
from catalyst.core.logging import CatalystLogger, RunLog, Verbosity, setup_logging

console = Console()


@click.group(invoke_without_command=True)
@click.option(
    "--path", "project_path",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
    help="Tuist project directory (default: current directory)",
)
@click.option("--refresh", is_flag=True, default=False, help="Ignore the graph cache and re-run tuist graph")
@click.option("--verbose", "-v", count=True, help="Verbosity level: -v stage details, -vv commands and debug logs")
@click.pass_context
def main(ctx: click.Context, project_path: Path, refresh: bool, verbose: int):
    """Catalyst: build Tuist projects with Bazel.

    Without a subcommand, runs ``catalyst build``.
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["project_path"] = project_path.resolve()
    ctx.obj["refresh"] = refresh
    ctx.obj["verbosity"] = Verbosity(min(verbose, Verbosity.DEBUG))
    if ctx.invoked_subcommand is None:
        from catalyst.cli.build_commands import build

        ctx.invoke(build)


def cli():
    """Entrypoint that loads .env before running the CLI."""
    from dotenv import load_dotenv

    load_dotenv()
    main()


@contextmanager
def catalyst_errors() -> Iterator[None]:
    """Print a CatalystError in red and exit with its stage's code."""
    try:
        yield
    except CatalystError as e:
        console.print(f"\n[red]{type(e).__name__}:[/red] {e}", highlight=False)
        sys.exit(e.exit_code)
    except ValueError as e:
        console.print(f"\n[red]Configuration error:[/red] {e}", highlight=False)
        sys.exit(1)


@contextmanager
def open_pipeline(ctx: click.Context) -> Iterator[tuple[CatalystPipeline, CatalystLogger]]:
    """Pipeline for the current invocation, with its run logger closed on exit."""
    settings = get_settings()
    settings.ensure_cache_dir()
    run_logger = CatalystLogger(
        verbosity=ctx.obj.get("verbosity", Verbosity.DEFAULT),
        logs_dir=settings.logs_dir,
        console=console,
    )
    try:
        with catalyst_errors():
            yield CatalystPipeline.from_settings(settings, run_logger), run_logger
    finally:
        run_logger.close()


def print_line(line: str) -> None:
    console.print(line, markup=False, highlight=False, style="dim")


def stage_table(run_log: RunLog) -> Table:
    table = Table(title="Summary", box=box.ROUNDED)
    table.add_column("Stage", style="bold", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Commands", justify="right")
    table.add_column("Cache", justify="right", style="cyan")
    table.add_column("Time", justify="right", style="dim")
    for stage in run_log.stages.values():
        status_style = "green" if stage.status == "ok" else "red"
        cache = ""
        if stage.cache_hits or stage.cache_misses:
            cache = "hit" if stage.cache_hits else "miss"
        table.add_row(
            stage.name,
            f"[{status_style}]{stage.status}[/{status_style}]",
            str(stage.commands),
            cache,
            f"{stage.time_seconds:.1f}s",
        )
    return table


# Import subcommand modules to register commands
from catalyst.cli.build_commands import build, generate  # noqa: E402
from catalyst.cli.cache_commands import cache  # noqa: E402
from catalyst.cli.run_commands import run  # noqa: E402

# Register commands
main.add_command(build)
main.add_command(generate)
main.add_command(run)
main.add_command(cache)

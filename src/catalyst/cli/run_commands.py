"""Run command: build the app and launch it in a simulator."""

from __future__ import annotations

import click
from rich.panel import Panel

from catalyst.cli.main import console, open_pipeline, print_line, stage_table


def _print_log(line: str) -> None:
    console.print(line, markup=False, highlight=False)


@click.command()
@click.option("--simulator", "-s", "simulator_name", default=None, help="Simulator name (default: iPhone 16)")
@click.option("--target", "-t", "app_target", default=None, help="Application target (default: first app)")
@click.option("--no-logs", is_flag=True, default=False, help="Exit after launch instead of streaming app logs")
@click.pass_context
def run(ctx: click.Context, simulator_name: str | None, app_target: str | None, no_logs: bool):
    """Build the app for the simulator, install it and launch it."""
    project_path = ctx.obj["project_path"]
    with open_pipeline(ctx) as (pipeline, run_logger):
        result = pipeline.run(
            project_path,
            app_target=app_target,
            simulator_name=simulator_name,
            refresh=ctx.obj["refresh"],
            stream_logs=not no_logs,
            on_line=print_line,
            on_log=_print_log,
        )
        run_log = run_logger.run_finish()

    report = result.run
    console.print()
    console.print(
        Panel(
            f"[bold]App:[/bold] {report.target} ({report.bundle_id})\n"
            f"[bold]Simulator:[/bold] {report.device.name} ({report.device.udid})\n"
            f"[bold]PID:[/bold] {report.pid if report.pid is not None else 'unknown'}",
            title="[bold green]Launched[/bold green]",
            border_style="green",
        )
    )
    console.print(stage_table(run_log))

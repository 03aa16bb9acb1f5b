"""Build commands: catalyst build, catalyst generate."""

from __future__ import annotations

import click
from rich.panel import Panel

from catalyst.cli.main import console, open_pipeline, print_line, stage_table


@click.command()
@click.option("--target", "-t", "target_filter", default=None, help="Build a single target (rule or Tuist target name)")
@click.option("--config", "bazel_config", default=None, help="Named .bazelrc config, e.g. simulator or device")
@click.pass_context
def build(ctx: click.Context, target_filter: str | None, bazel_config: str | None):
    """Generate Bazel files from the Tuist graph and run bazel build."""
    project_path = ctx.obj["project_path"]
    console.print(
        Panel(
            f"[bold]Project:[/bold] {project_path}\n"
            f"[bold]Target:[/bold] {target_filter or 'all'}"
            + (f"\n[bold]Config:[/bold] {bazel_config}" if bazel_config else ""),
            title="[bold cyan]Catalyst Build[/bold cyan]",
            border_style="cyan",
        )
    )

    with open_pipeline(ctx) as (pipeline, run_logger):
        result = pipeline.build(
            project_path,
            target_filter=target_filter,
            config=bazel_config,
            refresh=ctx.obj["refresh"],
            on_line=print_line,
        )
        run_log = run_logger.run_finish()

    console.print()
    console.print(stage_table(run_log))
    console.print(
        f"\n[green]Built[/green] {result.build.label} "
        f"({len(result.artifacts.rule_names)} targets from {result.graph.name})"
    )


@click.command()
@click.pass_context
def generate(ctx: click.Context):
    """Write WORKSPACE, .bazelrc and BUILD without building."""
    project_path = ctx.obj["project_path"]
    with open_pipeline(ctx) as (pipeline, run_logger):
        result = pipeline.generate_only(project_path, refresh=ctx.obj["refresh"])
        run_logger.run_finish()

    for path in result.artifacts.files:
        console.print(f"  [green]+[/green] {path.relative_to(result.artifacts.output_dir)}")
    console.print(
        f"\n[bold]{len(result.artifacts.rule_names)}[/bold] targets generated for "
        f"[bold]{result.graph.name}[/bold]"
    )

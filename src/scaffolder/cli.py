from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from scaffolder.config.loader import load_configuration
from scaffolder.plugins.builtin import register_builtin_plugins
from scaffolder.plugins.registry import ExecutionOptions, PluginRegistry
from scaffolder.report.render_md import render_markdown
from scaffolder.report.summarize import build_summary
from scaffolder.run.model import RunSummary
from scaffolder.run.session import plan_configuration, run_configuration
from scaffolder.util.errors import ScaffolderError

app = typer.Typer(help="Declarative project scaffolding")
console = Console()
_STATUS_STYLES = {
    "SUCCEEDED": "green",
    "FAILED": "red",
    "SKIPPED": "yellow",
    "DISABLED": "dim",
}


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("scaffolder")
    logger.handlers.clear()
    logger.addHandler(
        RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def _resolve_workdir_or_exit(workdir: Path) -> Path:
    try:
        resolved = workdir.resolve()
    except (OSError, RuntimeError) as exc:
        console.print(f"[red]Invalid workdir:[/red] {workdir}")
        raise typer.Exit(2) from exc
    if not resolved.is_dir():
        console.print(f"[red]Invalid workdir:[/red] {workdir}")
        raise typer.Exit(2)
    return resolved


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Dry Run" if summary.dry_run else "Task Results")
    table.add_column("task_id")
    table.add_column("name")
    table.add_column("type")
    table.add_column("status")
    table.add_column("duration_sec", justify="right")
    for task_id, record in summary.tasks.items():
        style = _STATUS_STYLES.get(record.status, "")
        status = f"[{style}]{record.status}[/{style}]" if style else record.status
        duration = "" if record.duration_sec is None else str(record.duration_sec)
        table.add_row(task_id, escape(record.name), record.type, status, duration)
    console.print(table)
    for task_id, record in summary.tasks.items():
        if record.diff:
            console.print(f"[bold]{task_id}[/bold]")
            console.print(record.diff, markup=False, highlight=False)
    if summary.failed_optional:
        names = escape(", ".join(summary.failed_optional))
        console.print(f"[yellow]Optional tasks failed:[/yellow] {names}")
    if summary.failed_required:
        names = escape(", ".join(summary.failed_required))
        console.print(f"[red]Required tasks failed:[/red] {names}")
    else:
        console.print(f"[green]Done.[/green] {summary.completed} task(s) completed")


def _write_report(summary: RunSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_markdown(build_summary(summary)) + "\n", encoding="utf-8")


@app.command()
def run(
    config: Annotated[str, typer.Argument(help="Path or URL of the scaffold configuration")],
    dry_run: Annotated[bool, typer.Option("--dry-run")] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Accept defaults, never ask")] = False,
    workdir: Annotated[Path, typer.Option("--workdir")] = Path("."),
    report: Annotated[Path | None, typer.Option("--report")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    _configure_logging(verbose)
    resolved_workdir = _resolve_workdir_or_exit(workdir)
    try:
        document = load_configuration(config)
        summary = asyncio.run(
            run_configuration(
                document,
                ExecutionOptions(dry_run=dry_run, workdir=resolved_workdir),
                assume_defaults=yes,
                console=console,
            )
        )
    except ScaffolderError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}", highlight=False)
        raise typer.Exit(1) from exc

    _print_summary(summary)
    if report is not None:
        try:
            _write_report(summary, report)
        except OSError as exc:
            console.print(f"[yellow]Warning:[/yellow] failed to write report: {exc}")
        else:
            console.print(f"report: {report}")
    raise typer.Exit(0 if summary.ok else 1)


@app.command()
def validate(
    config: Annotated[str, typer.Argument(help="Path or URL of the scaffold configuration")],
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    _configure_logging(verbose)
    registry = PluginRegistry()
    register_builtin_plugins(registry)
    try:
        document = load_configuration(config)
        ordered = asyncio.run(plan_configuration(document, registry))
    except ScaffolderError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}", highlight=False)
        raise typer.Exit(1) from exc

    table = Table(title="Execution Order")
    table.add_column("#")
    table.add_column("task_id")
    table.add_column("type")
    table.add_column("depends_on")
    for idx, task in enumerate(ordered, start=1):
        table.add_row(str(idx), task.id, task.type, ", ".join(task.dependencies))
    console.print(table)
    console.print(
        f"[green]Valid:[/green] {len(ordered)} task(s), "
        f"{len(document.variables)} variable(s), {len(document.prompts)} prompt(s)"
    )


if __name__ == "__main__":
    app()

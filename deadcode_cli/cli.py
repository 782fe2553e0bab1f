"""Typer-based CLI for deadcode."""

from __future__ import annotations

import cProfile
import logging
import tracemalloc
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from . import __version__
from .analysis import validate_filter
from .config import MODULE_FILTER, AnalysisConfig, load_config, parse_tags
from .errors import DeadcodeError, UsageError
from .models import ReportUnit
from .orchestrator import DeadCodeOrchestrator
from .render import render_json, render_template, render_text, validate_template

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Report unreachable functions in a Python program.",
    add_completion=False,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"deadcode v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="deadcode: %(message)s",
        force=True,
    )


def _project_dir(paths: List[Path]) -> Path:
    first = paths[0]
    return first if first.is_dir() else first.parent


def _write_memprofile(path: Path) -> None:
    snapshot = tracemalloc.take_snapshot()
    tracemalloc.stop()
    with open(path, "w", encoding="utf-8") as f:
        for stat in snapshot.statistics("lineno")[:25]:
            f.write(f"{stat}\n")


def _analyze(
    paths: List[Path],
    config: AnalysisConfig,
    cpuprofile: Optional[Path],
    memprofile: Optional[Path],
) -> List[ReportUnit]:
    profiler = None
    if cpuprofile is not None:
        profiler = cProfile.Profile()
        profiler.enable()
    if memprofile is not None:
        tracemalloc.start()
    try:
        return DeadCodeOrchestrator(config).run(paths)
    finally:
        if profiler is not None:
            profiler.disable()
            profiler.dump_stats(str(cpuprofile))
        if memprofile is not None:
            _write_memprofile(memprofile)


@app.command()
def main(
    paths: Optional[List[Path]] = typer.Argument(
        None, exists=True, help="Package directories or files to analyse (default: current directory)."
    ),
    test: Optional[bool] = typer.Option(None, "--test/--no-test", help="Include test modules and the test build."),
    tags: Optional[str] = typer.Option(None, "--tags", help="Comma-separated build tags (e.g. TYPE_CHECKING)."),
    unit_filter: Optional[str] = typer.Option(
        None, "--filter", help=f"Report only modules matching this regular expression (default: {MODULE_FILTER})."
    ),
    generated: Optional[bool] = typer.Option(
        None, "--generated/--no-generated", help="Report dead functions in generated files."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON records."),
    template: Optional[str] = typer.Option(None, "--format", help="Format each module record with this template."),
    verbose: bool = typer.Option(False, "--verbose", help="Log progress to stderr."),
    cpuprofile: Optional[Path] = typer.Option(None, "--cpuprofile", help="Write a CPU profile to this file."),
    memprofile: Optional[Path] = typer.Option(None, "--memprofile", help="Write a memory profile to this file."),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """Report functions that cannot be reached from the program's entry points."""
    _configure_logging(verbose)

    try:
        if json_output and template is not None:
            raise UsageError("cannot specify both --format and --json")
        if template is not None:
            validate_template(template)

        paths = list(paths or [Path(".")])
        config = load_config(_project_dir(paths)).override(
            include_tests=test,
            tags=parse_tags(tags) if tags is not None else None,
            filter=unit_filter,
            include_generated=generated,
        )
        if config.filter != MODULE_FILTER:
            validate_filter(config.filter)

        units = _analyze(paths, config, cpuprofile, memprofile)

        if json_output:
            output = render_json(units)
        elif template is not None:
            output = render_template(units, template)
        else:
            output = render_text(units)
    except DeadcodeError as exc:
        typer.echo(f"deadcode: {exc.message}", err=True)
        raise typer.Exit(code=exc.exit_code)

    typer.echo(output, nl=False)

    if verbose:
        total = sum(len(u.funcs) for u in units)
        Console(stderr=True).print(
            f"[bold]{total}[/bold] unreachable functions in [bold]{len(units)}[/bold] modules"
        )


if __name__ == "__main__":
    app()

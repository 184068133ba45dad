"""Ruleloom CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from ruleloom import __version__

_SEVERITY_CHOICES = ["error", "warn", "info", "hint"]


def setup_logging(level: int) -> None:
    """Configure logging with a Rich handler writing to stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="ruleloom")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Ruleloom - declarative rule runner for YAML and JSON documents."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    if verbose:
        setup_logging(logging.DEBUG)
    elif quiet:
        setup_logging(logging.ERROR)
    else:
        setup_logging(logging.WARNING)


@main.command()
@click.argument("document", type=click.Path(dir_okay=False, allow_dash=True, path_type=Path))
@click.option(
    "--ruleset",
    "-r",
    "ruleset_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Ruleset file (default: from .ruleloom.yml, else .ruleloom/ruleset.yml).",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich for TTY, porcelain otherwise).",
)
@click.option(
    "--fail-severity",
    type=click.Choice(_SEVERITY_CHOICES),
    default=None,
    help="Exit 1 if any problem is at least this severe (default: error).",
)
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root holding .ruleloom.yml (default: current directory).",
)
def lint(
    *,
    document: Path,
    ruleset_path: Path | None,
    fmt: str | None,
    fail_severity: str | None,
    project: Path | None,
) -> None:
    """Lint DOCUMENT (a YAML or JSON file, or - for stdin) against a ruleset.

    Exit codes: 0 = clean or only problems below the fail severity,
    1 = problems at or above the fail severity, 2 = configuration error.
    """
    from ruleloom.config import load_config
    from ruleloom.linter import LintError, format_json, format_porcelain, render_rich
    from ruleloom.linter import lint as run_lint
    from ruleloom.results import Severity

    project_root = project or Path.cwd()
    config = load_config(project_root)

    ruleset = ruleset_path or config.ruleset
    if not ruleset.is_absolute() and ruleset_path is None:
        ruleset = project_root / ruleset

    # Resolve output format: explicit flag > config > TTY detection.
    fmt = fmt or config.format
    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    threshold = Severity.parse(fail_severity) if fail_severity else config.fail_severity

    try:
        if str(document) == "-":
            result = run_lint(None, ruleset, text=click.get_text_stream("stdin").read())
        else:
            result = run_lint(document, ruleset)
    except LintError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if fmt == "rich":
        render_rich(result, Console())
    else:
        output = format_json(result) if fmt == "json" else format_porcelain(result)
        if output:
            click.echo(output)

    if result.fails(threshold):
        sys.exit(1)

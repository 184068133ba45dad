"""Lint orchestrator: load the document and ruleset, run the rules, format results."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ruleloom.document import STDIN, Document, DocumentInventory
from ruleloom.paths import to_json_pointer
from ruleloom.results import Severity
from ruleloom.ruleset.loader import load_ruleset
from ruleloom.runner.runner import run_rules_sync, select_rules

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

    from ruleloom.results import Diagnostic
    from ruleloom.runner.types import PathQuery


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LintError(Exception):
    """Raised when the document or the ruleset cannot be loaded."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class LintResult:
    """Result of a lint run."""

    diagnostics: list[Diagnostic] = field(default_factory=list)
    source: str | None = None
    formats: frozenset[str] = frozenset()
    rules_loaded: int = 0
    rules_evaluated: int = 0
    elapsed_ms: float = 0.0

    def count(self, severity: Severity) -> int:
        """Number of diagnostics with exactly *severity*."""
        return sum(1 for d in self.diagnostics if d.severity == severity)

    def fails(self, threshold: Severity) -> bool:
        """True if any diagnostic is at least as severe as *threshold*."""
        return any(d.severity <= threshold for d in self.diagnostics)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def lint(
    document_path: Path | None,
    ruleset_path: Path,
    *,
    text: str | None = None,
    path_query: PathQuery | None = None,
) -> LintResult:
    """Lint one document against a ruleset.

    Parameters
    ----------
    document_path:
        Path of the document, or *None* when the document is read from stdin
        (pass its content as *text*).
    ruleset_path:
        Path of the ruleset YAML file.
    text:
        Document content for stdin input.
    path_query:
        Optional replacement for the default JSONPath query.

    Raises
    ------
    LintError
        When the ruleset or the document cannot be read or parsed.
    """
    start = time.monotonic()

    if not ruleset_path.is_file():
        msg = f"Ruleset not found: {ruleset_path}"
        raise LintError(msg)

    try:
        ruleset = load_ruleset(ruleset_path)
    except (OSError, ValueError) as exc:
        msg = f"Invalid ruleset: {exc}"
        raise LintError(msg) from exc

    try:
        if document_path is None:
            document = Document.parse(text or "", source=STDIN)
        else:
            document = Document.from_path(document_path)
    except (OSError, ValueError) as exc:
        msg = f"Cannot read document: {exc}"
        raise LintError(msg) from exc

    inventory = DocumentInventory(document)
    diagnostics = run_rules_sync(
        inventory,
        ruleset.rules,
        ruleset.exceptions,
        path_query=path_query,
        base_dir=ruleset.base_dir,
    )

    return LintResult(
        diagnostics=diagnostics,
        source=document.source,
        formats=inventory.formats,
        rules_loaded=len(ruleset.rules),
        rules_evaluated=len(select_rules(ruleset.rules.values(), inventory)),
        elapsed_ms=(time.monotonic() - start) * 1000,
    )


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def _sorted(diagnostics: list[Diagnostic]) -> list[Diagnostic]:
    return sorted(
        diagnostics,
        key=lambda d: (
            d.source or "",
            d.range.start.line,
            d.range.start.character,
            d.code,
            d.message,
        ),
    )


def render_rich(result: LintResult, console: Console) -> None:
    """Render a LintResult as a Rich table followed by a summary line.

    Lines and characters are shown one-based.
    """
    from rich.table import Table

    styles = {
        Severity.ERROR: "bold red",
        Severity.WARNING: "yellow",
        Severity.INFORMATION: "blue",
        Severity.HINT: "dim",
    }
    elapsed_str = f"{result.elapsed_ms / 1000:.1f}s"

    if not result.diagnostics:
        console.print(
            f"[green]✓ No problems found[/] "
            f"({result.rules_evaluated} of {result.rules_loaded} rules evaluated, {elapsed_str})"
        )
        return

    table = Table(title=result.source or STDIN, show_lines=False)
    table.add_column("Location", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Message")
    table.add_column("Path", overflow="fold")
    for d in _sorted(result.diagnostics):
        table.add_row(
            f"{d.range.start.line + 1}:{d.range.start.character + 1}",
            f"[{styles[d.severity]}]{d.severity.label}[/]",
            d.code,
            d.message,
            to_json_pointer(d.path),
        )
    console.print(table)

    summary = ", ".join(
        f"{result.count(sev)} {sev.label}" for sev in Severity if result.count(sev)
    )
    console.print(
        f"✗ {len(result.diagnostics)} problems ({summary}) "
        f"({result.rules_evaluated} of {result.rules_loaded} rules evaluated, {elapsed_str})"
    )


def format_json(result: LintResult) -> str:
    """Format a LintResult as structured JSON.

    Returns a JSON string with a ``diagnostics`` array and a ``summary`` object.
    """
    diagnostics_list: list[dict[str, object]] = []
    for d in _sorted(result.diagnostics):
        diagnostics_list.append(
            {
                "code": d.code,
                "message": d.message,
                "path": list(d.path),
                "severity": d.severity.label,
                "source": d.source,
                "range": {
                    "start": {"line": d.range.start.line, "character": d.range.start.character},
                    "end": {"line": d.range.end.line, "character": d.range.end.character},
                },
            }
        )

    output: dict[str, object] = {
        "diagnostics": diagnostics_list,
        "summary": {
            "source": result.source,
            "formats": sorted(result.formats),
            "rules_loaded": result.rules_loaded,
            "rules_evaluated": result.rules_evaluated,
            "problems": len(result.diagnostics),
            "elapsed_ms": result.elapsed_ms,
        },
    }

    return json.dumps(output, indent=2, default=str)


def format_porcelain(result: LintResult) -> str:
    """Format a LintResult as one line per diagnostic.

    Format: ``source:line:character:severity:code:pointer:message`` with
    one-based line and character.  Returns an empty string when clean.
    """
    if not result.diagnostics:
        return ""

    lines: list[str] = []
    for d in _sorted(result.diagnostics):
        lines.append(
            f"{d.source or ''}:{d.range.start.line + 1}:{d.range.start.character + 1}:"
            f"{d.severity.label}:{d.code}:{to_json_pointer(d.path)}:{d.message}"
        )
    return "\n".join(lines)

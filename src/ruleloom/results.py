"""Diagnostic data model shared by the runner, the orchestrator and the formatters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ruleloom.document import Document
    from ruleloom.paths import PathSegment


class Severity(IntEnum):
    """Diagnostic severity; lower values are more severe."""

    ERROR = 0
    WARNING = 1
    INFORMATION = 2
    HINT = 3

    @property
    def label(self) -> str:
        """Short lowercase name used in rulesets and output."""
        return _SEVERITY_LABELS[self]

    @classmethod
    def parse(cls, value: object) -> Severity:
        """Parse a ruleset/CLI severity name (``error``, ``warn``, ``info``, ``hint``)."""
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        text = str(value).strip().lower()
        if text not in _SEVERITY_ALIASES:
            msg = f"invalid severity '{value}', must be one of {sorted(_SEVERITY_ALIASES)}"
            raise ValueError(msg)
        return _SEVERITY_ALIASES[text]


_SEVERITY_LABELS: dict[Severity, str] = {
    Severity.ERROR: "error",
    Severity.WARNING: "warn",
    Severity.INFORMATION: "info",
    Severity.HINT: "hint",
}

_SEVERITY_ALIASES: dict[str, Severity] = {
    "error": Severity.ERROR,
    "warn": Severity.WARNING,
    "warning": Severity.WARNING,
    "info": Severity.INFORMATION,
    "information": Severity.INFORMATION,
    "hint": Severity.HINT,
}


@dataclass(frozen=True)
class Position:
    """Zero-based line/character position in the source text."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """Source range of a document node."""

    start: Position
    end: Position


@dataclass(frozen=True)
class Diagnostic:
    """A single lint result."""

    code: str  # rule name
    message: str
    path: tuple[PathSegment, ...]
    severity: Severity
    range: Range
    source: str | None = None


def generate_document_wide_result(
    document: Document, message: str, severity: Severity, code: str
) -> Diagnostic:
    """Build a diagnostic that applies to the whole document rather than one node."""
    return Diagnostic(
        code=code,
        message=message,
        path=(),
        severity=severity,
        range=document.full_range(),
        source=document.source,
    )

"""Rule data model: plain rules, precompiled rules and their ``then`` actions."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Callable

from ruleloom.paths import try_compile_path
from ruleloom.results import Severity

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ruleloom.paths import CompiledPath, PathSegment
    from ruleloom.runner.types import GivenNode

    MatchCallback = Callable[["PrecompiledRule", GivenNode], None]

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleAction:
    """One ``then`` entry: which part of a matched node to check, and how."""

    function_name: str
    function: Callable[..., Any]
    field: str | None = None
    function_options: dict[str, Any] | None = None


@dataclass(frozen=True)
class PlainRule:
    """A rule evaluated expression by expression through the generic path query."""

    name: str
    given: tuple[str, ...]
    then: tuple[RuleAction, ...]
    description: str = ""
    message: str | None = None
    severity: Severity = Severity.WARNING
    enabled: bool = True
    formats: frozenset[str] = frozenset()
    resolved: bool = True
    documentation_url: str | None = None

    def matches_format(self, formats: frozenset[str]) -> bool:
        """Return True if this rule applies to a document with the given *formats*."""
        return _matches_format(self.formats, formats)


@dataclass(frozen=True)
class PrecompiledRule:
    """A rule whose ``given`` expressions are served by a shared tree traversal.

    The traversal reports matches through the callback attached with
    :meth:`hookup`.
    """

    name: str
    given: tuple[str, ...]
    then: tuple[RuleAction, ...]
    expressions: tuple[CompiledPath, ...]
    description: str = ""
    message: str | None = None
    severity: Severity = Severity.WARNING
    enabled: bool = True
    formats: frozenset[str] = frozenset()
    resolved: bool = True
    documentation_url: str | None = None
    _callbacks: list[MatchCallback] = field(
        default_factory=list, init=False, compare=False, repr=False, hash=False
    )

    def matches_format(self, formats: frozenset[str]) -> bool:
        """Return True if this rule applies to a document with the given *formats*."""
        return _matches_format(self.formats, formats)

    def hookup(self, callback: MatchCallback) -> None:
        """Attach the match callback, replacing any callback from a previous run."""
        self._callbacks[:] = [callback]

    def matches(self, path: Sequence[PathSegment]) -> bool:
        """Return True if any of this rule's expressions selects *path*."""
        return any(expression.matches(path) for expression in self.expressions)

    def notify(self, node: GivenNode) -> None:
        """Deliver a matched node to the attached callback."""
        if not self._callbacks:
            msg = f"Rule '{self.name}' was matched before a callback was attached"
            raise RuntimeError(msg)
        self._callbacks[0](self, node)


Rule = PlainRule | PrecompiledRule


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _matches_format(rule_formats: frozenset[str], document_formats: frozenset[str]) -> bool:
    if not rule_formats:
        return True
    return not rule_formats.isdisjoint(document_formats)


def compile_rule(rule: PlainRule) -> Rule:
    """Return a :class:`PrecompiledRule` if every ``given`` expression compiles.

    Rules with at least one expression outside the compilable subset are
    returned unchanged and go through the fallback evaluator.
    """
    expressions: list[CompiledPath] = []
    for given in rule.given:
        compiled = try_compile_path(given)
        if compiled is None:
            return rule
        expressions.append(compiled)

    values = {f.name: getattr(rule, f.name) for f in fields(PlainRule)}
    return PrecompiledRule(**values, expressions=tuple(expressions))

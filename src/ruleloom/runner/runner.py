"""Rule runner: dispatch rules, match nodes, lint them, and await outstanding checks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, assert_never

from ruleloom.paths import ROOT
from ruleloom.results import Severity, generate_document_wide_result
from ruleloom.ruleset.rule import PlainRule, PrecompiledRule
from ruleloom.runner.context import RunContext
from ruleloom.runner.exceptions import pivot_exceptions
from ruleloom.runner.node_linter import lint_node
from ruleloom.runner.query import jsonpath_query
from ruleloom.runner.traversal import traverse
from ruleloom.runner.types import GivenNode

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from pathlib import Path

    from ruleloom.document import DocumentInventory
    from ruleloom.paths import PathSegment
    from ruleloom.results import Diagnostic
    from ruleloom.ruleset.rule import Rule
    from ruleloom.runner.exceptions import ExceptionLocation
    from ruleloom.runner.types import PathQuery

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EXCEPT_BUT_STDIN_CODE = "except-but-stdin"
EXCEPT_BUT_STDIN_MESSAGE = (
    "The ruleset contains `except` entries. "
    "However, they cannot be enforced when the input is passed through stdin."
)

# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@dataclass
class RuleBuckets:
    """Admitted rules, grouped by how they are evaluated."""

    resolved: list[PrecompiledRule] = field(default_factory=list)
    unresolved: list[PrecompiledRule] = field(default_factory=list)
    plain: list[PlainRule] = field(default_factory=list)

    @property
    def precompiled(self) -> list[PrecompiledRule]:
        return self.resolved + self.unresolved

    def __len__(self) -> int:
        return len(self.resolved) + len(self.unresolved) + len(self.plain)


def select_rules(rules: Iterable[Rule], inventory: DocumentInventory) -> RuleBuckets:
    """Admit enabled, format-matching rules and group them by evaluation strategy."""
    buckets = RuleBuckets()
    for rule in rules:
        if not rule.enabled or not rule.matches_format(inventory.formats):
            continue
        if isinstance(rule, PrecompiledRule):
            if rule.resolved:
                buckets.resolved.append(rule)
            else:
                buckets.unresolved.append(rule)
        elif isinstance(rule, PlainRule):
            buckets.plain.append(rule)
        else:
            assert_never(rule)
    return buckets


# ---------------------------------------------------------------------------
# Fallback evaluation
# ---------------------------------------------------------------------------


def _given_matches(
    context: RunContext, given: str, target: Any
) -> Iterable[tuple[tuple[PathSegment, ...], Any]]:
    # the root needs no query at all
    if given == ROOT:
        return [((ROOT,), target)]
    return context.path_query(given, target)


def run_plain_rule(
    context: RunContext,
    rule: PlainRule,
    exception_locations: Sequence[ExceptionLocation] | None,
) -> None:
    """Evaluate each ``given`` expression of *rule* and lint every matched node once."""
    inventory = context.inventory
    target = inventory.resolved if rule.resolved else inventory.unresolved

    seen: set[tuple[PathSegment, ...]] = set()
    for given in rule.given:
        for path, value in _given_matches(context, given, target):
            node = GivenNode(path=path, value=value)
            if node.document_path in seen:
                continue
            seen.add(node.document_path)
            lint_node(context, node, rule, exception_locations)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


async def _await_pending(context: RunContext) -> None:
    """Wait until every pending check has settled, logging the ones that failed."""
    settled = 0
    while settled < len(context.pending):
        batch = context.pending[settled:]
        settled = len(context.pending)
        outcomes = await asyncio.gather(*batch, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error("Asynchronous check failed: %s", outcome, exc_info=outcome)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


async def run_rules(
    inventory: DocumentInventory,
    rules: Mapping[str, Rule],
    exceptions: Mapping[str, Sequence[str]] | None = None,
    *,
    path_query: PathQuery | None = None,
    base_dir: Path | None = None,
) -> list[Diagnostic]:
    """Apply every enabled, format-matching rule to *inventory* and return the diagnostics.

    Parameters
    ----------
    inventory:
        The document being linted.
    rules:
        Rules keyed by name.
    exceptions:
        ``except`` declarations: rule name -> location specs.  Ignored (with
        one document-wide warning) when the document comes from a stream.
    path_query:
        Path query used by plain rules and ``$``-prefixed fields.  Defaults to
        :func:`~ruleloom.runner.query.jsonpath_query`.
    base_dir:
        Directory relative exception sources are resolved against.

    Returns
    -------
    list[Diagnostic]
        Diagnostics in no particular order.
    """
    declared = exceptions or {}
    context = RunContext(
        inventory=inventory,
        rules=rules,
        exceptions=declared,
        path_query=path_query or jsonpath_query,
    )

    if inventory.document.is_stream:
        if declared:
            context.add_result(
                generate_document_wide_result(
                    inventory.document,
                    EXCEPT_BUT_STDIN_MESSAGE,
                    Severity.WARNING,
                    EXCEPT_BUT_STDIN_CODE,
                )
            )
    else:
        context.exception_locations = pivot_exceptions(declared, rules, base_dir)

    buckets = select_rules(rules.values(), inventory)
    logger.debug(
        "Running %d rule(s): %d precompiled resolved, %d precompiled unresolved, %d plain",
        len(buckets),
        len(buckets.resolved),
        len(buckets.unresolved),
        len(buckets.plain),
    )

    def on_match(rule: PrecompiledRule, node: GivenNode) -> None:
        lint_node(context, node, rule, context.exception_locations.get(rule.name))

    for rule in buckets.precompiled:
        rule.hookup(on_match)

    if buckets.resolved:
        traverse(inventory.resolved, buckets.resolved)
    if buckets.unresolved:
        traverse(inventory.unresolved, buckets.unresolved)

    for plain_rule in buckets.plain:
        try:
            run_plain_rule(context, plain_rule, context.exception_locations.get(plain_rule.name))
        except Exception:
            logger.exception("Rule '%s' failed, continuing with remaining rules", plain_rule.name)

    await _await_pending(context)
    return context.results


def run_rules_sync(
    inventory: DocumentInventory,
    rules: Mapping[str, Rule],
    exceptions: Mapping[str, Sequence[str]] | None = None,
    *,
    path_query: PathQuery | None = None,
    base_dir: Path | None = None,
) -> list[Diagnostic]:
    """Blocking wrapper around :func:`run_rules` for callers without an event loop."""
    return asyncio.run(
        run_rules(inventory, rules, exceptions, path_query=path_query, base_dir=base_dir)
    )

"""Node linter: run a rule's ``then`` actions against one matched node."""

from __future__ import annotations

import asyncio
import inspect
import re
from typing import TYPE_CHECKING, Any

from ruleloom.paths import to_json_pointer
from ruleloom.results import Diagnostic
from ruleloom.ruleset.functions import MISSING, FunctionContext, FunctionResult, print_value
from ruleloom.runner.exceptions import is_known_exception

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from ruleloom.paths import PathSegment
    from ruleloom.ruleset.rule import Rule, RuleAction
    from ruleloom.runner.context import RunContext
    from ruleloom.runner.exceptions import ExceptionLocation
    from ruleloom.runner.types import GivenNode

_TEMPLATE_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")

DEFAULT_MESSAGE = "{{error}}"


class RuleFunctionError(Exception):
    """Raised when a rule's check function fails."""


# ---------------------------------------------------------------------------
# Lint targets
# ---------------------------------------------------------------------------


def _dotted_target(
    path: tuple[PathSegment, ...], value: Any, field: str
) -> tuple[tuple[PathSegment, ...], Any]:
    current = value
    segments: list[PathSegment] = []
    for part in field.split("."):
        if current is MISSING:
            segments.append(part)
            continue
        if isinstance(current, dict) and part in current:
            current = current[part]
            segments.append(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
            segments.append(int(part))
        else:
            current = MISSING
            segments.append(part)
    return (*path, *segments), current


def lint_targets(
    context: RunContext, path: tuple[PathSegment, ...], value: Any, field: str | None
) -> list[tuple[tuple[PathSegment, ...], Any]]:
    """Resolve the values a ``then`` action checks for a node at *path*.

    ``None`` checks the node itself, ``@key`` checks each mapping key, a
    ``$``-prefixed field is a path query relative to the node, and anything
    else is a dotted property path (missing properties yield ``MISSING``).
    """
    if field is None:
        return [(path, value)]
    if field == "@key":
        if not isinstance(value, dict):
            return []
        return [((*path, key), key) for key in value]
    if field.startswith("$"):
        found = [((*path, *sub), sub_value) for sub, sub_value in context.path_query(field, value)]
        return found or [(path, MISSING)]
    return [_dotted_target(path, value, field)]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def format_message(template: str, variables: dict[str, str]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names render as empty strings."""
    return _TEMPLATE_RE.sub(lambda m: variables.get(m.group(1), ""), template)


def _render_message(
    rule: Rule, result: FunctionResult, path: tuple[PathSegment, ...], value: Any
) -> str:
    error = result.message or rule.description
    variables = {
        "error": error,
        "description": rule.description,
        "path": ".".join(str(segment) for segment in path),
        "property": str(path[-1]) if path else "",
        "value": print_value(value),
    }
    return format_message(rule.message or DEFAULT_MESSAGE, variables)


# ---------------------------------------------------------------------------
# Result processing
# ---------------------------------------------------------------------------


def _record_results(
    context: RunContext,
    rule: Rule,
    node_path: tuple[PathSegment, ...],
    target_path: tuple[PathSegment, ...],
    target_value: Any,
    results: Sequence[FunctionResult] | None,
    exception_locations: Sequence[ExceptionLocation] | None,
) -> None:
    if not results:
        return

    document = context.inventory.document
    source = context.inventory.source
    for result in results:
        result_path = (*target_path, *result.path)
        if exception_locations and (
            is_known_exception(source, node_path, exception_locations)
            or is_known_exception(source, result_path, exception_locations)
        ):
            continue
        context.add_result(
            Diagnostic(
                code=rule.name,
                message=_render_message(rule, result, result_path, target_value),
                path=result_path,
                severity=rule.severity,
                range=document.get_range(result_path),
                source=source,
            )
        )


def _function_error(
    rule: Rule, action: RuleAction, path: tuple[PathSegment, ...], exc: Exception
) -> RuleFunctionError:
    msg = (
        f"Rule '{rule.name}': function '{action.function_name}' failed at "
        f"{to_json_pointer(path)}: {exc}"
    )
    return RuleFunctionError(msg)


async def _settle(
    context: RunContext,
    rule: Rule,
    action: RuleAction,
    node_path: tuple[PathSegment, ...],
    target_path: tuple[PathSegment, ...],
    target_value: Any,
    outcome: Awaitable[Sequence[FunctionResult] | None],
    exception_locations: Sequence[ExceptionLocation] | None,
) -> None:
    try:
        results = await outcome
    except Exception as exc:
        raise _function_error(rule, action, target_path, exc) from exc
    _record_results(
        context, rule, node_path, target_path, target_value, results, exception_locations
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def lint_node(
    context: RunContext,
    node: GivenNode,
    rule: Rule,
    exception_locations: Sequence[ExceptionLocation] | None = None,
) -> None:
    """Run every ``then`` action of *rule* against *node*, appending diagnostics to *context*.

    Diagnostics at a suppressed location (the node's path or the result's
    path) are dropped.  Functions returning an awaitable are scheduled on the
    running event loop and their handles pushed onto ``context.pending``.

    Raises :class:`RuleFunctionError` when a synchronous check function fails.
    """
    node_path = node.document_path
    for action in rule.then:
        options = action.function_options or {}
        for target_path, target_value in lint_targets(context, node_path, node.value, action.field):
            function_context = FunctionContext(
                rule_name=rule.name, path=target_path, inventory=context.inventory
            )
            try:
                outcome = action.function(target_value, options, function_context)
            except Exception as exc:
                raise _function_error(rule, action, target_path, exc) from exc

            if inspect.isawaitable(outcome):
                future = asyncio.ensure_future(
                    _settle(
                        context,
                        rule,
                        action,
                        node_path,
                        target_path,
                        target_value,
                        outcome,
                        exception_locations,
                    )
                )
                context.add_pending(future)
            else:
                _record_results(
                    context,
                    rule,
                    node_path,
                    target_path,
                    target_value,
                    outcome,
                    exception_locations,
                )

"""Batched tree matcher: one walk of a tree serves every precompiled rule."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ruleloom.paths import to_json_pointer
from ruleloom.runner.types import GivenNode

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ruleloom.paths import PathSegment
    from ruleloom.ruleset.rule import PrecompiledRule

logger = logging.getLogger(__name__)


def _depth_limit(rules: Sequence[PrecompiledRule]) -> int | None:
    """Deepest path any expression can match, or None if some expression is unbounded."""
    limit = 0
    for rule in rules:
        for expression in rule.expressions:
            depth = expression.max_depth
            if depth is None:
                return None
            limit = max(limit, depth)
    return limit


def _children(value: Any) -> list[tuple[PathSegment, Any]]:
    if isinstance(value, dict):
        return list(value.items())
    if isinstance(value, list):
        return list(enumerate(value))
    return []


def _notify(rule: PrecompiledRule, node: GivenNode) -> None:
    try:
        rule.notify(node)
    except Exception:
        logger.exception(
            "Rule '%s' failed on %s, continuing traversal",
            rule.name,
            to_json_pointer(node.path),
        )


def traverse(tree: Any, rules: Sequence[PrecompiledRule]) -> int:
    """Walk *tree* once, depth-first, notifying each rule whose expressions match a node.

    A rule is notified at most once per node even when several of its
    expressions match it.  Containers already on the current ancestor chain
    are not re-entered, so cyclic trees terminate.  A failing callback is
    logged and does not stop the traversal.

    Returns the number of visited nodes.
    """
    if not rules:
        return 0

    limit = _depth_limit(rules)
    ancestors: set[int] = set()
    visited = 0

    def visit(path: tuple[PathSegment, ...], value: Any) -> None:
        nonlocal visited
        visited += 1
        node = GivenNode(path=path, value=value)
        for rule in rules:
            if rule.matches(path):
                _notify(rule, node)

        if limit is not None and len(path) >= limit:
            return
        if not isinstance(value, (dict, list)) or id(value) in ancestors:
            return

        ancestors.add(id(value))
        for key, child in _children(value):
            visit((*path, key), child)
        ancestors.discard(id(value))

    visit((), tree)
    logger.debug("Traversed %d node(s) for %d precompiled rule(s)", visited, len(rules))
    return visited

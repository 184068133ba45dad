"""Default structural path query, backed by ``jsonpath-ng``."""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Any

from jsonpath_ng.ext import parse as jsonpath_parse
from jsonpath_ng.jsonpath import Child, Fields, Index, Root, This

if TYPE_CHECKING:
    from collections.abc import Iterator

    from jsonpath_ng.jsonpath import JSONPath

    from ruleloom.paths import PathSegment


@lru_cache(maxsize=512)
def _parse(expression: str) -> JSONPath:
    return jsonpath_parse(expression)


def _segments(path: Any) -> tuple[PathSegment, ...]:
    """Flatten the concrete ``full_path`` of a jsonpath-ng match into segments."""
    if isinstance(path, (Root, This)):
        return ()
    if isinstance(path, Child):
        return _segments(path.left) + _segments(path.right)
    if isinstance(path, Fields):
        return tuple(path.fields)
    if isinstance(path, Index):
        indices = getattr(path, "indices", None)
        if indices is None:
            indices = [path.index]
        return tuple(int(i) for i in indices)
    msg = f"Unexpected path element in match: {path!r}"
    raise ValueError(msg)


def jsonpath_query(expression: str, tree: Any) -> Iterator[tuple[tuple[PathSegment, ...], Any]]:
    """Yield ``(path, value)`` for every node of *tree* selected by *expression*.

    The path is the concrete path actually matched, root excluded.
    """
    for match in _parse(expression).find(tree):
        yield _segments(match.full_path), match.value

"""Compiled path expressions: a JSONPath subset that can be matched against concrete paths.

Expressions that compile here can be served by a single shared tree traversal
(see :mod:`ruleloom.runner.traversal`).  Everything else is evaluated by the
generic path query instead.

Supported grammar::

    $                       the document root
    .name  ['name']  ["name"]   a mapping key
    .*  [*]                 any child
    [3]                     a list index (non-negative)
    ..<selector>            recursive descent, followed by any selector above
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

ROOT = "$"

PathSegment = str | int

_NAME_RE = re.compile(r"[A-Za-z0-9_\-$@]+")
_INDEX_RE = re.compile(r"\[(\d+)\]")
_QUOTED_RE = re.compile(r"""\[(?:'((?:[^'\\]|\\.)*)'|"((?:[^"\\]|\\.)*)")\]""")

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PathCompileError(ValueError):
    """Raised when an expression falls outside the compilable subset."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Selector:
    """A single step of a compiled expression."""

    kind: str  # "key" | "index" | "any" | "descend"
    value: PathSegment | None = None

    def accepts(self, segment: PathSegment) -> bool:
        """Return True if this selector accepts *segment* at its position.

        A key selector also accepts an integer segment spelled the same way, so
        ``$.responses.200`` reaches a YAML mapping key loaded as ``200``.
        """
        if self.kind == "any":
            return True
        if self.kind == "key":
            if isinstance(segment, int) and not isinstance(segment, bool):
                return str(segment) == self.value
            return segment == self.value
        if self.kind == "index":
            return (
                isinstance(segment, int)
                and not isinstance(segment, bool)
                and segment == self.value
            )
        return False


@dataclass(frozen=True)
class CompiledPath:
    """A compiled path expression."""

    expression: str
    selectors: tuple[Selector, ...]

    @property
    def max_depth(self) -> int | None:
        """Deepest path length this expression can match, or None when unbounded."""
        if any(s.kind == "descend" for s in self.selectors):
            return None
        return len(self.selectors)

    def matches(self, path: Sequence[PathSegment]) -> bool:
        """Return True if the concrete *path* (root excluded) is selected."""
        max_depth = self.max_depth
        if max_depth is not None and len(path) != max_depth:
            return False
        return _match(self.selectors, 0, path, 0)


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def _read_selector(expression: str, pos: int) -> tuple[Selector, int]:
    """Read one non-descend selector starting at *pos* (after a '.' or at a '[')."""
    if expression.startswith("*", pos):
        return Selector("any"), pos + 1
    if expression.startswith("[*]", pos):
        return Selector("any"), pos + 3

    index_match = _INDEX_RE.match(expression, pos)
    if index_match:
        return Selector("index", int(index_match.group(1))), index_match.end()

    quoted_match = _QUOTED_RE.match(expression, pos)
    if quoted_match:
        raw = quoted_match.group(1)
        if raw is None:
            raw = quoted_match.group(2)
        return Selector("key", _unescape(raw)), quoted_match.end()

    name_match = _NAME_RE.match(expression, pos)
    if name_match:
        return Selector("key", name_match.group(0)), name_match.end()

    msg = f"Cannot compile '{expression}': unsupported syntax at offset {pos}"
    raise PathCompileError(msg)


def compile_path(expression: str) -> CompiledPath:
    """Compile *expression* into a :class:`CompiledPath`.

    Raises :class:`PathCompileError` when the expression uses syntax outside
    the supported subset.
    """
    text = expression.strip()
    if not text.startswith(ROOT):
        msg = f"Cannot compile '{expression}': expression must start with '$'"
        raise PathCompileError(msg)

    selectors: list[Selector] = []
    pos = 1
    while pos < len(text):
        if text.startswith("..", pos):
            selectors.append(Selector("descend"))
            selector, pos = _read_selector(text, pos + 2)
        elif text.startswith(".", pos):
            if text.startswith("[", pos + 1):
                msg = f"Cannot compile '{expression}': bracket selector after '.'"
                raise PathCompileError(msg)
            selector, pos = _read_selector(text, pos + 1)
        elif text.startswith("[", pos):
            selector, pos = _read_selector(text, pos)
        else:
            msg = f"Cannot compile '{expression}': unexpected '{text[pos]}' at offset {pos}"
            raise PathCompileError(msg)
        selectors.append(selector)

    return CompiledPath(expression=expression, selectors=tuple(selectors))


def try_compile_path(expression: str) -> CompiledPath | None:
    """Compile *expression*, returning None when it is not compilable."""
    try:
        return compile_path(expression)
    except PathCompileError:
        return None


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def _match(
    selectors: tuple[Selector, ...],
    si: int,
    path: Sequence[PathSegment],
    pi: int,
) -> bool:
    if si == len(selectors):
        return pi == len(path)

    selector = selectors[si]
    if selector.kind == "descend":
        # '..' is always followed by a selector; let it land at any deeper offset
        return any(_match(selectors, si + 1, path, k) for k in range(pi, len(path)))

    if pi == len(path) or not selector.accepts(path[pi]):
        return False
    return _match(selectors, si + 1, path, pi + 1)


def escape_pointer_segment(segment: PathSegment) -> str:
    """Escape a path segment for use inside a JSON pointer."""
    return str(segment).replace("~", "~0").replace("/", "~1")


def to_json_pointer(path: Sequence[PathSegment]) -> str:
    """Render a concrete path as a JSON pointer fragment (``#/a/b/0``)."""
    return "#" + "".join(f"/{escape_pointer_segment(s)}" for s in path)

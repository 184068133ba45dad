"""Parsed documents, their source maps, and the per-run document inventory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import yaml

from ruleloom.formats import detect_formats
from ruleloom.results import Position, Range

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from ruleloom.paths import PathSegment

STDIN = "<STDIN>"

_EMPTY_RANGE = Range(Position(0, 0), Position(0, 0))


# ---------------------------------------------------------------------------
# Source map
# ---------------------------------------------------------------------------


def _node_range(node: yaml.Node) -> Range:
    return Range(
        Position(node.start_mark.line, node.start_mark.column),
        Position(node.end_mark.line, node.end_mark.column),
    )


def _collect_ranges(
    node: yaml.Node,
    path: tuple[str, ...],
    ranges: dict[tuple[str, ...], Range],
    ancestors: set[int],
) -> None:
    """Record the range of *node* and all its descendants, keyed by stringified path."""
    ranges[path] = _node_range(node)
    if id(node) in ancestors:
        return
    ancestors.add(id(node))
    if isinstance(node, yaml.MappingNode):
        for key_node, value_node in node.value:
            key = key_node.value if isinstance(key_node, yaml.ScalarNode) else str(key_node.value)
            _collect_ranges(value_node, (*path, str(key)), ranges, ancestors)
    elif isinstance(node, yaml.SequenceNode):
        for idx, item in enumerate(node.value):
            _collect_ranges(item, (*path, str(idx)), ranges, ancestors)
    ancestors.discard(id(node))


def build_source_map(text: str) -> dict[tuple[str, ...], Range]:
    """Compose *text* as YAML (JSON included) and map every node path to its range."""
    root = yaml.compose(text, Loader=yaml.SafeLoader)
    ranges: dict[tuple[str, ...], Range] = {}
    if root is not None:
        _collect_ranges(root, (), ranges, set())
    return ranges


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class Document:
    """A parsed YAML/JSON document with its source identifier and source text."""

    __slots__ = ("_ranges", "data", "source", "text")

    def __init__(self, data: Any, *, source: str | None = None, text: str | None = None) -> None:
        self.data = data
        self.source = source
        self.text = text
        self._ranges: dict[tuple[str, ...], Range] | None = None

    @classmethod
    def parse(cls, text: str, *, source: str | None = None) -> Document:
        """Parse YAML or JSON *text*.

        Raises ``ValueError`` when the text is not well-formed.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            where = source or "document"
            msg = f"{where}: invalid YAML/JSON: {exc}"
            raise ValueError(msg) from exc
        return cls(data, source=source, text=text)

    @classmethod
    def from_path(cls, path: Path) -> Document:
        """Read and parse the document stored at *path*."""
        text = path.read_text(encoding="utf-8")
        return cls.parse(text, source=str(path))

    @property
    def is_stream(self) -> bool:
        """True when the document has no stable location identity (stdin or unnamed)."""
        return self.source is None or self.source == STDIN

    def _source_map(self) -> dict[tuple[str, ...], Range]:
        if self._ranges is None:
            self._ranges = build_source_map(self.text) if self.text else {}
        return self._ranges

    def get_range(self, path: Sequence[PathSegment]) -> Range:
        """Return the range of the node at *path*, or of its closest mapped ancestor."""
        ranges = self._source_map()
        key = tuple(str(segment) for segment in path)
        while key:
            if key in ranges:
                return ranges[key]
            key = key[:-1]
        return ranges.get((), _EMPTY_RANGE)

    def full_range(self) -> Range:
        """Range spanning the whole source text."""
        if not self.text:
            return _EMPTY_RANGE
        lines = self.text.splitlines()
        if not lines:
            return _EMPTY_RANGE
        return Range(Position(0, 0), Position(len(lines) - 1, len(lines[-1])))


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class DocumentInventory:
    """The resolved and unresolved trees of one document, plus its detected formats.

    References are never resolved here.  When no *resolved* tree is supplied,
    the resolved variant is the unresolved tree itself.
    """

    __slots__ = ("document", "formats", "resolved")

    def __init__(
        self,
        document: Document,
        *,
        resolved: Any | None = None,
        formats: frozenset[str] | None = None,
    ) -> None:
        self.document = document
        self.resolved = document.data if resolved is None else resolved
        self.formats = detect_formats(document.data) if formats is None else formats

    @property
    def unresolved(self) -> Any:
        """The raw, authored tree."""
        return self.document.data

    @property
    def source(self) -> str | None:
        """Identifier of the document's origin."""
        return self.document.source

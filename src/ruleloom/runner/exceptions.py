"""``except`` declarations: parse suppression locations and pivot them by rule name."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from ruleloom.paths import PathSegment
    from ruleloom.ruleset.rule import Rule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExceptionLocation:
    """A suppressed node: an optional document source plus a JSON-pointer path.

    ``source=None`` applies the location to whatever document is being linted.
    """

    source: str | None
    path: tuple[str, ...]

    def matches(self, source: str | None, path: Sequence[PathSegment]) -> bool:
        """Return True if this location denotes *path* in the document *source*."""
        if self.source is not None and (
            source is None or normalize_source(source) != self.source
        ):
            return False
        return self.path == tuple(str(segment) for segment in path)


def normalize_source(source: str, base_dir: Path | None = None) -> str:
    """Normalize a document source for comparison (absolute, normalized path)."""
    if "://" in source:
        return source
    if base_dir is not None and not os.path.isabs(source):
        source = os.path.join(str(base_dir), source)
    return os.path.normpath(os.path.abspath(source))


def _unescape_pointer_segment(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def parse_location(location: str, base_dir: Path | None = None) -> ExceptionLocation:
    """Parse ``[<source>]#<json-pointer>`` into an :class:`ExceptionLocation`.

    Raises ``ValueError`` when the location has no ``#`` fragment or the
    fragment is not a JSON pointer.
    """
    if "#" not in location:
        msg = f"except location '{location}' must contain a '#' followed by a JSON pointer"
        raise ValueError(msg)

    source_part, pointer = location.split("#", 1)
    if pointer and not pointer.startswith("/"):
        msg = f"except location '{location}': pointer must be empty or start with '/'"
        raise ValueError(msg)

    path = tuple(_unescape_pointer_segment(s) for s in pointer.split("/")[1:]) if pointer else ()
    source = normalize_source(source_part, base_dir) if source_part else None
    return ExceptionLocation(source=source, path=path)


def pivot_exceptions(
    exceptions: Mapping[str, Sequence[str]],
    rules: Mapping[str, Rule],
    base_dir: Path | None = None,
) -> dict[str, list[ExceptionLocation]]:
    """Turn ``except`` declarations into rule name -> parsed locations.

    Declarations for rules that are not part of *rules* are skipped.
    """
    pivot: dict[str, list[ExceptionLocation]] = {}
    for rule_name, locations in exceptions.items():
        if rule_name not in rules:
            logger.warning("Ignoring except entries for unknown rule '%s'", rule_name)
            continue
        parsed = [parse_location(location, base_dir) for location in locations]
        if parsed:
            pivot.setdefault(rule_name, []).extend(parsed)
    return pivot


def is_known_exception(
    source: str | None,
    path: Sequence[PathSegment],
    locations: Sequence[ExceptionLocation],
) -> bool:
    """Return True if *path* in *source* is one of the suppressed *locations*."""
    return any(location.matches(source, path) for location in locations)

"""Small shared types of the rule runner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from ruleloom.paths import ROOT

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ruleloom.paths import PathSegment


@dataclass(frozen=True)
class GivenNode:
    """A node selected by a rule's ``given`` expression."""

    path: tuple[PathSegment, ...]
    value: Any

    @property
    def document_path(self) -> tuple[PathSegment, ...]:
        """The node path, with the root marker mapped to the empty path."""
        if self.path == (ROOT,):
            return ()
        return self.path


class PathQuery(Protocol):
    """Structural path-query capability: every concrete match of *expression* in *tree*."""

    def __call__(
        self, expression: str, tree: Any
    ) -> Iterable[tuple[tuple[PathSegment, ...], Any]]: ...

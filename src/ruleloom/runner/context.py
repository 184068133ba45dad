"""Run-scoped state shared by the matcher, the fallback evaluator and the node linter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Mapping, Sequence

    from ruleloom.document import DocumentInventory
    from ruleloom.results import Diagnostic
    from ruleloom.ruleset.rule import Rule
    from ruleloom.runner.exceptions import ExceptionLocation
    from ruleloom.runner.types import PathQuery


@dataclass
class RunContext:
    """Accumulator for one run.

    Created fresh by every :func:`~ruleloom.runner.runner.run_rules` call and
    mutated only on the event-loop thread, through :meth:`add_result` and
    :meth:`add_pending`.
    """

    inventory: DocumentInventory
    rules: Mapping[str, Rule]
    exceptions: Mapping[str, Sequence[str]]
    path_query: PathQuery
    exception_locations: dict[str, list[ExceptionLocation]] = field(default_factory=dict)
    results: list[Diagnostic] = field(default_factory=list)
    pending: list[asyncio.Future[Any]] = field(default_factory=list)

    def add_result(self, diagnostic: Diagnostic) -> None:
        self.results.append(diagnostic)

    def add_pending(self, future: asyncio.Future[Any]) -> None:
        self.pending.append(future)

"""Shared test fixtures for Ruleloom."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from ruleloom.document import Document, DocumentInventory
from ruleloom.results import Severity
from ruleloom.ruleset.functions import FunctionResult
from ruleloom.ruleset.rule import PlainRule, RuleAction

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

PETSTORE_YAML = """\
openapi: 3.0.3
info:
  title: Pets
  version: "1.0"
components:
  schemas:
    Pet:
      type: object
      properties:
        status:
          type: integer
          enum:
            - 1
            - abc
            - 2
            - def
            - ghi
            - jkl
"""


def flag_all(value: Any, options: dict[str, Any], context: Any) -> list[FunctionResult]:
    """Check function that reports every target it sees."""
    return [FunctionResult(str(options.get("message", "flagged")))]


@pytest.fixture()
def petstore_yaml() -> str:
    """Raw text of the petstore document."""
    return PETSTORE_YAML


@pytest.fixture()
def petstore_inventory() -> DocumentInventory:
    """Inventory for an OpenAPI 3.0 document with a mistyped enum."""
    return DocumentInventory(Document.parse(PETSTORE_YAML, source="petstore.yaml"))


@pytest.fixture()
def petstore_file(tmp_path: Path) -> Path:
    """The petstore document written to disk."""
    path = tmp_path / "petstore.yaml"
    path.write_text(PETSTORE_YAML)
    return path


@pytest.fixture()
def make_rule() -> Callable[..., PlainRule]:
    """Factory for plain rules with a single ``then`` action."""

    def _make(
        name: str,
        given: str | tuple[str, ...],
        function: Callable[..., Any] = flag_all,
        *,
        field: str | None = None,
        options: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> PlainRule:
        given_tuple = (given,) if isinstance(given, str) else tuple(given)
        kwargs.setdefault("severity", Severity.WARNING)
        return PlainRule(
            name=name,
            given=given_tuple,
            then=(
                RuleAction(
                    function_name=getattr(function, "__name__", "function"),
                    function=function,
                    field=field,
                    function_options=options,
                ),
            ),
            **kwargs,
        )

    return _make

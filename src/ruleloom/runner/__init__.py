"""Rule runner: dispatch, shared traversal and per-expression fallback evaluation."""

from ruleloom.runner.context import RunContext
from ruleloom.runner.exceptions import (
    ExceptionLocation,
    is_known_exception,
    parse_location,
    pivot_exceptions,
)
from ruleloom.runner.node_linter import RuleFunctionError, format_message, lint_node
from ruleloom.runner.query import jsonpath_query
from ruleloom.runner.runner import (
    EXCEPT_BUT_STDIN_CODE,
    RuleBuckets,
    run_plain_rule,
    run_rules,
    run_rules_sync,
    select_rules,
)
from ruleloom.runner.traversal import traverse
from ruleloom.runner.types import GivenNode, PathQuery

__all__ = [
    "EXCEPT_BUT_STDIN_CODE",
    "ExceptionLocation",
    "GivenNode",
    "PathQuery",
    "RuleBuckets",
    "RuleFunctionError",
    "RunContext",
    "format_message",
    "is_known_exception",
    "jsonpath_query",
    "lint_node",
    "parse_location",
    "pivot_exceptions",
    "run_plain_rule",
    "run_rules",
    "run_rules_sync",
    "select_rules",
    "traverse",
]

"""Rulesets: the rule model, the YAML loader and the core check functions."""

from ruleloom.ruleset.functions import (
    CORE_FUNCTIONS,
    MISSING,
    FunctionContext,
    FunctionResult,
    RuleFunction,
)
from ruleloom.ruleset.loader import Ruleset, load_ruleset, parse_ruleset
from ruleloom.ruleset.rule import PlainRule, PrecompiledRule, Rule, RuleAction, compile_rule

__all__ = [
    "CORE_FUNCTIONS",
    "MISSING",
    "FunctionContext",
    "FunctionResult",
    "PlainRule",
    "PrecompiledRule",
    "Rule",
    "RuleAction",
    "RuleFunction",
    "Ruleset",
    "compile_rule",
    "load_ruleset",
    "parse_ruleset",
]

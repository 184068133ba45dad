"""Ruleset loader: parse ruleset YAML, validate it, and compile rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import yaml

from ruleloom.formats import FORMAT_DETECTORS
from ruleloom.results import Severity
from ruleloom.ruleset.functions import CORE_FUNCTIONS
from ruleloom.ruleset.rule import PlainRule, RuleAction, compile_rule
from ruleloom.runner.exceptions import parse_location

if TYPE_CHECKING:
    from pathlib import Path

    from ruleloom.ruleset.functions import RuleFunction
    from ruleloom.ruleset.rule import Rule

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})
DISABLED_SEVERITY = "off"

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Ruleset:
    """Parsed ruleset: rules keyed by name plus ``except`` declarations."""

    rules: dict[str, Rule] = field(default_factory=dict)
    exceptions: dict[str, list[str]] = field(default_factory=dict)
    base_dir: Path | None = None


# ---------------------------------------------------------------------------
# YAML parsing
# ---------------------------------------------------------------------------


def _parse_formats(raw: object, context: str) -> frozenset[str]:
    if raw is None:
        return frozenset()
    if not isinstance(raw, list):
        msg = f"{context}: 'formats' must be a list"
        raise ValueError(msg)
    formats = frozenset(str(f) for f in raw)
    unknown = formats - FORMAT_DETECTORS.keys()
    if unknown:
        msg = (
            f"{context}: unknown format(s) {sorted(unknown)}, "
            f"must be one of {sorted(FORMAT_DETECTORS)}"
        )
        raise ValueError(msg)
    return formats


def _parse_given(name: str, raw: object) -> tuple[str, ...]:
    given_list = raw if isinstance(raw, list) else [raw]
    if not given_list:
        msg = f"Rule '{name}': 'given' must not be empty"
        raise ValueError(msg)

    given: list[str] = []
    for expression in given_list:
        if not isinstance(expression, str) or not expression.strip():
            msg = f"Rule '{name}': every 'given' expression must be a non-empty string"
            raise ValueError(msg)
        if not expression.strip().startswith("$"):
            msg = f"Rule '{name}': 'given' expression '{expression}' must start with '$'"
            raise ValueError(msg)
        given.append(expression.strip())
    return tuple(given)


def _parse_action(
    name: str, idx: int, data: object, functions: dict[str, RuleFunction]
) -> RuleAction:
    """Parse a single ``then`` entry."""
    if not isinstance(data, dict):
        msg = f"Rule '{name}': then[{idx}] must be a mapping"
        raise ValueError(msg)

    function_name = data.get("function")
    if not isinstance(function_name, str) or not function_name:
        msg = f"Rule '{name}': then[{idx}] missing required 'function' field"
        raise ValueError(msg)
    if function_name not in functions:
        msg = (
            f"Rule '{name}': unknown function '{function_name}', "
            f"must be one of {sorted(functions)}"
        )
        raise ValueError(msg)

    field_raw = data.get("field")
    field_name: str | None = str(field_raw) if field_raw is not None else None

    options_raw = data.get("functionOptions")
    if options_raw is not None and not isinstance(options_raw, dict):
        msg = f"Rule '{name}': then[{idx}].functionOptions must be a mapping"
        raise ValueError(msg)

    return RuleAction(
        function_name=function_name,
        function=functions[function_name],
        field=field_name,
        function_options=dict(options_raw) if options_raw else None,
    )


def _parse_rule(
    name: str,
    data: dict[str, Any],
    *,
    default_formats: frozenset[str],
    functions: dict[str, RuleFunction],
) -> Rule:
    """Parse one rule definition and compile it when possible."""
    if "given" not in data:
        msg = f"Rule '{name}': missing required 'given' field"
        raise ValueError(msg)
    if "then" not in data:
        msg = f"Rule '{name}': missing required 'then' field"
        raise ValueError(msg)

    then_raw = data["then"]
    then_list = then_raw if isinstance(then_raw, list) else [then_raw]
    then = tuple(_parse_action(name, idx, item, functions) for idx, item in enumerate(then_list))

    enabled = bool(data.get("enabled", True))
    severity_raw = data.get("severity", "warn")
    # YAML 1.1 reads a bare `off` as False
    if severity_raw is False or str(severity_raw).lower() == DISABLED_SEVERITY:
        enabled = False
        severity = Severity.WARNING
    else:
        try:
            severity = Severity.parse(severity_raw)
        except ValueError as exc:
            msg = f"Rule '{name}': {exc}"
            raise ValueError(msg) from exc

    formats = default_formats
    if "formats" in data:
        formats = _parse_formats(data["formats"], f"Rule '{name}'")

    message_raw = data.get("message")
    docs_raw = data.get("documentationUrl")

    plain = PlainRule(
        name=name,
        given=_parse_given(name, data["given"]),
        then=then,
        description=str(data.get("description", "")),
        message=str(message_raw) if message_raw is not None else None,
        severity=severity,
        enabled=enabled,
        formats=formats,
        resolved=bool(data.get("resolved", True)),
        documentation_url=str(docs_raw) if docs_raw is not None else None,
    )
    return compile_rule(plain)


def _parse_exceptions(raw: object) -> dict[str, list[str]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        msg = "ruleset: 'except' must be a mapping of rule name to locations"
        raise ValueError(msg)

    exceptions: dict[str, list[str]] = {}
    for rule_name, locations in raw.items():
        if not isinstance(locations, list):
            msg = f"ruleset: except entry for '{rule_name}' must be a list of locations"
            raise ValueError(msg)
        for location in locations:
            try:
                parse_location(str(location))
            except ValueError as exc:
                msg = f"ruleset: except entry for '{rule_name}': {exc}"
                raise ValueError(msg) from exc
        exceptions[str(rule_name)] = [str(loc) for loc in locations]
    return exceptions


def parse_ruleset(
    data: object,
    *,
    base_dir: Path | None = None,
    functions: dict[str, RuleFunction] | None = None,
) -> Ruleset:
    """Build a :class:`Ruleset` from already-loaded YAML data.

    Raises ``ValueError`` on schema errors (missing version, unknown
    functions, bad severities, etc.).
    """
    registry = CORE_FUNCTIONS if functions is None else functions

    if not isinstance(data, dict):
        msg = "ruleset must be a YAML mapping"
        raise ValueError(msg)

    version = data.get("version")
    if version is None:
        msg = "ruleset: missing required 'version' field"
        raise ValueError(msg)
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        msg = f"ruleset: unsupported version {version}, expected one of {expected}"
        raise ValueError(msg)

    default_formats = _parse_formats(data.get("formats"), "ruleset")

    rules_data = data.get("rules", {})
    if not isinstance(rules_data, dict):
        msg = "ruleset: 'rules' must be a mapping of rule name to definition"
        raise ValueError(msg)

    rules: dict[str, Rule] = {}
    for name, rule_data in rules_data.items():
        rule_name = str(name)
        if not rule_name.strip():
            msg = "ruleset: rule names must be non-empty"
            raise ValueError(msg)
        if not isinstance(rule_data, dict):
            msg = f"ruleset: rule '{rule_name}' must be a mapping"
            raise ValueError(msg)
        rules[rule_name] = _parse_rule(
            rule_name, rule_data, default_formats=default_formats, functions=registry
        )

    return Ruleset(
        rules=rules,
        exceptions=_parse_exceptions(data.get("except")),
        base_dir=base_dir,
    )


def load_ruleset(
    ruleset_path: Path, *, functions: dict[str, RuleFunction] | None = None
) -> Ruleset:
    """Parse a ruleset file and return the compiled :class:`Ruleset`.

    Relative ``except`` sources are later resolved against the ruleset's
    directory.
    """
    try:
        with ruleset_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        msg = f"{ruleset_path}: invalid YAML: {exc}"
        raise ValueError(msg) from exc

    return parse_ruleset(data, base_dir=ruleset_path.parent, functions=functions)

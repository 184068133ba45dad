"""Core check functions invoked by rule ``then`` actions.

A function receives the lint target's value, the action's options and a
:class:`FunctionContext`, and returns a list of :class:`FunctionResult`
(``None`` or an empty list means "no problem").  A function may instead return
an awaitable resolving to such a list; the runner awaits it before returning.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from ruleloom.document import DocumentInventory
    from ruleloom.paths import PathSegment

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


class _Missing:
    """Marker for a lint target that does not exist in the document."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@dataclass(frozen=True)
class FunctionContext:
    """What a check function knows about the target it is checking."""

    rule_name: str
    path: tuple[PathSegment, ...]
    inventory: DocumentInventory


@dataclass(frozen=True)
class FunctionResult:
    """One problem reported by a check function.

    *path* is relative to the lint target.
    """

    message: str
    path: tuple[PathSegment, ...] = ()


FunctionOutcome = list[FunctionResult] | None
RuleFunction = Callable[
    [Any, "dict[str, Any]", FunctionContext],
    "FunctionOutcome | Awaitable[FunctionOutcome]",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def print_value(value: Any) -> str:
    """Render a document value for use inside a message."""
    if value is MISSING:
        return "undefined"
    if isinstance(value, str):
        return f'"{value}"'
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


def _is_truthy(value: Any) -> bool:
    if value is MISSING or value is None:
        return False
    if isinstance(value, (dict, list)):
        return True
    return bool(value)


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a pattern given either bare or as ``/regex/flags``."""
    if len(pattern) > 1 and pattern.startswith("/") and pattern.rfind("/") > 0:
        end = pattern.rfind("/")
        body, flag_chars = pattern[1:end], pattern[end + 1 :]
        flags = 0
        if "i" in flag_chars:
            flags |= re.IGNORECASE
        if "m" in flag_chars:
            flags |= re.MULTILINE
        if "s" in flag_chars:
            flags |= re.DOTALL
        return re.compile(body, flags)
    return re.compile(pattern)


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


def truthy(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    if _is_truthy(value):
        return None
    return [FunctionResult(f"{_target_name(context)} must be truthy")]


def falsy(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    if not _is_truthy(value):
        return None
    return [FunctionResult(f"{_target_name(context)} must be falsy")]


def defined(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    if value is not MISSING:
        return None
    return [FunctionResult(f"{_target_name(context)} must be defined")]


def undefined(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    if value is MISSING:
        return None
    return [FunctionResult(f"{_target_name(context)} must be undefined")]


def pattern(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    """Check a string against ``match`` and/or ``notMatch`` regular expressions."""
    if not isinstance(value, str):
        return None

    results: list[FunctionResult] = []
    match = options.get("match")
    if match is not None and _compile_pattern(str(match)).search(value) is None:
        results.append(FunctionResult(f'{print_value(value)} must match the pattern "{match}"'))

    not_match = options.get("notMatch")
    if not_match is not None and _compile_pattern(str(not_match)).search(value) is not None:
        results.append(
            FunctionResult(f'{print_value(value)} must not match the pattern "{not_match}"')
        )
    return results


def enumeration(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    if value is MISSING:
        return None
    allowed = list(options.get("values", []))
    if value in allowed:
        return None
    choices = ", ".join(str(v) for v in allowed)
    return [
        FunctionResult(f"{print_value(value)} must be equal to one of the allowed values: {choices}")
    ]


def length(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    """Check the length of a string, list or mapping, or the magnitude of a number."""
    if isinstance(value, bool) or value is MISSING or value is None:
        return None
    if isinstance(value, (int, float)):
        size: float = value
    elif isinstance(value, (str, list, dict)):
        size = len(value)
    else:
        return None

    name = _target_name(context)
    results: list[FunctionResult] = []
    minimum = options.get("min")
    maximum = options.get("max")
    if minimum is not None and size < minimum:
        results.append(FunctionResult(f"{name} must be longer than {minimum}"))
    if maximum is not None and size > maximum:
        results.append(FunctionResult(f"{name} must not be longer than {maximum}"))
    return results


_CASING_PATTERNS: dict[str, re.Pattern[str]] = {
    "flat": re.compile(r"^[a-z][a-z0-9]*$"),
    "camel": re.compile(r"^[a-z][a-z0-9]*(?:[A-Z0-9][a-z0-9]*)*$"),
    "pascal": re.compile(r"^[A-Z][a-z0-9]*(?:[A-Z0-9][a-z0-9]*)*$"),
    "kebab": re.compile(r"^[a-z][a-z0-9]*(?:-[a-z0-9]+)*$"),
    "cobol": re.compile(r"^[A-Z][A-Z0-9]*(?:-[A-Z0-9]+)*$"),
    "snake": re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$"),
    "macro": re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*$"),
}


def casing(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    if not isinstance(value, str) or not value:
        return None
    casing_type = str(options.get("type", ""))
    regex = _CASING_PATTERNS.get(casing_type)
    if regex is None:
        msg = f"casing: unknown type '{casing_type}', must be one of {sorted(_CASING_PATTERNS)}"
        raise ValueError(msg)
    if regex.match(value):
        return None
    return [FunctionResult(f"{print_value(value)} must be {casing_type} case")]


def alphabetical(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    """Report the first entry of a list (or the first key of a mapping) that is out of order."""
    if isinstance(value, dict):
        items: list[Any] = list(value.keys())
    elif isinstance(value, list):
        items = list(value)
    else:
        return None

    keyed_by = options.get("keyedBy")
    if keyed_by is not None:
        items = [item.get(keyed_by) if isinstance(item, dict) else item for item in items]

    for idx in range(len(items) - 1):
        current, following = items[idx], items[idx + 1]
        try:
            out_of_order = following < current
        except TypeError:
            out_of_order = str(following) < str(current)
        if out_of_order:
            return [
                FunctionResult(
                    f"{print_value(current)} must be placed after {print_value(following)}",
                    (idx,) if isinstance(value, list) else (),
                )
            ]
    return None


def _conforms(value: Any, type_name: str) -> bool:
    if type_name == "integer":
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if type_name == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "null":
        return value is None
    if type_name == "array":
        return isinstance(value, list)
    if type_name == "object":
        return isinstance(value, dict)
    return True


def typed_enum(value: Any, options: dict[str, Any], context: FunctionContext) -> FunctionOutcome:
    """Check that every ``enum`` entry of a schema conforms to the schema's ``type``."""
    if not isinstance(value, dict):
        return None
    enum_values = value.get("enum")
    declared = value.get("type")
    if not isinstance(enum_values, list) or declared is None:
        return None

    types = [str(t) for t in declared] if isinstance(declared, list) else [str(declared)]
    nullable = value.get("nullable") is True
    results: list[FunctionResult] = []
    for idx, entry in enumerate(enum_values):
        if entry is None and nullable:
            continue
        if any(_conforms(entry, t) for t in types):
            continue
        results.append(
            FunctionResult(
                f'Enum value {print_value(entry)} must be "{", ".join(types)}".',
                ("enum", idx),
            )
        )
    return results


def _target_name(context: FunctionContext) -> str:
    if not context.path:
        return "The document"
    return f'"{context.path[-1]}" property'


CORE_FUNCTIONS: dict[str, RuleFunction] = {
    "truthy": truthy,
    "falsy": falsy,
    "defined": defined,
    "undefined": undefined,
    "pattern": pattern,
    "enumeration": enumeration,
    "length": length,
    "casing": casing,
    "alphabetical": alphabetical,
    "typed_enum": typed_enum,
    "typedEnum": typed_enum,
}

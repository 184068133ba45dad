"""Document-format detection.

Each detector inspects the parsed (unresolved) document and reports whether it
belongs to a format.  Rules declare the formats they apply to; a rule without
formats applies to every document.
"""

from __future__ import annotations

import re
from typing import Any, Callable

FormatDetector = Callable[[Any], bool]

_OAS30_RE = re.compile(r"^3\.0(\.\d+)?$")
_OAS31_RE = re.compile(r"^3\.1(\.\d+)?$")
_ASYNCAPI2_RE = re.compile(r"^2\.\d+(\.\d+)?$")


def _version_field(document: Any, key: str) -> str | None:
    if not isinstance(document, dict):
        return None
    value = document.get(key)
    if value is None:
        return None
    return str(value)


def is_oas2(document: Any) -> bool:
    """Swagger / OpenAPI 2.0."""
    version = _version_field(document, "swagger")
    return version is not None and version in {"2.0", "2"}


def is_oas30(document: Any) -> bool:
    """OpenAPI 3.0.x."""
    version = _version_field(document, "openapi")
    return version is not None and _OAS30_RE.match(version) is not None


def is_oas31(document: Any) -> bool:
    """OpenAPI 3.1.x."""
    version = _version_field(document, "openapi")
    return version is not None and _OAS31_RE.match(version) is not None


def is_oas3(document: Any) -> bool:
    """Any OpenAPI 3.x document."""
    return is_oas30(document) or is_oas31(document)


def is_asyncapi2(document: Any) -> bool:
    """AsyncAPI 2.x."""
    version = _version_field(document, "asyncapi")
    return version is not None and _ASYNCAPI2_RE.match(version) is not None


def is_json_schema(document: Any) -> bool:
    """A JSON Schema document identified by its ``$schema`` keyword."""
    schema = _version_field(document, "$schema")
    return schema is not None and "json-schema.org" in schema


FORMAT_DETECTORS: dict[str, FormatDetector] = {
    "oas2": is_oas2,
    "oas3": is_oas3,
    "oas3.0": is_oas30,
    "oas3.1": is_oas31,
    "asyncapi2": is_asyncapi2,
    "json-schema": is_json_schema,
}


def detect_formats(
    document: Any, detectors: dict[str, FormatDetector] | None = None
) -> frozenset[str]:
    """Return the names of all formats whose detector accepts *document*."""
    registry = FORMAT_DETECTORS if detectors is None else detectors
    return frozenset(name for name, detector in registry.items() if detector(document))

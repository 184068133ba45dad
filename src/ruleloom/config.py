"""Project configuration read from ``.ruleloom.yml``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from ruleloom.results import Severity

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".ruleloom.yml"
DEFAULT_RULESET = Path(".ruleloom") / "ruleset.yml"
VALID_FORMATS: frozenset[str] = frozenset({"rich", "json", "porcelain"})


@dataclass(frozen=True)
class LintConfig:
    """Settings for ``ruleloom lint``; CLI options take precedence."""

    ruleset: Path = DEFAULT_RULESET
    format: str | None = None  # None = pick by TTY detection
    fail_severity: Severity = Severity.ERROR


def load_config(project_root: Path) -> LintConfig:
    """Load ``.ruleloom.yml`` from *project_root*.

    Falls back to defaults for missing keys, a missing file, or a file that
    cannot be read.  Invalid values are reported and replaced by defaults.
    """
    config_path = project_root / CONFIG_FILENAME
    if not config_path.is_file():
        return LintConfig()

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s, using defaults", CONFIG_FILENAME)
        return LintConfig()

    if not isinstance(data, dict):
        return LintConfig()

    defaults = LintConfig()

    ruleset = defaults.ruleset
    ruleset_raw = data.get("ruleset")
    if isinstance(ruleset_raw, str) and ruleset_raw.strip():
        ruleset = Path(ruleset_raw)

    fmt = defaults.format
    fmt_raw = data.get("format")
    if fmt_raw is not None:
        if str(fmt_raw) in VALID_FORMATS:
            fmt = str(fmt_raw)
        else:
            logger.warning("Ignoring unknown output format '%s' in %s", fmt_raw, CONFIG_FILENAME)

    fail_severity = defaults.fail_severity
    severity_raw = data.get("fail_severity")
    if severity_raw is not None:
        try:
            fail_severity = Severity.parse(severity_raw)
        except ValueError:
            logger.warning("Ignoring invalid fail_severity '%s' in %s", severity_raw, CONFIG_FILENAME)

    return LintConfig(ruleset=ruleset, format=fmt, fail_severity=fail_severity)

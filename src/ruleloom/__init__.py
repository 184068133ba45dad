"""Ruleloom - apply declarative rules to YAML and JSON documents."""

__version__ = "0.3.0"

"""
Configuration Loader (``console_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into ``EngineSettings``.  The
single public entry point for runtime settings is
``console_config.get_active_settings()``.

Invariants enforced
-------------------
* Unknown keys are rejected with ``ValueError``; a typo never silently
  falls back to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong shape or values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from console_config.schema import BulkLimits, EngineSettings

_ENGINE_KEYS = frozenset(
    {"concurrency", "gateway_timeout_ms", "batch_timeout_ms", "bulk_limits", "log_level"}
)
_LIMIT_KEYS = frozenset(
    {"max_targets_per_operation", "max_concurrent_operations", "max_retained_operations"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _check_keys(section: str, data: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(
            f"Unknown {section} keys: {', '.join(sorted(unknown))}"
        )


def parse_bulk_limits(data: dict[str, Any] | None) -> BulkLimits:
    if data is None:
        return BulkLimits()
    if not isinstance(data, dict):
        raise ValueError("bulk_limits must be a mapping")
    _check_keys("bulk_limits", data, _LIMIT_KEYS)
    return BulkLimits(**data)


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse the ``engine`` section of a settings document."""
    if not isinstance(data, dict):
        raise ValueError("engine settings must be a mapping")
    _check_keys("engine", data, _ENGINE_KEYS)
    values = {k: v for k, v in data.items() if k != "bulk_limits"}
    return EngineSettings(
        bulk_limits=parse_bulk_limits(data.get("bulk_limits")),
        **values,
    )


def load_settings(path: Path) -> EngineSettings:
    document = load_yaml_file(path)
    _check_keys("top-level", document, frozenset({"engine"}))
    return parse_engine_settings(document.get("engine") or {})


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

"""
console_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the ONLY way to obtain engine settings at runtime through
    ``get_active_settings()``.  Returns a frozen ``EngineSettings``.

Architecture position:
    Configuration.  Sits beside ``console_kernel`` and below
    ``console_batch``.  The kernel MUST NEVER import from
    ``console_config``; the composition root passes plain values down.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_settings()`` call emits a
    ``CONSOLE_CONFIG_TRACE`` log entry with the source path and checksum.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

from console_config.loader import compute_checksum, load_settings
from console_config.schema import BulkLimits, EngineSettings
from console_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_SETTINGS_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_settings(path: Path | str | None = None) -> EngineSettings:
    """Load and validate engine settings.

    Args:
        path: Settings YAML.  Defaults to ``console_config/sets/default.yaml``.

    Returns:
        Validated, frozen EngineSettings.
    """
    source = Path(path) if path is not None else _DEFAULT_SETTINGS_PATH
    settings = load_settings(source)
    _logger.info(
        "CONSOLE_CONFIG_TRACE",
        extra={
            "source": str(source),
            "checksum": compute_checksum(asdict(settings)),
            "concurrency": settings.concurrency,
            "gateway_timeout_ms": settings.gateway_timeout_ms,
            "batch_timeout_ms": settings.batch_timeout_ms,
        },
    )
    return settings


__all__ = [
    "BulkLimits",
    "EngineSettings",
    "get_active_settings",
]

"""
Tests for console_config: YAML loading, validation and the active
settings entry point.
"""

import json
import logging
from io import StringIO

import pytest
import yaml

from console_config import get_active_settings
from console_config.loader import (
    compute_checksum,
    load_settings,
    parse_engine_settings,
)
from console_config.schema import BulkLimits, EngineSettings
from console_kernel.logging_config import StructuredFormatter, configure_logging


def _write(tmp_path, document) -> str:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(document))
    return str(path)


# =============================================================================
# Schema
# =============================================================================


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings()
        assert settings.concurrency == 4
        assert settings.gateway_timeout_seconds == 8.0
        assert settings.batch_timeout_seconds is None
        assert settings.bulk_limits == BulkLimits()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"concurrency": 0},
            {"gateway_timeout_ms": -5},
            {"batch_timeout_ms": 0},
            {"concurrency": True},
            {"log_level": "chatty"},
            {"log_level": 10},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            EngineSettings(**overrides)

    def test_invalid_limits(self):
        with pytest.raises(ValueError, match="max_concurrent_operations"):
            BulkLimits(max_concurrent_operations=0)


# =============================================================================
# Loader
# =============================================================================


class TestLoader:
    def test_load_full_document(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "engine": {
                    "concurrency": 8,
                    "gateway_timeout_ms": 3000,
                    "batch_timeout_ms": 60000,
                    "log_level": "debug",
                    "bulk_limits": {"max_targets_per_operation": 100},
                }
            },
        )
        settings = load_settings(path)
        assert settings.concurrency == 8
        assert settings.batch_timeout_seconds == 60.0
        assert settings.bulk_limits.max_targets_per_operation == 100
        assert settings.bulk_limits.max_concurrent_operations == 5

    def test_empty_engine_section_uses_defaults(self, tmp_path):
        assert load_settings(_write(tmp_path, {"engine": None})) == EngineSettings()

    def test_unknown_engine_key(self):
        with pytest.raises(ValueError, match="worker_count"):
            parse_engine_settings({"worker_count": 3})

    def test_unknown_limit_key(self):
        with pytest.raises(ValueError, match="max_users"):
            parse_engine_settings({"bulk_limits": {"max_users": 3}})

    def test_unknown_top_level_key(self, tmp_path):
        with pytest.raises(ValueError):
            load_settings(_write(tmp_path, {"engine": {}, "database": {}}))

    def test_numeric_log_level_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="log_level"):
            load_settings(_write(tmp_path, {"engine": {"log_level": 10}}))

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_settings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_checksum_is_deterministic(self):
        assert compute_checksum({"b": 1, "a": 2}) == compute_checksum({"a": 2, "b": 1})
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


# =============================================================================
# Active settings
# =============================================================================


class TestActiveSettings:
    def test_packaged_defaults(self):
        assert get_active_settings() == EngineSettings()

    def test_trace_logged(self, tmp_path):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        configure_logging(handler=handler)

        path = _write(tmp_path, {"engine": {"concurrency": 2}})
        get_active_settings(path)

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["message"] == "CONSOLE_CONFIG_TRACE"
        assert record["source"] == path
        assert record["concurrency"] == 2
        assert len(record["checksum"]) == 64

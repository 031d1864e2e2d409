"""Unit tests for configuration registry."""

import pytest

from src.hostwatch.config.registry import (
    ConfigKey,
    REGISTRY,
    clamp_to_minimum,
    get_config_key,
    get_default_values,
    validate_config_value,
)


class TestConfigKey:
    """Test ConfigKey dataclass."""

    def test_config_key_with_bounds(self):
        """Config keys can have min/max value bounds."""
        key = ConfigKey(value_type=int, default=60, min_value=10, max_value=300)
        assert key.min_value == 10
        assert key.max_value == 300

    def test_config_key_with_validator(self):
        """Config keys can have custom validator functions."""
        key = ConfigKey(value_type=str, default="INFO", validator=lambda v: v in ("DEBUG", "INFO"))
        assert key.validator("DEBUG") is True
        assert key.validator("INVALID") is False


class TestRegistry:
    """Test configuration registry."""

    def test_registry_has_required_keys(self):
        """Registry should contain every key the agent reads."""
        required_keys = [
            "schedule.disk_interval_minutes",
            "schedule.url_interval_minutes",
            "schedule.task_interval_minutes",
            "storage.local_path",
            "storage.shared_path",
            "storage.shared_enabled",
            "storage.retention_days",
            "storage.shared_max_snapshots",
            "url.enabled",
            "url.targets",
            "url.timeout_seconds",
            "tasks.enabled",
            "tasks.folder",
            "logging.level",
        ]
        for key in required_keys:
            assert key in REGISTRY

    def test_all_defaults_are_valid(self):
        """Every default must pass its own validation."""
        for key, value in get_default_values().items():
            is_valid, error = validate_config_value(key, value)
            assert is_valid, f"{key}: {error}"

    def test_documented_defaults(self):
        defaults = get_default_values()
        assert defaults["schedule.disk_interval_minutes"] == 1
        assert defaults["schedule.url_interval_minutes"] == 1
        assert defaults["schedule.task_interval_minutes"] == 1
        assert defaults["storage.retention_days"] == 60
        assert defaults["storage.shared_max_snapshots"] == 0
        assert defaults["url.timeout_seconds"] == 10

    def test_get_unknown_key(self):
        with pytest.raises(KeyError, match="not found in registry"):
            get_config_key("nonexistent.key")


class TestValidation:
    """Test validate_config_value."""

    def test_wrong_type_rejected(self):
        is_valid, error = validate_config_value("storage.retention_days", "60")
        assert is_valid is False
        assert "Expected type int" in error

    def test_bool_rejected_for_int_key(self):
        is_valid, _ = validate_config_value("storage.retention_days", True)
        assert is_valid is False

    def test_above_maximum_rejected(self):
        is_valid, error = validate_config_value("url.timeout_seconds", 301)
        assert is_valid is False
        assert "above maximum" in error

    def test_custom_validator(self):
        assert validate_config_value("logging.level", "DEBUG") == (True, None)
        is_valid, error = validate_config_value("logging.level", "VERBOSE")
        assert is_valid is False
        assert "Custom validation failed" in error

    def test_url_targets_must_be_strings(self):
        assert validate_config_value("url.targets", ["https://a", "http://b"])[0] is True
        assert validate_config_value("url.targets", ["https://a", 5])[0] is False

    def test_unknown_key_invalid(self):
        is_valid, error = validate_config_value("nope.key", 1)
        assert is_valid is False
        assert "not found" in error


class TestClamp:
    """Test minimum clamping."""

    def test_below_minimum_clamped(self):
        assert clamp_to_minimum("schedule.disk_interval_minutes", 0) == 1
        assert clamp_to_minimum("url.timeout_seconds", 3) == 10
        assert clamp_to_minimum("storage.retention_days", -5) == 1

    def test_within_bounds_untouched(self):
        assert clamp_to_minimum("storage.retention_days", 30) == 30
        assert clamp_to_minimum("storage.shared_max_snapshots", 0) == 0

    def test_non_numeric_untouched(self):
        assert clamp_to_minimum("storage.local_path", "x") == "x"
        assert clamp_to_minimum("url.enabled", False) is False

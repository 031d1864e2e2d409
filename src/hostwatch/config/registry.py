"""Configuration Registry - Defines all configuration keys of the agent.

This module provides the ConfigKey dataclass and REGISTRY dictionary that defines
every configuration option available in hostwatch.

All keys are read once at startup. Numeric keys carry a minimum the
ConfigManager clamps to, and an optional maximum that is enforced strictly.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
TASK_BACKENDS = ("auto", "schtasks", "systemd")


@dataclass
class ConfigKey:
    """Defines a single configuration key with validation bounds.

    Attributes:
        value_type: Expected Python type (str, int, float, bool, list)
        default: Default value if not specified in config files
        min_value: Minimum value for numeric types; lower values are clamped up
        max_value: Maximum value for numeric types (optional)
        validator: Custom validation function (optional)
        description: Short human-readable description
    """
    value_type: type
    default: Any
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
    validator: Optional[Callable[[Any], bool]] = None
    description: str = ""


# Configuration Registry
# =======================
# All configuration keys must be registered here.

REGISTRY: dict[str, ConfigKey] = {
    # ===== AGENT =====
    "agent.host_identity": ConfigKey(
        value_type=str,
        default="",
        description="Host identity override; empty resolves the first IPv4 address",
    ),

    # ===== SCHEDULE (per metric family) =====
    "schedule.disk_interval_minutes": ConfigKey(
        value_type=int,
        default=1,
        min_value=1,
        description="Disk, CPU and memory sampling period",
    ),
    "schedule.url_interval_minutes": ConfigKey(
        value_type=int,
        default=1,
        min_value=1,
        description="URL reachability sampling period",
    ),
    "schedule.task_interval_minutes": ConfigKey(
        value_type=int,
        default=1,
        min_value=1,
        description="Job scheduler sampling period",
    ),
    "schedule.align_to_clock": ConfigKey(
        value_type=bool,
        default=True,
        description="Start each family on the next wall-clock multiple of its period",
    ),
    "schedule.fault_cooldown_seconds": ConfigKey(
        value_type=int,
        default=5,
        min_value=1,
        max_value=300,
    ),

    # ===== STORAGE =====
    "storage.local_path": ConfigKey(
        value_type=str,
        default="data/logs",
    ),
    "storage.shared_enabled": ConfigKey(
        value_type=bool,
        default=False,
    ),
    "storage.shared_path": ConfigKey(
        value_type=str,
        default="",
    ),
    "storage.retention_days": ConfigKey(
        value_type=int,
        default=60,
        min_value=1,
    ),
    "storage.shared_max_snapshots": ConfigKey(
        value_type=int,
        default=0,
        min_value=0,
        description="Most recent snapshots kept in the shared file; 0 keeps all",
    ),
    "storage.notify_interval": ConfigKey(
        value_type=int,
        default=0,
        min_value=0,
    ),

    # ===== URL PROBING =====
    "url.enabled": ConfigKey(
        value_type=bool,
        default=False,
    ),
    "url.targets": ConfigKey(
        value_type=list,
        default=[],
        validator=lambda v: all(isinstance(item, str) and item for item in v),
    ),
    "url.timeout_seconds": ConfigKey(
        value_type=int,
        default=10,
        min_value=10,
        max_value=300,
    ),

    # ===== JOB SCHEDULER PROBING =====
    "tasks.enabled": ConfigKey(
        value_type=bool,
        default=False,
    ),
    "tasks.folder": ConfigKey(
        value_type=str,
        default="\\",
        description="Task Scheduler folder, or a unit pattern for systemd",
    ),
    "tasks.backend": ConfigKey(
        value_type=str,
        default="auto",
        validator=lambda v: v in TASK_BACKENDS,
    ),

    # ===== LOGGING =====
    "logging.level": ConfigKey(
        value_type=str,
        default="INFO",
        validator=lambda v: v in LOG_LEVELS,
    ),
    "logging.file_path": ConfigKey(
        value_type=str,
        default="",
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Get configuration key definition from registry.

    Args:
        key: Configuration key path (e.g., "storage.local_path")

    Returns:
        ConfigKey definition

    Raises:
        KeyError: If key not found in registry
    """
    if key not in REGISTRY:
        raise KeyError(f"Configuration key '{key}' not found in registry")
    return REGISTRY[key]


def validate_config_value(key: str, value: Any) -> tuple[bool, Optional[str]]:
    """Validate a configuration value against its registered definition.

    Minimum bounds are not checked here; values below the minimum are
    clamped by the ConfigManager before validation.

    Args:
        key: Configuration key path
        value: Value to validate

    Returns:
        Tuple of (is_valid, error_message)
        error_message is None if valid
    """
    try:
        config_key = get_config_key(key)
    except KeyError as e:
        return False, str(e)

    # bool is a subclass of int; reject it for numeric keys
    if config_key.value_type in (int, float) and isinstance(value, bool):
        return False, f"Expected type {config_key.value_type.__name__}, got bool"

    # Type validation
    if not isinstance(value, config_key.value_type):
        return False, f"Expected type {config_key.value_type.__name__}, got {type(value).__name__}"

    # Range validation for numeric types
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if config_key.max_value is not None and value > config_key.max_value:
            return False, f"Value {value} above maximum {config_key.max_value}"

    # Custom validator
    if config_key.validator is not None:
        try:
            if not config_key.validator(value):
                return False, f"Custom validation failed for value: {value}"
        except Exception as e:
            return False, f"Validator error: {str(e)}"

    return True, None


def clamp_to_minimum(key: str, value: Any) -> Any:
    """Raise a numeric value to its registered minimum.

    Args:
        key: Configuration key path
        value: Candidate value

    Returns:
        The value itself, or the key's min_value if the value is below it.
        Non-numeric values are returned unchanged.
    """
    config_key = get_config_key(key)
    if config_key.min_value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value < config_key.min_value:
        return config_key.min_value
    return value


def get_default_values() -> dict[str, Any]:
    """Get default values for all configuration keys.

    Returns:
        Dictionary of key -> default_value
    """
    return {key: config_key.default for key, config_key in REGISTRY.items()}

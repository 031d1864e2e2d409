"""Configuration Manager.

Loads the agent configuration once at startup:
1. Code defaults from the registry
2. Values from a TOML file (nested tables flattened to dotted keys)
3. Environment variable overrides (HOSTWATCH_ prefix), optionally from a .env file

Numeric values below their registered minimum are clamped with a warning;
every other invalid value aborts loading with ValueError.
"""

import copy
import os
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # type: ignore

from dotenv import load_dotenv
import structlog

from .registry import (
    REGISTRY,
    clamp_to_minimum,
    get_config_key,
    get_default_values,
    validate_config_value,
)

logger = structlog.get_logger(__name__)

ENV_PREFIX = "HOSTWATCH_"


def env_key_for(key: str) -> str:
    """Return the environment variable name overriding a dotted key.

    Example: storage.local_path -> HOSTWATCH_STORAGE_LOCAL_PATH
    """
    return ENV_PREFIX + key.replace(".", "_").upper()


class ConfigManager:
    """Loads and serves the agent configuration.

    Attributes:
        config: Loaded configuration, keyed by dotted key path
        config_file: TOML file read by load()
        env_file: Optional .env file read by load()
    """

    def __init__(self, config_file: Optional[Path] = None, env_file: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file (default: config/default.toml)
            env_file: Path to .env file (default: .env in working directory)
        """
        self.config: dict[str, Any] = {}

        if config_file is None:
            config_file = Path("config/default.toml")
        if env_file is None:
            env_file = Path(".env")

        self.config_file = Path(config_file)
        self.env_file = Path(env_file)

        logger.info("config_manager_initialized",
                    config_file=str(self.config_file),
                    env_file=str(self.env_file))

    def load(self) -> dict[str, Any]:
        """Load configuration from defaults, TOML and environment variables.

        Precedence: code defaults < TOML file < environment variables

        Returns:
            Dictionary of configuration key-value pairs

        Raises:
            ValueError: If configuration validation fails

        Note:
            If the config file doesn't exist, defaults are used with a warning.
        """
        logger.info("loading_config", config_file=str(self.config_file))

        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.info("env_file_loaded", env_file=str(self.env_file))

        # Step 1: Start with defaults
        config = copy.deepcopy(get_default_values())

        # Step 2: Load from TOML file
        if self.config_file.exists():
            with open(self.config_file, "rb") as f:
                toml_data = tomllib.load(f)

            flattened = self._flatten_toml(toml_data)
            for key, value in flattened.items():
                if key in REGISTRY:
                    config[key] = value
                else:
                    logger.warning("config_key_unknown", key=key)

            logger.info("toml_config_loaded", keys_count=len(flattened))
        else:
            logger.warning("config_file_not_found",
                           config_file=str(self.config_file),
                           using_defaults=True)

        # Step 3: Apply environment variable overrides
        # Example: HOSTWATCH_STORAGE_LOCAL_PATH overrides storage.local_path
        for key in REGISTRY:
            env_key = env_key_for(key)
            env_value = os.getenv(env_key)
            if env_value is None:
                continue
            config_key_def = get_config_key(key)
            try:
                config[key] = self._parse_env_value(env_value, config_key_def.value_type)
            except ValueError as e:
                logger.error("env_parse_error", key=key, env_key=env_key, error=str(e))
                raise ValueError(f"Failed to parse env var {env_key}: {e}")
            logger.info("env_override_applied", key=key, env_key=env_key)

        # Step 4: Clamp minimums, then validate
        for key, value in config.items():
            clamped = clamp_to_minimum(key, value)
            if clamped != value:
                logger.warning("config_value_clamped", key=key, value=value, minimum=clamped)
                config[key] = clamped

            is_valid, error_msg = validate_config_value(key, config[key])
            if not is_valid:
                logger.error("config_validation_failed", key=key, error=error_msg)
                raise ValueError(f"Config validation failed for '{key}': {error_msg}")

        self.config = config
        logger.info("config_loaded", keys_count=len(config))
        return config

    def get(self, key: str) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key path

        Returns:
            Configuration value (the registry default if not loaded yet)

        Raises:
            KeyError: If key not found
        """
        config_key_def = get_config_key(key)
        return self.config.get(key, config_key_def.default)

    def _flatten_toml(self, data: dict) -> dict[str, Any]:
        """Flatten nested TOML structure to dotted keys.

        Example: {"storage": {"local_path": "x"}} -> {"storage.local_path": "x"}
        """
        result = {}

        def _flatten(d: dict, prefix: str = ""):
            for key, value in d.items():
                full_key = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    _flatten(value, full_key)
                else:
                    result[full_key] = value

        _flatten(data)
        return result

    def _parse_env_value(self, value: str, target_type: type) -> Any:
        """Parse environment variable string to target type.

        Raises:
            ValueError: If parsing fails
        """
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")
        elif target_type == int:
            return int(value)
        elif target_type == float:
            return float(value)
        elif target_type == list:
            # Simple comma-separated list parsing
            return [item.strip() for item in value.split(",") if item.strip()]
        elif target_type == str:
            return value
        else:
            raise ValueError(f"Unsupported type for env parsing: {target_type}")


def initialize_config(config_file: Optional[Path] = None,
                      env_file: Optional[Path] = None) -> ConfigManager:
    """Create and load a configuration manager.

    Args:
        config_file: Path to TOML config file
        env_file: Path to .env file

    Returns:
        Loaded ConfigManager instance

    Raises:
        ValueError: If configuration validation fails
    """
    manager = ConfigManager(config_file, env_file)
    manager.load()
    return manager

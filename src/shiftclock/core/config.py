"""Configuration management for shiftclock."""

import copy
from pathlib import Path
from typing import Any, Optional

import yaml  # type: ignore[import-untyped]
from jsonschema import ValidationError, validate  # type: ignore[import-untyped]

from shiftclock.core.models import TrackingType, UserRecord


class ConfigManager:
    """Manage application configuration."""

    DEFAULT_CONFIG = {
        "version": "1.0",
        "general": {
            "data_dir": "~/.shiftclock/data",
            "user_id": None,
        },
        "service": {
            "base_url": "http://localhost:5000/api",
            "timeout": 15.0,
            "token": None,
        },
        "sync": {
            "auto_reconcile": True,
            "reconcile_interval": 60,
        },
        "timer": {
            "tick_interval": 1.0,
        },
        "policy": {
            "default_tracking_type": "Hourly",
        },
        "reports": {
            "window_days": 7,
            "top_projects": 5,
            "recent_entries": 20,
        },
        "advanced": {
            "log_level": "WARNING",
            "log_file": None,
        },
        "users": {},
    }

    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "version": {"type": "string"},
            "general": {
                "type": "object",
                "properties": {
                    "data_dir": {"type": "string"},
                    "user_id": {"type": ["string", "null"]},
                },
            },
            "service": {
                "type": "object",
                "properties": {
                    "base_url": {"type": "string"},
                    "timeout": {"type": "number", "exclusiveMinimum": 0, "maximum": 300},
                    "token": {"type": ["string", "null"]},
                },
            },
            "sync": {
                "type": "object",
                "properties": {
                    "auto_reconcile": {"type": "boolean"},
                    "reconcile_interval": {"type": "integer", "minimum": 5, "maximum": 86400},
                },
            },
            "timer": {
                "type": "object",
                "properties": {
                    "tick_interval": {"type": "number", "exclusiveMinimum": 0, "maximum": 60},
                },
            },
            "policy": {
                "type": "object",
                "properties": {
                    "default_tracking_type": {
                        "type": "string",
                        "enum": [t.value for t in TrackingType],
                    },
                },
            },
            "reports": {
                "type": "object",
                "properties": {
                    "window_days": {"type": "integer", "minimum": 1, "maximum": 366},
                    "top_projects": {"type": "integer", "minimum": 1, "maximum": 100},
                    "recent_entries": {"type": "integer", "minimum": 1, "maximum": 1000},
                },
            },
            "advanced": {
                "type": "object",
                "properties": {
                    "log_level": {
                        "type": "string",
                        "enum": ["DEBUG", "INFO", "WARNING", "ERROR"],
                    },
                    "log_file": {"type": ["string", "null"]},
                },
            },
            "users": {
                "type": "object",
                "additionalProperties": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "shift": {"type": ["string", "null"]},
                        "hourly_rate": {"type": ["number", "string", "null"]},
                        "status": {"type": "string"},
                    },
                },
            },
        },
        "required": ["version"],
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to config file. Defaults to ~/.shiftclock/config.yml
        """
        if config_path is None:
            config_path = Path.home() / ".shiftclock" / "config.yml"
        self.config_path = config_path
        self._config: dict[str, Any] = {}
        self._load_or_create()

    def _load_or_create(self) -> None:
        """Load existing config or create default."""
        if self.config_path.exists():
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f) or {}
            # Merge with defaults to ensure all keys exist
            self._config = self._merge_with_defaults(loaded_config)
            try:
                self.validate()
            except ValueError as e:
                # If validation fails, backup corrupted config and use defaults
                backup_path = self.config_path.with_suffix(".yml.backup")
                self.config_path.rename(backup_path)
                self._config = copy.deepcopy(self.DEFAULT_CONFIG)
                self.save()
                raise ValueError(
                    f"Config validation failed, backed up to {backup_path}. "
                    f"Using defaults. Error: {e}"
                )
        else:
            self._config = copy.deepcopy(self.DEFAULT_CONFIG)
            self.save()

    def _merge_with_defaults(self, config: dict[str, Any]) -> dict[str, Any]:
        """Merge config with defaults to ensure all keys exist.

        Args:
            config: User configuration

        Returns:
            Merged configuration with all default keys
        """
        result = copy.deepcopy(self.DEFAULT_CONFIG)
        self._deep_merge(result, config)
        return result

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> None:
        """Deep merge override into base dictionary (in-place).

        Args:
            base: Base dictionary to merge into
            override: Dictionary with values to override
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'sync.auto_reconcile')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Example:
            >>> config.get('sync.auto_reconcile')
            True
            >>> config.get('nonexistent.key', 'default')
            'default'
        """
        keys = key.split(".")
        value: Any = self._config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
            if value is None:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set

        Raises:
            ValueError: If configuration is invalid after setting

        Example:
            >>> config.set('service.timeout', 30)
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value
        self.validate()
        self.save()

    def validate(self) -> bool:
        """Validate configuration against schema.

        Returns:
            True if valid

        Raises:
            ValueError: If configuration is invalid
        """
        try:
            validate(instance=self._config, schema=self.CONFIG_SCHEMA)
            return True
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e.message}")

    def save(self) -> None:
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self._config, f, default_flow_style=False, sort_keys=False, allow_unicode=True
            )

    def reset(self) -> None:
        """Reset to default configuration."""
        self._config = copy.deepcopy(self.DEFAULT_CONFIG)
        self.save()

    def to_dict(self) -> dict[str, Any]:
        """Get full configuration as dictionary.

        Returns:
            Copy of configuration dictionary
        """
        return copy.deepcopy(self._config)

    def get_all_keys(self, prefix: str = "") -> list[str]:
        """Get all configuration keys in dot notation.

        Args:
            prefix: Prefix for recursive traversal (internal use)

        Returns:
            List of all configuration keys

        Example:
            >>> config.get_all_keys()
            ['version', 'general.data_dir', 'general.user_id', ...]
        """
        keys = []
        config = self._config if not prefix else self.get(prefix, {})

        if isinstance(config, dict):
            for key, value in config.items():
                full_key = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    keys.extend(self.get_all_keys(full_key))
                else:
                    keys.append(full_key)
        return keys

    @property
    def data_dir(self) -> Path:
        """Expanded data directory path."""
        return Path(self.get("general.data_dir", "~/.shiftclock/data")).expanduser()

    @property
    def default_tracking_type(self) -> TrackingType:
        return TrackingType.parse(self.get("policy.default_tracking_type", "Hourly"))

    def users(self) -> dict[str, UserRecord]:
        """Users defined in the config file, keyed by id.

        Returns:
            Mapping of user id to UserRecord for the static shift directory
        """
        users: dict[str, Any] = self.get("users", {}) or {}
        return {
            user_id: UserRecord.from_dict({"id": user_id, **(data or {})})
            for user_id, data in users.items()
        }

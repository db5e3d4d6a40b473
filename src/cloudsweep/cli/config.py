"""Configuration management.

Settings come from defaults, then an optional YAML file, then CLOUDSWEEP_*
environment variables (later sources win).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ConfigError
from ..models.protection_rule import ProtectionRule

CONFIG_ENV_VAR = "CLOUDSWEEP_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".cloudsweep" / "config.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# env var -> (config key, type)
ENV_OVERRIDES = {
    "CLOUDSWEEP_LOG_LEVEL": ("log_level", str),
    "CLOUDSWEEP_LOG_FILE": ("log_file", str),
    "CLOUDSWEEP_CONCURRENCY": ("concurrency", int),
    "CLOUDSWEEP_MAX_ATTEMPTS": ("max_attempts", int),
    "CLOUDSWEEP_BACKOFF_BASE": ("backoff_base", float),
    "CLOUDSWEEP_CALL_TIMEOUT": ("call_timeout", float),
    "CLOUDSWEEP_AUDIT_DIR": ("audit_dir", str),
}


@dataclass
class Config:
    """cloudsweep configuration.

    Attributes:
        log_level: Default log level when neither --verbose nor --quiet is given
        log_file: Optional log file path
        concurrency: Maximum concurrent deletions inside a batch
        max_attempts: Delete attempts per resource on transient errors
        backoff_base: Base delay in seconds for exponential backoff
        call_timeout: Timeout in seconds for every provider CLI call
        audit_dir: Audit log directory (None for ~/.cloudsweep/audit-logs)
        protection_rules: User protection rules, added to the built-in ones
    """

    log_level: str = "INFO"
    log_file: Optional[str] = None
    concurrency: int = 5
    max_attempts: int = 3
    backoff_base: float = 1.0
    call_timeout: float = 300.0
    audit_dir: Optional[str] = None
    protection_rules: list[ProtectionRule] = field(default_factory=list)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load configuration.

        Args:
            path: Config file; defaults to $CLOUDSWEEP_CONFIG, then
                ~/.cloudsweep/config.yaml. Only an explicitly named file
                has to exist.

        Raises:
            ConfigError: If the file cannot be parsed or a value is invalid
        """
        explicit = path or os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(explicit).expanduser() if explicit else DEFAULT_CONFIG_PATH

        data: dict[str, Any] = {}
        if config_path.exists():
            data = cls._read_file(config_path)
        elif explicit:
            raise ConfigError(f"Config file not found: {config_path}", details={"path": str(config_path)})

        for env_var, (key, _) in ENV_OVERRIDES.items():
            if os.environ.get(env_var):
                data[key] = os.environ[env_var]

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build and validate a config from raw (file or env) values.

        Raises:
            ConfigError: If a key is unknown or a value is invalid
        """
        known = {"log_level", "log_file", "concurrency", "max_attempts", "backoff_base", "call_timeout", "audit_dir"}
        unknown = set(data) - known - {"protection_rules"}
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        kwargs: dict[str, Any] = {}
        types = {key: type_ for key, type_ in ENV_OVERRIDES.values()}
        for key in known & set(data):
            value = data[key]
            if value is None:
                continue
            try:
                kwargs[key] = types[key](value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key}: {value!r}", details={"key": key}) from e

        try:
            kwargs["protection_rules"] = [ProtectionRule.from_dict(rule) for rule in data.get("protection_rules") or []]
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid protection rule: {e}", details={"key": "protection_rules"}) from e

        config = cls(**kwargs)
        config.validate()
        return config

    def validate(self) -> None:
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"Invalid log_level: {self.log_level}", details={"key": "log_level"})
        if self.concurrency < 1:
            raise ConfigError("concurrency must be at least 1", details={"key": "concurrency"})
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1", details={"key": "max_attempts"})
        if self.backoff_base < 0:
            raise ConfigError("backoff_base cannot be negative", details={"key": "backoff_base"})
        if self.call_timeout <= 0:
            raise ConfigError("call_timeout must be positive", details={"key": "call_timeout"})

    @staticmethod
    def _read_file(config_path: Path) -> dict[str, Any]:
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}", details={"path": str(config_path)}) from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping", details={"path": str(config_path)})
        return data

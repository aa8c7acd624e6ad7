"""
Configuration system for kvplanner.

Loads YAML configuration files and provides typed access to settings.
Uses Pydantic v2 for validation and immutable config objects.

Configuration Hierarchy (highest priority first):
1. CLI arguments (passed to load_config)
2. Environment variables (KVPLANNER_*)
3. YAML configuration file
4. Pydantic field defaults
"""

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field


DEFAULT_DATA_DIR = Path(".kvplanner")


class StorageConfig(BaseModel):
    """Key-value backend selection."""

    model_config = ConfigDict(frozen=True)

    backend: Literal["memory", "sqlite"] = Field(default="sqlite", description="Key-value backend")
    path: Path = Field(default=DEFAULT_DATA_DIR / "store.db", description="SQLite database path")

    def open_kwargs(self) -> Dict[str, Any]:
        """Constructor arguments for kvplanner.core.kv.open_backend."""
        if self.backend == "sqlite":
            return {"path": self.path}
        return {}


class LoggingConfig(BaseModel):
    """Operation log (ObservabilityLogger) settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Record store operations to the log database")
    path: Path = Field(default=DEFAULT_DATA_DIR / "logs.db", description="Log database path")


class ServerConfig(BaseModel):
    """MCP server identity."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="Project Planner MCP", description="Server name announced to clients")
    version: str = Field(default="1.0.0", description="Server version announced to clients")


class PlannerConfig(BaseModel):
    """Central configuration object for a kvplanner deployment."""

    model_config = ConfigDict(frozen=True)

    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "PlannerConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data, base_path=path.parent)

    @classmethod
    def from_dict(cls, data: dict, base_path: Optional[Path] = None) -> "PlannerConfig":
        """Create from dictionary, resolving relative paths against base_path."""
        base_path = base_path or Path(".")

        storage = dict(data.get("storage") or {})
        if storage.get("path"):
            storage["path"] = base_path / storage["path"]

        log_settings = dict(data.get("logging") or {})
        if log_settings.get("path"):
            log_settings["path"] = base_path / log_settings["path"]

        return cls.model_validate({
            "storage": storage,
            "logging": log_settings,
            "server": data.get("server") or {},
        })


def load_config(
    path: Optional[Path] = None,
    env_prefix: str = "KVPLANNER_",
    cli_overrides: Optional[Dict[str, Any]] = None,
    use_env: bool = True,
) -> PlannerConfig:
    """Load configuration with hierarchy: defaults → YAML → env vars → CLI args.

    Args:
        path: Optional explicit path to YAML config file
        env_prefix: Prefix for environment variables (default: "KVPLANNER_")
        cli_overrides: Optional dictionary of CLI argument overrides
        use_env: Whether to load environment variables (default: True)

    Returns:
        Merged PlannerConfig

    Examples:
        # Basic usage
        config = load_config()

        # With CLI overrides
        config = load_config(cli_overrides={"storage": {"path": "/tmp/planner.db"}})

        # Environment variable: KVPLANNER_STORAGE_BACKEND=memory
        config = load_config()  # storage.backend will be "memory"
    """
    # Layer 1: Find YAML file
    yaml_path = _find_config_file(path)
    base_path = yaml_path.parent if yaml_path else Path(".")

    # Layer 2: Load YAML (or start with empty dict)
    if yaml_path:
        with open(yaml_path) as f:
            config_dict = yaml.safe_load(f) or {}
    else:
        config_dict = {}

    # Layer 3: Merge environment variables
    if use_env:
        env_config = _extract_env_config(env_prefix)
        _deep_merge(config_dict, env_config)

    # Layer 4: Merge CLI overrides
    if cli_overrides:
        _deep_merge(config_dict, cli_overrides)

    if not config_dict:
        return PlannerConfig()

    return PlannerConfig.from_dict(config_dict, base_path=base_path)


def _find_config_file(path: Optional[Path] = None) -> Optional[Path]:
    """Find configuration file.

    Searches in this order:
    1. Provided path
    2. ./kvplanner.yaml
    3. ./config.yaml

    Returns:
        Path to config file or None if not found
    """
    if path and path.exists():
        return path

    for filename in ["kvplanner.yaml", "config.yaml"]:
        config_path = Path(filename)
        if config_path.exists():
            return config_path

    return None


def _extract_env_config(prefix: str = "KVPLANNER_") -> Dict[str, Any]:
    """Extract configuration from environment variables.

    Environment variables are mapped to config paths:
    - KVPLANNER_STORAGE_BACKEND=memory → {"storage": {"backend": "memory"}}
    - KVPLANNER_STORAGE_PATH=/data/p.db → {"storage": {"path": "/data/p.db"}}
    - KVPLANNER_LOGGING_ENABLED=false → {"logging": {"enabled": False}}

    Variables outside the known sections are ignored.

    Args:
        prefix: Environment variable prefix (default: "KVPLANNER_")

    Returns:
        Dictionary of extracted configuration
    """
    config: Dict[str, Any] = {}
    sections = {"storage", "logging", "server"}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix):].lower()
        parts = config_key.split("_")

        if parts[0] not in sections or len(parts) < 2:
            continue

        section = parts[0]
        field = "_".join(parts[1:])
        # Paths and names stay strings (a server named "on" is not True)
        if field in ("path", "name", "version"):
            converted: Any = value
        else:
            converted = _convert_env_value(value)
        config.setdefault(section, {})[field] = converted

    return config


def _convert_env_value(value: str) -> Union[str, bool]:
    """Convert environment variable string to appropriate type.

    Only booleans need converting; every other setting is a string.

    Args:
        value: Raw string value from environment

    Returns:
        Converted value (bool or string)
    """
    # Empty string
    if not value:
        return value

    # Boolean
    if value.lower() in ("true", "yes", "1", "on"):
        return True
    if value.lower() in ("false", "no", "0", "off"):
        return False

    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Deep merge override into base dictionary (mutates base).

    Recursively merges nested dictionaries. For non-dict values,
    override completely replaces base.

    Examples:
        >>> base = {"a": {"b": 1, "c": 2}, "d": 3}
        >>> override = {"a": {"b": 10}, "e": 5}
        >>> _deep_merge(base, override)
        >>> base
        {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            base[key] = value

"""YAML configuration loader with inheritance support.

Supports:
- Loading YAML config files
- Config inheritance via 'extends' key
- Deep merging of nested config
- Environment overrides for the server host
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from ..llm.params import SamplingParameters
from . import AskYoavConfig, LoggingConfig, ServerConfig, SessionConfig

logger = logging.getLogger(__name__)

ENV_SERVER_HOST = "ASKYOAV_SERVER_HOST"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Values from override take precedence. Nested dicts are merged recursively.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_with_inheritance(path: Path) -> dict[str, Any]:
    """Load YAML file with inheritance support.

    If the file contains an 'extends' key, the base config is loaded first
    and merged with the current config.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    if "extends" in config:
        base_name = config.pop("extends")
        base_path = path.parent / base_name
        base_config = load_yaml_with_inheritance(base_path)
        config = deep_merge(base_config, config)

    return config


def dict_to_config(data: dict[str, Any]) -> AskYoavConfig:
    """Convert raw dict to typed AskYoavConfig dataclass.

    Raises:
        ValueError: If a sampling parameter is unknown or out of range
    """
    root = data.get("askyoav", {}) or {}

    # YAML sections may be present but empty
    def safe_get(key: str) -> dict[str, Any]:
        value = root.get(key, {})
        return value if value is not None else {}

    sampling = SamplingParameters()
    sampling.update(safe_get("sampling"))

    return AskYoavConfig(
        server=ServerConfig(**safe_get("server")),
        session=SessionConfig(**safe_get("session")),
        sampling=sampling,
        logging=LoggingConfig(**safe_get("logging")),
    )


def apply_env_overrides(config: AskYoavConfig) -> AskYoavConfig:
    """Apply environment variable overrides in place."""
    host = os.environ.get(ENV_SERVER_HOST, "").strip()
    if host:
        logger.debug(f"Server host overridden from {ENV_SERVER_HOST}: {host}")
        config.server.host = host
    return config


class YAMLConfigLoader:
    """YAML configuration loader implementation."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize loader with optional config directory.

        Args:
            config_dir: Directory containing config files.
                        Defaults to 'config' relative to project root.
        """
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent.parent / "config"
        self._config_dir = config_dir

    def load(self, path: Path) -> AskYoavConfig:
        """Load configuration from file path.

        Args:
            path: Path to YAML config file

        Returns:
            Parsed AskYoavConfig
        """
        raw_config = load_yaml_with_inheritance(path)
        return dict_to_config(raw_config)

    def load_profile(self, profile: str) -> AskYoavConfig:
        """Load configuration by profile name.

        Args:
            profile: Profile name (e.g., 'dev', 'prod')

        Returns:
            Parsed AskYoavConfig for the profile
        """
        config_path = self._config_dir / f"{profile}.yaml"
        return self.load(config_path)

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self._config_dir


def load_config(path: str | Path | None = None, profile: str | None = None) -> AskYoavConfig:
    """Load AskYoav configuration.

    Args:
        path: Direct path to config file (takes precedence)
        profile: Profile name ('dev', 'prod', 'test') if path not given

    Returns:
        Parsed AskYoavConfig with environment overrides applied

    Examples:
        >>> config = load_config(profile="dev")
        >>> config = load_config(path="/path/to/config.yaml")
    """
    loader = YAMLConfigLoader()

    if path is not None:
        config = loader.load(Path(path))
    elif profile is not None:
        config = loader.load_profile(profile)
    else:
        config = loader.load_profile("dev")

    return apply_env_overrides(config)


__all__ = [
    "ENV_SERVER_HOST",
    "YAMLConfigLoader",
    "apply_env_overrides",
    "deep_merge",
    "dict_to_config",
    "load_config",
    "load_yaml_with_inheritance",
]

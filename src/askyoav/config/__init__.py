"""Configuration module for AskYoav.

This module provides configuration loading and profile management.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..llm.params import SamplingParameters
from ..session.state import (
    DEFAULT_HISTORY_TEMPLATE,
    DEFAULT_PROMPT,
    DEFAULT_TEMPLATE,
)


@dataclass
class ServerConfig:
    """Completion server configuration."""

    host: str = "http://localhost:8080"
    timeout_seconds: float = 30.0
    use_mock: bool = False


@dataclass
class SessionConfig:
    """Initial conversation settings."""

    prompt: str = DEFAULT_PROMPT
    template: str = DEFAULT_TEMPLATE
    history_template: str = DEFAULT_HISTORY_TEMPLATE
    char: str = "Yoav"
    user: str = "User"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"


@dataclass
class AskYoavConfig:
    """Main AskYoav configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    sampling: SamplingParameters = field(default_factory=SamplingParameters)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigLoader(Protocol):
    """Protocol for configuration loading."""

    def load(self, path: Path) -> AskYoavConfig:
        """Load configuration from file path."""
        ...

    def load_profile(self, profile: str) -> AskYoavConfig:
        """Load configuration by profile name (dev, prod, test)."""
        ...

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        ...


# Public API
__all__ = [
    "AskYoavConfig",
    "ConfigLoader",
    "LoggingConfig",
    "ServerConfig",
    "SessionConfig",
]

"""Configuration profile management.

Provides utilities for detecting the configuration profile from the
environment.
"""

import os
from enum import Enum
from pathlib import Path

ENV_PROFILE = "ASKYOAV_PROFILE"


class Profile(Enum):
    """Available configuration profiles."""

    DEV = "dev"
    PROD = "prod"
    TEST = "test"


def detect_profile() -> Profile:
    """Detect appropriate configuration profile.

    Uses the ASKYOAV_PROFILE environment variable, defaulting to dev.

    Returns:
        Profile enum value
    """
    env_profile = os.environ.get(ENV_PROFILE, "").strip().lower()
    profile_map = {profile.value: profile for profile in Profile}
    return profile_map.get(env_profile, Profile.DEV)


def get_profile_path(profile: Profile | None = None, config_dir: Path | None = None) -> Path:
    """Get path to profile configuration file.

    Args:
        profile: Profile to use, or None to auto-detect
        config_dir: Configuration directory, or None for default

    Returns:
        Path to profile YAML file
    """
    if profile is None:
        profile = detect_profile()

    if config_dir is None:
        # Default: config/ relative to project root
        config_dir = Path(__file__).parent.parent.parent.parent / "config"

    return config_dir / f"{profile.value}.yaml"


__all__ = [
    "ENV_PROFILE",
    "Profile",
    "detect_profile",
    "get_profile_path",
]

"""Environment detection and config file discovery."""

import os
from enum import Enum
from pathlib import Path


class Environment(Enum):
    """Supported deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


def get_environment() -> Environment:
    """Read the current environment from TILEFLIP_ENVIRONMENT.

    Unknown or missing values fall back to development.
    """
    env_str = os.getenv("TILEFLIP_ENVIRONMENT", "").lower()
    try:
        return Environment(env_str)
    except ValueError:
        return Environment.DEVELOPMENT


def get_config_file_path(
    environment: Environment | None = None, base_dir: Path | None = None
) -> Path | None:
    """Find the configuration file for an environment.

    Environment-specific files win over the generic ``tileflip.yaml``.

    Args:
        environment: Environment to look up (defaults to current)
        base_dir: Directory to search (defaults to the working directory)

    Returns:
        Path to configuration file, or None if not found
    """
    if environment is None:
        environment = get_environment()
    base = base_dir or Path.cwd()

    candidates = [
        f"config/{environment.value}.yaml",
        f"tileflip.{environment.value}.yaml",
        "config/tileflip.yaml",
        "tileflip.yaml",
    ]

    for name in candidates:
        path = base / name
        if path.exists():
            return path

    return None

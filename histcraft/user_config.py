"""User configuration management for histcraft.

Handles reading and writing the .histcraft/config.yaml file in each repository.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from histcraft.git.history import DEFAULT_WINDOW

CONFIG_DIR_NAME = ".histcraft"

# Default configuration values
DEFAULT_CONFIG = {
    "craft": {
        "count": DEFAULT_WINDOW,
        "confirm": True,
        "edit_squash_messages": True,
        "squash_separator": "\n\n",
    },
}


class CraftSettings(BaseModel):
    """Settings for craft sessions."""

    count: int = Field(default=DEFAULT_WINDOW, ge=1)  # Commits loaded by default
    confirm: bool = True  # Ask before executing a non-interactive plan
    edit_squash_messages: bool = True  # Open the editor on combined squash messages
    squash_separator: str = "\n\n"


def get_config_file(repo_root: Path) -> Path:
    """Return path to the config.yaml file.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        Path to .histcraft/config.yaml
    """
    return repo_root / CONFIG_DIR_NAME / "config.yaml"


def load_config(repo_root: Path) -> dict:
    """Load the histcraft configuration from config.yaml.

    A missing file is not created; reading the configuration never writes to
    the repository.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        Configuration dictionary merged over the defaults.
    """
    config_file = get_config_file(repo_root)

    if not config_file.exists():
        return {key: dict(value) for key, value in DEFAULT_CONFIG.items()}

    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f) or {}
        if not isinstance(config, dict):
            raise ValueError("config root must be a mapping")
        # Merge with defaults for any missing keys
        for key, value in DEFAULT_CONFIG.items():
            if not isinstance(config.get(key), dict):
                config[key] = dict(value)
            else:
                config[key] = {**value, **config[key]}
        return config
    except (yaml.YAMLError, OSError, ValueError):
        # If config is corrupted, return defaults
        return {key: dict(value) for key, value in DEFAULT_CONFIG.items()}


def save_config(repo_root: Path, config: dict) -> None:
    """Save the configuration to config.yaml.

    Args:
        repo_root: The root directory of the git repository.
        config: Configuration dictionary to save.
    """
    config_file = get_config_file(repo_root)

    # Ensure directory exists
    config_file.parent.mkdir(exist_ok=True)

    with open(config_file, "w") as f:
        yaml.dump(
            config,
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )


def get_craft_settings(repo_root: Path) -> CraftSettings:
    """Get the craft settings of a repository.

    Invalid values fall back to the defaults.

    Args:
        repo_root: The root directory of the git repository.

    Returns:
        CraftSettings for the repository.
    """
    config = load_config(repo_root)
    try:
        return CraftSettings(**config["craft"])
    except (ValidationError, TypeError):
        return CraftSettings()

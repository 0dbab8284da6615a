"""Configuration for the tutorial system.

Settings come from an optional YAML file and are then overridden by
``OPCODER_*`` environment variables.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path.home() / ".opcoder" / "config.yaml"
DEFAULT_PROGRESS_DIR = Path.home() / ".opcoder" / "tutorials"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Environment variable -> config field
ENV_OVERRIDES = {
    "OPCODER_TUTORIAL_DIR": "progress_dir",
    "OPCODER_TUTORIAL_CATALOG": "catalog_path",
    "OPCODER_USER_ID": "user_id",
    "OPCODER_LOG_LEVEL": "log_level",
}


class TutorialConfig(BaseModel):
    """Tutorial system settings."""

    progress_dir: Path = Field(
        default=DEFAULT_PROGRESS_DIR, description="Directory for per-user progress files"
    )
    catalog_path: Path | None = Field(
        default=None, description="YAML catalog to use instead of the built-in one"
    )
    user_id: str | None = Field(default="local", description="User whose progress is tracked")
    log_level: str = Field(default="WARNING", description="Logging level for the CLI")

    @field_validator("progress_dir", "catalog_path", mode="before")
    @classmethod
    def expand_user(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level '{v}'. Valid levels: {', '.join(VALID_LOG_LEVELS)}"
            )
        return level

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("user_id must not be blank")
        return v


def load_config(config_path: Path | None = None) -> TutorialConfig:
    """Load tutorial settings.

    Args:
        config_path: YAML file to read. When omitted, ~/.opcoder/config.yaml
            is used if it exists.

    Returns:
        The resolved configuration.

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist.
        ValueError: If the file is not valid YAML, not a mapping, or a value
            is invalid.
    """
    data: dict[str, Any] = {}

    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    path = config_path if config_path is not None else DEFAULT_CONFIG_PATH
    if path.exists():
        with open(path) as f:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in config file {path}: {e}") from e
        if raw is not None and not isinstance(raw, dict):
            raise ValueError(f"Invalid config file (expected a mapping): {path}")
        data.update(raw or {})

    for env_var, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[field_name] = value

    return TutorialConfig(**data)

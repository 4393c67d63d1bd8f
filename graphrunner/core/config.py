"""Engine settings loaded from .graphrunner/config.yaml."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from graphrunner.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR = ".graphrunner"
CONFIG_FILE = "config.yaml"

DEFAULT_CONFIG_YAML = """# graphrunner configuration for this project

engine:
  # Pause between repetitions of an operation (milliseconds)
  repeat_pause_ms: 50
  # Wheel delta used by scroll operations without an explicit amount
  default_scroll_amount: 120
  # Base directory for relative GraphFilePath references when the
  # referencing graph's own directory is unknown
  graph_search_root: null
  # WARNING, INFO or DEBUG
  log_level: WARNING
"""


class EngineSettings(BaseModel):
    """Tunables for the execution engine"""

    model_config = ConfigDict(extra="forbid")

    repeat_pause_ms: int = Field(default=50, ge=0)
    default_scroll_amount: int = 120
    graph_search_root: Path | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v


def default_config_path(repo_path: Path | None = None) -> Path:
    return (repo_path or Path.cwd()) / CONFIG_DIR / CONFIG_FILE


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load engine settings.

    Args:
        path: Explicit config file. When None, .graphrunner/config.yaml under
            the current directory is used if it exists.

    Returns:
        Settings; defaults when no config file is present

    Raises:
        ConfigurationError: Explicit path missing, unreadable YAML, or
            values that fail validation
    """
    explicit = path is not None
    config_path = Path(path) if explicit else default_config_path()

    if not config_path.exists():
        if explicit:
            raise ConfigurationError(f"Config file not found: {config_path}")
        return EngineSettings()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config {config_path}: {e}") from e

    if data is None:
        return EngineSettings()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config {config_path} must be a mapping",
            hint="Put engine settings under an 'engine:' key.",
        )

    engine_cfg = data.get("engine") or {}
    if not isinstance(engine_cfg, dict):
        raise ConfigurationError(f"'engine' section of {config_path} must be a mapping")

    try:
        settings = EngineSettings.model_validate(engine_cfg)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(x) for x in first["loc"])
        raise ConfigurationError(
            f"Invalid engine setting in {config_path}: {loc}: {first['msg']}"
        ) from e

    logger.debug(f"Loaded engine settings from {config_path}")
    return settings

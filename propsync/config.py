"""
Configuration management for propsync.

Loads config.yaml from the propsync home directory:
- $PROPSYNC_HOME if set
- ~/.config/propsync otherwise

An optional env_file is loaded into the process environment with
python-dotenv before the Firestore client is created, so
GOOGLE_APPLICATION_CREDENTIALS and friends can live there.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from propsync.errors import ConfigError


DEFAULT_HOME = "~/.config/propsync"


def get_propsync_home() -> Path:
    """Directory holding config.yaml and .env."""
    home = os.environ.get("PROPSYNC_HOME")
    if home:
        return Path(home)
    return Path(DEFAULT_HOME).expanduser()


@dataclass
class PropsyncConfig:
    """Complete propsync configuration."""
    project: str
    database: str = "(default)"
    google_application_credentials: Optional[str] = None
    env_file: Optional[str] = None
    log_level: str = "INFO"
    default_building: Optional[str] = None
    actor: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PropsyncConfig":
        if not data.get("project"):
            raise ConfigError("Config is missing required key 'project'")
        actor = data.get("actor") or {}
        if not isinstance(actor, dict):
            raise ConfigError("Config key 'actor' must be a mapping")
        return cls(
            project=data["project"],
            database=data.get("database") or "(default)",
            google_application_credentials=data.get("google_application_credentials"),
            env_file=data.get("env_file"),
            log_level=str(data.get("log_level", "INFO")).upper(),
            default_building=data.get("default_building"),
            actor=actor,
        )

    def apply_environment(self) -> None:
        """Load env_file and export credentials for the Google client libraries."""
        if self.env_file:
            env_path = Path(self.env_file).expanduser()
            if env_path.exists():
                load_dotenv(env_path, override=False)
        if self.google_application_credentials:
            os.environ.setdefault(
                "GOOGLE_APPLICATION_CREDENTIALS",
                str(Path(self.google_application_credentials).expanduser()),
            )

    def __repr__(self) -> str:
        return f"PropsyncConfig(project={self.project}, database={self.database})"


def load_config(config_path: Optional[Path] = None) -> PropsyncConfig:
    """
    Load propsync configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        PropsyncConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the config is invalid
    """
    if config_path is None:
        config_path = get_propsync_home() / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"propsync config.yaml not found at {config_path}. Run 'propsync init'."
        )

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not data:
        raise ConfigError("Configuration file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    cfg = PropsyncConfig.from_dict(data)
    cfg.apply_environment()
    return cfg

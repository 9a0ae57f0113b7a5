"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path
from typing import Literal, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class FirebaseConfig(BaseModel):
    """Firebase project used by the firestore backend."""
    project_id: str
    api_key: str
    database: str = "(default)"


class CampDefaults(BaseModel):
    """Defaults offered when creating a camp."""
    slot_interval: int = 15
    slot_capacity: int = 5

    @field_validator("slot_interval", "slot_capacity")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure defaults are usable as camp parameters."""
        if value <= 0:
            raise ValueError("Camp defaults must be greater than zero")
        return value


class SchedulingConfig(BaseModel):
    """Concurrency settings for claims and cancellations."""
    max_retries: int = 3

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_retries must be at least 1")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    backend: Literal["json", "firestore"] = "json"
    data_file: Path = Field(default_factory=lambda: Path.home() / ".campslots" / "data.json")
    session_file: Optional[Path] = None
    use_keyring: bool = True
    timezone: str = "UTC"
    log_level: str = "WARNING"
    firebase: Optional[FirebaseConfig] = None
    defaults: CampDefaults = Field(default_factory=CampDefaults)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value}")
        return level

    @model_validator(mode="after")
    def validate_backend(self) -> "AppConfig":
        """The firestore backend needs a Firebase project."""
        if self.backend == "firestore" and self.firebase is None:
            raise ValueError("backend 'firestore' requires a 'firebase' section")
        return self

    def get_log_level(self) -> int:
        return logging.getLevelName(self.log_level)

    def get_session_file(self) -> Path:
        """Session cache file, next to the data file unless configured."""
        if self.session_file:
            return self.session_file.expanduser()
        return self.data_file.expanduser().parent / "session.json"

    def session_key(self) -> str:
        """Keyring entry name, separate per backend and project."""
        if self.backend == "firestore" and self.firebase:
            return f"firestore:{self.firebase.project_id}"
        return f"json:{self.data_file.expanduser()}"

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path

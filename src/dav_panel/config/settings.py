from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the DAV control panel."""

    model_config = SettingsConfigDict(env_prefix="DAV_PANEL_", env_file=".env", extra="allow")

    backend: Optional[str] = None

    poll_interval_seconds: float = 2.0
    operation_timeout_seconds: Optional[float] = 30.0

    state_directory: Path = Path("var")
    log_level: str = "INFO"

    ip_choices: list[str] = ["127.0.0.1", "[::]", "0.0.0.0"]


def load_settings(config_path: Optional[str]) -> Settings:
    """Load settings optionally layering a YAML profile file."""
    settings = Settings()
    if config_path:
        from .yaml_loader import load_yaml_settings

        return load_yaml_settings(settings, config_path)
    return settings

"""Configuration system with YAML defaults + user overrides + environment overrides."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "default.yaml"
USER_CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"
ENV_PATH = PROJECT_ROOT / ".env"


class EnvOverrides(BaseSettings):
    """Loads overrides from .env file and SILENCE_COACH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SILENCE_COACH_",
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    device: str | None = None
    log_level: str | None = None
    settings_path: str | None = None


# --- Nested config sections ---


class AudioConfig(BaseModel):
    sample_rate: int = Field(default=16000, gt=0)
    channels: int = Field(default=1, ge=1)
    sample_period_ms: int = Field(default=30, gt=0)  # one loudness value per period
    sensitivity: float = Field(default=4.0, gt=0)  # RMS gain before clamping
    device: str | None = None  # overrides the persisted device when set


class SettingsStoreConfig(BaseModel):
    path: str = "data/settings.yaml"


class WebUIConfig(BaseModel):
    enabled: bool = True
    port: int = 7860
    host: str = "127.0.0.1"
    poll_interval_sec: float = 0.1


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str | None = "logs/silence_coach.log"


class AppConfig(BaseModel):
    """Full application configuration."""

    audio: AudioConfig = Field(default_factory=AudioConfig)
    settings: SettingsStoreConfig = Field(default_factory=SettingsStoreConfig)
    web_ui: WebUIConfig = Field(default_factory=WebUIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if missing."""
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load config by merging: defaults -> user config.yaml -> .env/env vars.

    Args:
        config_path: Optional path to a user config YAML override file.
    """
    # 1. Load default config
    data = _load_yaml(DEFAULT_CONFIG_PATH)

    # 2. Merge user config override
    user_path = Path(config_path) if config_path else USER_CONFIG_PATH
    user_data = _load_yaml(user_path)
    if user_data:
        data = _deep_merge(data, user_data)

    # 3. Apply environment overrides
    env = EnvOverrides()
    overrides: dict[str, Any] = {}
    if env.device:
        overrides["audio"] = {"device": env.device}
    if env.log_level:
        overrides["logging"] = {"level": env.log_level}
    if env.settings_path:
        overrides["settings"] = {"path": env.settings_path}
    if overrides:
        data = _deep_merge(data, overrides)

    return AppConfig(**data)

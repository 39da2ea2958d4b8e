"""Persisted user settings: one JSON blob under a fixed key in a YAML file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from silence_coach.state_machine import SilenceConfig

logger = logging.getLogger(__name__)

SETTINGS_KEY = "silence_detector_settings"

THRESHOLD_RANGE = (0.01, 1.0)
SILENCE_DURATION_RANGE = (1, 60)
VISUAL_DELAY_RANGE = (0, 10)


class Settings(BaseModel):
    """User-adjustable settings, rewritten in full on every change.

    Stored with camelCase keys (`silenceDuration`, `selectedDeviceId`, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    threshold: float = Field(default=0.1, ge=THRESHOLD_RANGE[0], le=THRESHOLD_RANGE[1])
    silence_duration: int = Field(
        default=10, ge=SILENCE_DURATION_RANGE[0], le=SILENCE_DURATION_RANGE[1]
    )
    visual_delay: int = Field(default=2, ge=VISUAL_DELAY_RANGE[0], le=VISUAL_DELAY_RANGE[1])
    count_backwards: bool = True
    selected_device_id: str = "default"

    def silence_config(self) -> SilenceConfig:
        return SilenceConfig(
            threshold=self.threshold,
            silence_duration=self.silence_duration,
            visual_delay=self.visual_delay,
            count_backwards=self.count_backwards,
        )


# --- Boundary coercion ---


def _clamp(value, bounds):
    low, high = bounds
    return max(low, min(high, value))


def coerce_threshold(raw: Any, last_valid: float) -> float:
    """Parse and clamp a threshold; unparseable input keeps ``last_valid``."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return last_valid
    if value != value:  # NaN
        return last_valid
    return round(_clamp(value, THRESHOLD_RANGE), 2)


def _coerce_int(raw: Any, last_valid: int, bounds: tuple[int, int]) -> int:
    if isinstance(raw, bool):
        return last_valid
    try:
        value = int(str(raw).strip(), 10) if isinstance(raw, str) else int(raw)
    except (TypeError, ValueError, OverflowError):
        return last_valid
    return _clamp(value, bounds)


def coerce_silence_duration(raw: Any, last_valid: int) -> int:
    return _coerce_int(raw, last_valid, SILENCE_DURATION_RANGE)


def coerce_visual_delay(raw: Any, last_valid: int) -> int:
    return _coerce_int(raw, last_valid, VISUAL_DELAY_RANGE)


# --- Storage ---


class KeyValueBackend(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, blob: str) -> None: ...


class YamlFileBackend:
    """Flat key -> string mapping kept in a YAML file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    def read(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def write(self, key: str, blob: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            data = self._load()
        except yaml.YAMLError:
            data = {}
        data[key] = blob
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False)


class MemoryBackend:
    """In-process backend, used when nothing should touch the disk."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self.data.get(key)

    def write(self, key: str, blob: str) -> None:
        self.data[key] = blob


class SettingsStore:
    """Reads settings once at startup and rewrites them on every change."""

    def __init__(self, backend: KeyValueBackend, key: str = SETTINGS_KEY):
        self.backend = backend
        self.key = key

    def load(self) -> Settings:
        """Load settings, substituting defaults per field.

        A blob that cannot be read or decoded falls back wholesale to defaults.
        """
        try:
            blob = self.backend.read(self.key)
            raw = json.loads(blob) if blob else {}
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read stored settings, using defaults: {e}")
            return Settings()
        if not isinstance(raw, dict):
            logger.warning("Stored settings are not a mapping, using defaults")
            return Settings()

        values: dict[str, Any] = {}
        for name, field in Settings.model_fields.items():
            key = field.alias or name
            if raw.get(key) is None:
                continue
            try:
                Settings.model_validate({key: raw[key]})
            except ValidationError:
                logger.warning(f"Ignoring invalid stored value for {key}: {raw[key]!r}")
                continue
            values[key] = raw[key]
        return Settings.model_validate(values)

    def save(self, settings: Settings) -> None:
        try:
            self.backend.write(self.key, settings.model_dump_json(by_alias=True))
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")

"""Input device enumeration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from silence_coach.audio.sampler import DEFAULT_DEVICE_ID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioDevice:
    id: str
    label: str


def list_input_devices(raw_devices: list[dict] | None = None) -> list[AudioDevice]:
    """Return the system default followed by every device with an input channel.

    Ids are PortAudio device names so a stored selection survives re-plugging;
    unnamed devices get a positional label. ``raw_devices`` defaults to
    ``sounddevice.query_devices()``.
    """
    if raw_devices is None:
        import sounddevice as sd

        raw_devices = sd.query_devices()

    devices: list[AudioDevice] = []
    has_input = False
    for info in raw_devices:
        if info.get("max_input_channels", 0) <= 0:
            continue
        has_input = True
        name = (info.get("name") or "").strip()
        if name == DEFAULT_DEVICE_ID:
            continue
        label = name or f"Microphone {len(devices) + 1}"
        devices.append(AudioDevice(id=name or str(info.get("index", len(devices))), label=label))
    logger.debug(f"Found {len(devices)} input devices")
    if not has_input:
        return []
    return [AudioDevice(id=DEFAULT_DEVICE_ID, label="System default"), *devices]


def resolve_selection(selected_id: str, devices: list[AudioDevice]) -> str:
    """Keep ``selected_id`` if it is still present, else fall back to the first device."""
    if not devices:
        return selected_id
    if any(device.id == selected_id for device in devices):
        return selected_id
    fallback = devices[0].id
    logger.info(f"Saved input device '{selected_id}' not found; using '{fallback}'")
    return fallback

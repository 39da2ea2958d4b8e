"""Microphone capture and device enumeration."""

from silence_coach.audio.devices import AudioDevice, list_input_devices, resolve_selection
from silence_coach.audio.sampler import CaptureError, VolumeSampler, compute_loudness

__all__ = [
    "AudioDevice",
    "CaptureError",
    "VolumeSampler",
    "compute_loudness",
    "list_input_devices",
    "resolve_selection",
]

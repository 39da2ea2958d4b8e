"""Wires the sampler, state machine and settings store behind presentation intents."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Callable

from silence_coach.audio.devices import AudioDevice, list_input_devices, resolve_selection
from silence_coach.audio.sampler import CaptureError, StreamFactory, VolumeSampler
from silence_coach.config import AudioConfig
from silence_coach.settings import (
    Settings,
    SettingsStore,
    coerce_silence_duration,
    coerce_threshold,
    coerce_visual_delay,
)
from silence_coach.state_machine import (
    ChangeCallback,
    Scheduler,
    SilenceSnapshot,
    SilenceStateMachine,
)

logger = logging.getLogger(__name__)

DeviceLister = Callable[[], list[AudioDevice]]


class SilenceCoach:
    """Single entry point for the presentation layer.

    All methods must be called on the event loop thread; the dashboard
    marshals its calls there.
    """

    def __init__(
        self,
        store: SettingsStore,
        loop: asyncio.AbstractEventLoop,
        audio_config: AudioConfig | None = None,
        scheduler: Scheduler | None = None,
        stream_factory: StreamFactory | None = None,
        list_devices: DeviceLister = list_input_devices,
        on_change: ChangeCallback | None = None,
    ):
        self.store = store
        self._loop = loop
        self._settings = store.load()
        self._list_devices = list_devices
        self._on_change = on_change
        self._devices: list[AudioDevice] = []
        self._listening = False
        self._error: str | None = None

        self.sampler = VolumeSampler(
            audio_config,
            on_sample=self._on_sample,
            on_error=self._on_capture_error,
            stream_factory=stream_factory,
        )
        self.machine = SilenceStateMachine(
            scheduler or loop,
            self._settings.silence_config(),
            on_change=self._on_machine_change,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def devices(self) -> list[AudioDevice]:
        return list(self._devices)

    def snapshot(self) -> SilenceSnapshot:
        return dataclasses.replace(
            self.machine.snapshot(),
            volume=self.sampler.volume,
            listening=self._listening,
            error=self._error,
        )

    def refresh_devices(self) -> list[AudioDevice]:
        """List input devices and make sure the stored selection still exists."""
        try:
            self._devices = self._list_devices()
        except Exception as e:
            logger.error(f"Could not enumerate audio devices: {e}")
            self._devices = []
            return []

        selected = resolve_selection(self._settings.selected_device_id, self._devices)
        if selected != self._settings.selected_device_id:
            self._update(selected_device_id=selected)
        return self.devices

    # --- Intents ---

    def start(self, device_id: str | None = None) -> bool:
        """Start listening. Returns False and records the message on capture failure."""
        if device_id is not None and device_id != self._settings.selected_device_id:
            self._update(selected_device_id=device_id)
        self._error = None

        try:
            self.sampler.start(self._settings.selected_device_id, loop=self._loop)
        except CaptureError as e:
            self._fail(e)
            return False

        self._listening = True
        logger.info("Listening started")
        self.machine.reset(self._settings.silence_config())
        return True

    def stop(self) -> None:
        self.sampler.stop()
        was_listening = self._listening
        self._listening = False
        self.machine.stop()
        if was_listening:
            logger.info("Listening stopped")

    def set_threshold(self, value: Any) -> None:
        self._apply(threshold=coerce_threshold(value, self._settings.threshold))

    def set_silence_duration(self, value: Any) -> None:
        self._apply(
            silence_duration=coerce_silence_duration(value, self._settings.silence_duration)
        )

    def set_visual_delay(self, value: Any) -> None:
        self._apply(visual_delay=coerce_visual_delay(value, self._settings.visual_delay))

    def set_count_backwards(self, value: bool) -> None:
        self._apply(count_backwards=bool(value))

    def set_selected_device(self, device_id: str) -> None:
        if device_id == self._settings.selected_device_id:
            return
        self._update(selected_device_id=device_id)
        if not self._listening:
            return
        try:
            self.sampler.switch_device(device_id)
        except CaptureError as e:
            self._fail(e)
            return
        self.machine.reset(self._settings.silence_config())

    # --- Internals ---

    def _apply(self, **changes: Any) -> None:
        """Persist settings and restart the silence measurement if listening."""
        self._update(**changes)
        self.machine.reconfigure(self._settings.silence_config())

    def _update(self, **changes: Any) -> None:
        self._settings = self._settings.model_copy(update=changes)
        logger.debug(f"Settings changed: {changes}")
        self.store.save(self._settings)

    def _fail(self, error: CaptureError) -> None:
        self._error = error.message
        self.stop()
        self._notify()

    def _on_sample(self, loudness: float) -> None:
        if self._listening:
            self.machine.on_volume_sample(loudness, self._settings.threshold)

    def _on_capture_error(self, error: CaptureError) -> None:
        logger.error(error.message)
        self._fail(error)

    def _on_machine_change(self, snapshot: SilenceSnapshot) -> None:
        self._notify()

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self.snapshot())

"""Microphone capture producing one loudness value per sampling period."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable

import numpy as np

from silence_coach.config import AudioConfig

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_ID = "default"

SampleCallback = Callable[[float], None]
ErrorCallback = Callable[["CaptureError"], None]
StreamFactory = Callable[..., Any]


class CaptureError(Exception):
    """Microphone could not be opened or was lost mid-session."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def compute_loudness(samples: np.ndarray, sensitivity: float = 4.0) -> float:
    """RMS of the normalized waveform, scaled by ``sensitivity`` and clamped to [0, 1].

    Accepts float samples in [-1, 1] or int16 PCM; multi-channel input is
    averaged to mono first.
    """
    if samples.size == 0:
        return 0.0
    if samples.dtype == np.int16:
        audio = samples.astype(np.float64) / 32768.0
    else:
        audio = samples.astype(np.float64)
    if audio.ndim == 2:
        audio = audio.mean(axis=1)
    rms = float(np.sqrt(np.mean(audio ** 2)))
    return min(rms * sensitivity, 1.0)


def resolve_device_index(device_id: str | None, devices: list[dict] | None = None) -> int | None:
    """Map a device id to a PortAudio input index; None selects the system default.

    ``devices`` defaults to ``sounddevice.query_devices()``.
    """
    if not device_id or device_id == DEFAULT_DEVICE_ID:
        return None
    try:
        return int(device_id)
    except ValueError:
        pass

    if devices is None:
        import sounddevice as sd

        devices = sd.query_devices()
    for index, info in enumerate(devices):
        if info.get("max_input_channels", 0) > 0 and info.get("name") == device_id:
            return index
    for index, info in enumerate(devices):
        if info.get("max_input_channels", 0) > 0 and device_id in info.get("name", ""):
            logger.info(f"Using input device '{info['name']}' (index {index})")
            return index

    logger.warning(f"Requested input device '{device_id}' not found; using default.")
    return None


def _input_stream_class() -> StreamFactory:
    # Imported on first use: loading sounddevice fails without the PortAudio library.
    import sounddevice as sd

    return sd.InputStream


class VolumeSampler:
    """Owns the input stream and exposes the latest loudness value.

    The PortAudio callback runs on its own thread; every value is handed to
    ``on_sample`` on the event loop passed to ``start``.
    """

    def __init__(
        self,
        config: AudioConfig | None = None,
        on_sample: SampleCallback | None = None,
        on_error: ErrorCallback | None = None,
        stream_factory: StreamFactory | None = None,
    ):
        self.config = config or AudioConfig()
        self._on_sample = on_sample
        self._on_error = on_error
        self._stream_factory = stream_factory
        self._stream = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._volume = 0.0
        self._device_id: str | None = None
        self._session = 0

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def running(self) -> bool:
        return self._stream is not None

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def blocksize(self) -> int:
        return max(1, int(self.config.sample_rate * self.config.sample_period_ms / 1000))

    def start(
        self,
        device_id: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Open the input device and begin sampling.

        Raises:
            CaptureError: If the device is unavailable or access is denied.
        """
        self.stop()
        self._loop = loop or asyncio.get_running_loop()
        session = self._session

        try:
            factory = self._stream_factory or _input_stream_class()
            device_index = resolve_device_index(device_id)
            stream = factory(
                device=device_index,
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype="float32",
                blocksize=self.blocksize,
                callback=functools.partial(self._audio_callback, session),
                finished_callback=functools.partial(self._finished_callback, session),
            )
            self._stream = stream
            stream.start()
        except Exception as e:
            logger.error(f"Failed to start capture on device {device_id!r}: {e}")
            self.stop()
            raise CaptureError(f"Error accessing microphone: {e}") from e

        self._device_id = device_id
        logger.info(
            f"Capture started: device={device_id or DEFAULT_DEVICE_ID}, "
            f"{self.config.sample_rate}Hz, {self.config.sample_period_ms}ms period"
        )

    def stop(self) -> None:
        """Release the input device. Safe to call repeatedly."""
        stream = self._stream
        self._stream = None
        self._session += 1
        self._volume = 0.0
        if stream is None:
            return
        try:
            stream.stop()
        except Exception as e:
            logger.warning(f"Error stopping input stream: {e}")
        try:
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing input stream: {e}")
        logger.info("Capture stopped")

    def switch_device(self, device_id: str | None) -> None:
        """Restart capture on another device; there is no seamless hand-over."""
        loop = self._loop
        self.stop()
        self.start(device_id, loop=loop)

    def _audio_callback(
        self, session: int, indata: np.ndarray, frames: int, time_info, status
    ) -> None:
        if status:
            logger.debug(f"Input stream status: {status}")
        loudness = compute_loudness(indata, self.config.sensitivity)
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._deliver, session, loudness)

    def _deliver(self, session: int, loudness: float) -> None:
        if session != self._session:
            return
        self._volume = loudness
        if self._on_sample:
            self._on_sample(loudness)

    def _finished_callback(self, session: int) -> None:
        loop = self._loop
        if session != self._session or loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._handle_lost_stream, session)

    def _handle_lost_stream(self, session: int) -> None:
        if session != self._session:
            return
        logger.error("Input stream ended unexpectedly (device disconnected?)")
        self.stop()
        if self._on_error:
            self._on_error(CaptureError("Error accessing microphone: input device disconnected"))

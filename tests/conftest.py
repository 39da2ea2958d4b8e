"""Shared fixtures: a manual-clock scheduler and a fake input stream."""

from __future__ import annotations

import itertools

import numpy as np
import pytest

from silence_coach.audio.devices import AudioDevice


class FakeHandle:
    def __init__(self, when: float, seq: int, callback):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """``call_later`` driven by an explicit clock.

    With ``honor_cancel=False`` cancelled timers still fire, which models a
    cancellation API that loses the race against an already-queued callback.
    """

    def __init__(self, honor_cancel: bool = True):
        self.now = 0.0
        self.honor_cancel = honor_cancel
        self._timers: list[FakeHandle] = []
        self._seq = itertools.count()

    def call_later(self, delay, callback):
        handle = FakeHandle(self.now + delay, next(self._seq), callback)
        self._timers.append(handle)
        return handle

    def _runnable(self, handle: FakeHandle) -> bool:
        return not (handle.cancelled and self.honor_cancel)

    @property
    def live_timers(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if self._runnable(t) and t.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback()
        self._timers = [t for t in self._timers if self._runnable(t)]
        self.now = target


class FakeStream:
    """Stands in for ``sounddevice.InputStream``."""

    instances: list["FakeStream"] = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.started = False
        self.stopped = False
        self.closed = False
        FakeStream.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def feed(self, loudness_value: float, frames: int = 480):
        """Invoke the audio callback with a constant-amplitude block."""
        block = np.full((frames, 1), loudness_value, dtype=np.float32)
        self.kwargs["callback"](block, frames, None, None)

    def disconnect(self):
        self.kwargs["finished_callback"]()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def racy_scheduler():
    return ManualScheduler(honor_cancel=False)


@pytest.fixture
def fake_stream():
    FakeStream.instances = []
    yield FakeStream
    FakeStream.instances = []


@pytest.fixture
def devices():
    return [
        AudioDevice(id="default", label="System default"),
        AudioDevice(id="USB Mic", label="USB Mic"),
        AudioDevice(id="Built-in Microphone", label="Built-in Microphone"),
    ]

"""Silence detection state machine driven by loudness samples and two timers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Protocol

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# Counter value on entering VISIBLY_SILENT when a visual delay was waited out.
COUNTDOWN_START = 1
COUNTDOWN_PERIOD_SEC = 1.0


class Phase(Enum):
    LISTENING = auto()
    ACTIVE = auto()
    PENDING_SILENCE = auto()
    VISIBLY_SILENT = auto()
    FINISHED = auto()


class SilenceConfig(BaseModel):
    """Parameters for one epoch of the state machine."""

    model_config = ConfigDict(frozen=True)

    threshold: float = Field(default=0.1, gt=0.0, le=1.0)
    silence_duration: int = Field(default=10, ge=1)
    visual_delay: int = Field(default=2, ge=0)
    count_backwards: bool = True


@dataclass(frozen=True)
class SilenceSnapshot:
    """Observable output of the state machine for the presentation layer."""

    phase: Phase
    counter: int
    display_value: int
    volume: float = 0.0
    listening: bool = False
    error: str | None = None


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    """Anything with ``call_later``; an asyncio event loop qualifies."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


ChangeCallback = Callable[[SilenceSnapshot], None]


class _TimerSlot:
    """Holds at most one pending timer of a given kind.

    Every arm bumps the slot serial; a callback only runs if both its serial
    and the machine epoch it was armed under are still current.
    """

    def __init__(self, name: str):
        self.name = name
        self._handle: TimerHandle | None = None
        self._serial = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(
        self,
        scheduler: Scheduler,
        delay: float,
        epoch_of: Callable[[], int],
        callback: Callable[[], None],
    ) -> None:
        self.cancel()
        serial = self._serial
        epoch = epoch_of()

        def fire() -> None:
            if serial != self._serial or epoch != epoch_of():
                logger.debug(f"Ignoring stale {self.name} timer")
                return
            self._handle = None
            callback()

        self._handle = scheduler.call_later(delay, fire)

    def cancel(self) -> None:
        self._serial += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class SilenceStateMachine:
    """Turns a loudness stream into ACTIVE / PENDING_SILENCE / VISIBLY_SILENT / FINISHED.

    Runs on a single control thread. All timers go through ``scheduler`` and
    are invalidated by ``reset`` and ``stop`` via the epoch counter, so once
    either returns no earlier timer can change state.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: SilenceConfig | None = None,
        on_change: ChangeCallback | None = None,
    ):
        self._scheduler = scheduler
        self._config = config or SilenceConfig()
        self._on_change = on_change
        self._phase = Phase.LISTENING
        self._counter = 0
        self._epoch = 0
        self._debounce = _TimerSlot("debounce")
        self._countdown = _TimerSlot("countdown")

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def counter(self) -> int:
        return self._counter

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def config(self) -> SilenceConfig:
        return self._config

    @property
    def pending_timers(self) -> tuple[bool, bool]:
        """(debounce pending, countdown pending)."""
        return self._debounce.pending, self._countdown.pending

    @property
    def display_value(self) -> int:
        """Number shown on the countdown dial."""
        duration = self._config.silence_duration
        if self._phase in (Phase.VISIBLY_SILENT, Phase.FINISHED):
            return duration - self._counter if self._config.count_backwards else self._counter
        return duration if self._config.count_backwards else 0

    def snapshot(self) -> SilenceSnapshot:
        return SilenceSnapshot(
            phase=self._phase,
            counter=self._counter,
            display_value=self.display_value,
            listening=self._phase is not Phase.LISTENING,
        )

    def reset(self, config: SilenceConfig | None = None) -> None:
        """Start a new epoch: drop all timers, go ACTIVE and arm the debounce timer."""
        if config is not None:
            self._config = config
        self._invalidate_timers()
        old_phase = self._phase
        self._phase = Phase.ACTIVE
        self._counter = 0
        self._arm_debounce()
        if old_phase is not Phase.ACTIVE:
            logger.info(f"Silence: {old_phase.name} -> ACTIVE (reset, epoch={self._epoch})")
        self._notify()

    def reconfigure(self, config: SilenceConfig) -> None:
        """Swap the config; a running machine restarts its measurement."""
        if self._phase is Phase.LISTENING:
            self._config = config
            self._notify()
        else:
            self.reset(config)

    def stop(self) -> None:
        """Drop all timers and return to LISTENING."""
        self._invalidate_timers()
        changed = self._phase is not Phase.LISTENING or self._counter != 0
        self._phase = Phase.LISTENING
        self._counter = 0
        if changed:
            logger.info("Silence detection stopped")
            self._notify()

    def on_volume_sample(self, loudness: float, threshold: float | None = None) -> None:
        """Process one sampler tick."""
        if self._phase is Phase.LISTENING:
            return
        if threshold is None:
            threshold = self._config.threshold

        if loudness < threshold:
            if self._phase is Phase.ACTIVE:
                self._transition(Phase.PENDING_SILENCE)
                self._arm_debounce()
        elif self._phase is not Phase.ACTIVE:
            # Any break in silence restarts measurement from zero.
            self.reset()

    def _invalidate_timers(self) -> None:
        self._epoch += 1
        self._debounce.cancel()
        self._countdown.cancel()

    def _arm_debounce(self) -> None:
        delay = self._config.visual_delay
        logger.debug(f"Arming debounce timer ({delay}s)")
        self._debounce.arm(self._scheduler, delay, lambda: self._epoch, self._on_debounce)

    def _arm_countdown(self) -> None:
        self._countdown.arm(
            self._scheduler, COUNTDOWN_PERIOD_SEC, lambda: self._epoch, self._on_countdown_tick
        )

    def _on_debounce(self) -> None:
        if self._phase is not Phase.PENDING_SILENCE:
            return
        self._counter = COUNTDOWN_START if self._config.visual_delay > 0 else 0
        self._transition(Phase.VISIBLY_SILENT)
        self._arm_countdown()

    def _on_countdown_tick(self) -> None:
        if self._phase is not Phase.VISIBLY_SILENT:
            return
        next_count = self._counter + 1
        if next_count > self._config.silence_duration:
            self._counter = self._config.silence_duration
            self._countdown.cancel()
            self._transition(Phase.FINISHED)
            return
        self._counter = next_count
        logger.debug(f"Silence counter: {self._counter}/{self._config.silence_duration}")
        self._notify()
        self._arm_countdown()

    def _transition(self, new_phase: Phase) -> None:
        old_phase = self._phase
        self._phase = new_phase
        logger.info(f"Silence: {old_phase.name} -> {new_phase.name} (counter={self._counter})")
        self._notify()

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self.snapshot())

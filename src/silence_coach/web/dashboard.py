"""Gradio dashboard: countdown dial, volume meter and settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import gradio as gr

from silence_coach.audio.devices import AudioDevice
from silence_coach.settings import (
    SILENCE_DURATION_RANGE,
    THRESHOLD_RANGE,
    VISUAL_DELAY_RANGE,
    Settings,
)
from silence_coach.state_machine import Phase, SilenceSnapshot

logger = logging.getLogger(__name__)

IDLE_COLOR = "#374151"  # gray-700
SILENT_COLOR = "#b91c1c"  # red-700
FINISHED_COLOR = "#15803d"  # green-700

Dispatch = Callable[..., Any]


@dataclass
class DashboardState:
    """Latest controller output, published from the event loop and polled by the UI."""

    phase: str = Phase.LISTENING.name
    counter: int = 0
    display_value: int = 0
    volume: float = 0.0
    listening: bool = False
    last_error: str = ""
    settings: Settings = field(default_factory=Settings)
    devices: list[AudioDevice] = field(default_factory=list)

    def publish(self, snapshot: SilenceSnapshot, settings: Settings) -> None:
        self.phase = snapshot.phase.name
        self.counter = snapshot.counter
        self.display_value = snapshot.display_value
        self.volume = snapshot.volume
        self.listening = snapshot.listening
        self.last_error = snapshot.error or ""
        self.settings = settings

    def set_devices(self, devices: list[AudioDevice]) -> None:
        self.devices = list(devices)

    def get_status(self) -> tuple[str, int, float, bool, str]:
        """Return current status for UI polling."""
        return self.phase, self.display_value, self.volume, self.listening, self.last_error

    def device_choices(self) -> list[tuple[str, str]]:
        return [(device.label, device.id) for device in self.devices]


def background_color(phase: str, listening: bool) -> str:
    if not listening:
        return IDLE_COLOR
    if phase == Phase.FINISHED.name:
        return FINISHED_COLOR
    if phase == Phase.VISIBLY_SILENT.name:
        return SILENT_COLOR
    return IDLE_COLOR


def render_dial(state: DashboardState) -> str:
    """Countdown dial: zero-padded display value on the phase colour."""
    color = background_color(state.phase, state.listening)
    if not state.listening:
        text = "--"
    else:
        text = f"{state.display_value:02d}"
    ring = "#86efac" if state.phase == Phase.FINISHED.name else "#ffffff"
    return (
        f'<div style="background:{color};transition:background-color 1s;'
        f'padding:48px 0;border-radius:12px;text-align:center">'
        f'<span style="display:inline-block;width:200px;height:200px;line-height:200px;'
        f"border:10px solid {ring};border-radius:50%;color:#fff;"
        f'font:bold 72px monospace">{text}</span></div>'
    )


def render_meter(volume: float, threshold: float) -> str:
    """Horizontal live volume bar with the threshold marked."""
    level = max(0.0, min(1.0, volume)) * 100
    mark = threshold * 100
    return (
        '<div style="position:relative;height:16px;background:#4b5563;border-radius:8px">'
        f'<div style="width:{level:.0f}%;height:100%;background:#22d3ee;border-radius:8px"></div>'
        f'<div style="position:absolute;left:{mark:.0f}%;top:0;width:2px;height:100%;'
        'background:#f87171"></div></div>'
    )


def create_dashboard(
    dashboard_state: DashboardState,
    dispatch: Dispatch,
    poll_interval: float = 0.1,
) -> gr.Blocks:
    """Create the Gradio dashboard.

    Args:
        dashboard_state: Shared state for UI display.
        dispatch: Called as ``dispatch(intent_name, *args)``; runs the named
            controller intent on the event loop.
        poll_interval: Seconds between UI refreshes.

    Returns:
        gr.Blocks instance. Call .launch() to start.
    """
    settings = dashboard_state.settings

    with gr.Blocks(title="Silence Coach") as demo:
        gr.Markdown(
            "When arguing, leave space after the other person speaks. This helps "
            "the other person to feel heard, you to reflect instead of reacting, "
            "and arguments to become more constructive."
        )

        dial = gr.HTML(render_dial(dashboard_state))
        with gr.Row():
            listen_btn = gr.Button("Listen", variant="primary", size="lg")
            stop_btn = gr.Button("Stop", variant="secondary", size="lg", interactive=False)
        error_display = gr.Textbox(label="Error", interactive=False, visible=False)

        with gr.Accordion("Settings", open=False):
            meter = gr.HTML(render_meter(0.0, settings.threshold), label="Live Volume")
            threshold = gr.Slider(
                minimum=THRESHOLD_RANGE[0], maximum=THRESHOLD_RANGE[1], step=0.01,
                value=settings.threshold, label="Silence threshold",
            )
            duration = gr.Slider(
                minimum=SILENCE_DURATION_RANGE[0], maximum=SILENCE_DURATION_RANGE[1], step=1,
                value=settings.silence_duration, label="Silence duration (seconds)",
            )
            delay = gr.Slider(
                minimum=VISUAL_DELAY_RANGE[0], maximum=VISUAL_DELAY_RANGE[1], step=1,
                value=settings.visual_delay, label="Visual delay (seconds)",
            )
            backwards = gr.Checkbox(value=settings.count_backwards, label="Count backwards")
            device = gr.Dropdown(
                choices=dashboard_state.device_choices(),
                value=settings.selected_device_id,
                label="Microphone",
            )

        def on_listen():
            dispatch("start")

        def on_stop():
            dispatch("stop")

        def poll_status():
            _, _, volume, listening, error = dashboard_state.get_status()
            return (
                render_dial(dashboard_state),
                render_meter(volume, dashboard_state.settings.threshold),
                gr.update(value=error, visible=bool(error)),
                gr.update(interactive=not listening),
                gr.update(interactive=listening),
            )

        listen_btn.click(fn=on_listen)
        stop_btn.click(fn=on_stop)
        threshold.release(fn=lambda v: dispatch("set_threshold", v), inputs=[threshold])
        duration.release(fn=lambda v: dispatch("set_silence_duration", v), inputs=[duration])
        delay.release(fn=lambda v: dispatch("set_visual_delay", v), inputs=[delay])
        backwards.change(fn=lambda v: dispatch("set_count_backwards", v), inputs=[backwards])
        device.change(fn=lambda v: dispatch("set_selected_device", v), inputs=[device])

        timer = gr.Timer(poll_interval)
        timer.tick(
            fn=poll_status,
            outputs=[dial, meter, error_display, listen_btn, stop_btn],
        )

    return demo

"""Main entry point for Silence Coach."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Any

from silence_coach.config import AppConfig, load_config

logger = logging.getLogger(__name__)

DISPATCH_TIMEOUT_SEC = 5.0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Silence Coach")
    parser.add_argument("--config", type=str, help="Path to config YAML override")
    parser.add_argument("--device", type=str, help="Input device name or index")
    parser.add_argument("--list-devices", action="store_true", help="List input devices and exit")
    parser.add_argument("--port", type=int, help="Web UI port")
    parser.add_argument("--web", dest="web", action="store_true", default=None)
    parser.add_argument("--no-web", dest="web", action="store_false")
    parser.add_argument("--log-level", type=str)
    parser.add_argument("--dry-run", action="store_true", help="Test config and exit")
    return parser.parse_args(argv)


def setup_logging(level: str, log_file: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        from pathlib import Path

        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


class CoachApp:
    """Runs the controller on an asyncio loop and publishes its state."""

    def __init__(self, config: AppConfig, start_listening: bool = False):
        self.config = config
        self.start_listening = start_listening
        self.shutdown_event = asyncio.Event()

        # Components (initialized in setup)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._coach = None
        self._dashboard_state = None
        self._dashboard = None
        self._last_display: tuple | None = None

    @property
    def coach(self):
        return self._coach

    async def setup(self, **coach_kwargs: Any) -> None:
        """Initialize all components."""
        from silence_coach.controller import SilenceCoach
        from silence_coach.settings import SettingsStore, YamlFileBackend

        self._loop = asyncio.get_running_loop()
        store = SettingsStore(YamlFileBackend(self.config.settings.path))
        self._coach = SilenceCoach(
            store,
            self._loop,
            audio_config=self.config.audio,
            **coach_kwargs,
        )

        # A configured device is checked against the device list like a stored one.
        if self.config.audio.device:
            self._coach.set_selected_device(self.config.audio.device)
        devices = self._coach.refresh_devices()
        logger.info(f"Found {len(devices)} input devices")

        if self.config.web_ui.enabled:
            self._launch_dashboard()

        logger.info("Setup complete.")

    def _launch_dashboard(self) -> None:
        from silence_coach.web.dashboard import DashboardState, create_dashboard

        self._dashboard_state = DashboardState()
        self._dashboard_state.set_devices(self._coach.devices)
        self._dashboard_state.publish(self._coach.snapshot(), self._coach.settings)

        self._dashboard = create_dashboard(
            self._dashboard_state,
            self.dispatch,
            poll_interval=self.config.web_ui.poll_interval_sec,
        )
        self._dashboard.launch(
            server_name=self.config.web_ui.host,
            server_port=self.config.web_ui.port,
            share=False,
            prevent_thread_lock=True,
        )
        logger.info(f"Dashboard at http://{self.config.web_ui.host}:{self.config.web_ui.port}")

    def dispatch(self, intent: str, *args: Any) -> Any:
        """Run a controller intent on the event loop from another thread."""

        async def _invoke():
            return getattr(self._coach, intent)(*args)

        future = asyncio.run_coroutine_threadsafe(_invoke(), self._loop)
        return future.result(timeout=DISPATCH_TIMEOUT_SEC)

    async def run(self) -> None:
        """Run the main application loop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_shutdown)

        if self.start_listening and not self._coach.start():
            logger.error(f"Could not start listening: {self._coach.error}")
            await self.cleanup()
            return

        logger.info("Starting main loop...")
        try:
            while not self.shutdown_event.is_set():
                self.publish()
                await asyncio.sleep(self.config.web_ui.poll_interval_sec)
        finally:
            await self.cleanup()

    def publish(self) -> None:
        """Push the latest snapshot to the dashboard and log display changes."""
        snapshot = self._coach.snapshot()
        if self._dashboard_state is not None:
            self._dashboard_state.publish(snapshot, self._coach.settings)

        display = (snapshot.phase, snapshot.display_value, snapshot.listening, snapshot.error)
        if display != self._last_display:
            self._last_display = display
            if snapshot.error:
                logger.warning(f"Capture error: {snapshot.error}")
            elif snapshot.listening:
                logger.info(f"[{snapshot.phase.name}] {snapshot.display_value:02d}")

    def _handle_shutdown(self) -> None:
        logger.info("Shutdown signal received")
        self.shutdown_event.set()

    async def cleanup(self) -> None:
        """Clean up resources."""
        logger.info("Cleaning up...")

        if self._coach:
            self._coach.stop()

        if self._dashboard is not None:
            self._dashboard.close()

        logger.info("Shutdown complete")


def list_devices() -> None:
    from silence_coach.audio.devices import list_input_devices

    devices = list_input_devices()
    if not devices:
        print("No input devices found")
    for device in devices:
        print(f"{device.id}\t{device.label}")


async def run_app(config: AppConfig) -> None:
    """Run the main application."""
    app = CoachApp(config, start_listening=not config.web_ui.enabled)
    await app.setup()
    await app.run()


def main(argv: list[str] | None = None):
    args = parse_args(argv)
    config = load_config(config_path=args.config)

    # Apply CLI overrides
    if args.device:
        config.audio.device = args.device
    if args.port:
        config.web_ui.port = args.port
    if args.web is not None:
        config.web_ui.enabled = args.web
    if args.log_level:
        config.logging.level = args.log_level

    setup_logging(config.logging.level, config.logging.file)

    if args.dry_run:
        logger.info(f"Config loaded: {config}")
        print("Dry run OK - config valid")
        return

    if args.list_devices:
        list_devices()
        return

    asyncio.run(run_app(config))


if __name__ == "__main__":
    main()

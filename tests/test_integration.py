"""Integration tests for the full application lifecycle."""

import asyncio
import json

import yaml

from silence_coach.config import AppConfig
from silence_coach.main import CoachApp, main, parse_args
from silence_coach.settings import SETTINGS_KEY
from silence_coach.state_machine import Phase


def make_config(tmp_path, **audio):
    config = AppConfig()
    config.web_ui.enabled = False
    config.web_ui.poll_interval_sec = 0.01
    config.settings.path = str(tmp_path / "settings.yaml")
    for key, value in audio.items():
        setattr(config.audio, key, value)
    return config


async def test_coach_app_setup(tmp_path, fake_stream, devices):
    """CoachApp should set up headless without touching real audio."""
    app = CoachApp(make_config(tmp_path))
    await app.setup(stream_factory=fake_stream, list_devices=lambda: devices)

    assert app.coach is not None
    assert app.coach.devices == devices
    assert app.coach.machine.phase == Phase.LISTENING
    assert fake_stream.instances == []

    await app.cleanup()


async def test_configured_device_is_persisted(tmp_path, fake_stream, devices):
    app = CoachApp(make_config(tmp_path, device="USB Mic"))
    await app.setup(stream_factory=fake_stream, list_devices=lambda: devices)

    data = yaml.safe_load((tmp_path / "settings.yaml").read_text())
    assert json.loads(data[SETTINGS_KEY])["selectedDeviceId"] == "USB Mic"

    await app.cleanup()


async def test_unknown_configured_device_falls_back(tmp_path, fake_stream, devices):
    app = CoachApp(make_config(tmp_path, device="Unplugged Headset"))
    await app.setup(stream_factory=fake_stream, list_devices=lambda: devices)

    assert app.coach.settings.selected_device_id == "default"
    data = yaml.safe_load((tmp_path / "settings.yaml").read_text())
    assert json.loads(data[SETTINGS_KEY])["selectedDeviceId"] == "default"

    await app.cleanup()


async def test_run_listens_until_shutdown(tmp_path, fake_stream, devices):
    app = CoachApp(make_config(tmp_path), start_listening=True)
    await app.setup(stream_factory=fake_stream, list_devices=lambda: devices)

    task = asyncio.create_task(app.run())
    await asyncio.sleep(0.05)
    assert app.coach.listening
    assert fake_stream.instances[0].started

    app.shutdown_event.set()
    await asyncio.wait_for(task, timeout=1.0)
    assert not app.coach.listening
    assert fake_stream.instances[0].closed


async def test_run_returns_when_capture_fails(tmp_path, devices):
    def broken(**kwargs):
        raise OSError("No input device")

    app = CoachApp(make_config(tmp_path), start_listening=True)
    await app.setup(stream_factory=broken, list_devices=lambda: devices)

    await asyncio.wait_for(app.run(), timeout=1.0)
    assert app.coach.error == "Error accessing microphone: No input device"


async def test_dispatch_from_worker_thread(tmp_path, fake_stream, devices):
    """UI callbacks run on worker threads and must hop onto the loop."""
    app = CoachApp(make_config(tmp_path))
    await app.setup(stream_factory=fake_stream, list_devices=lambda: devices)

    await asyncio.to_thread(app.dispatch, "set_threshold", "0.4")
    assert app.coach.settings.threshold == 0.4

    started = await asyncio.to_thread(app.dispatch, "start")
    assert started is True
    assert app.coach.listening

    await app.cleanup()


def test_parse_args():
    args = parse_args(["--no-web", "--device", "2", "--port", "9000"])
    assert args.web is False
    assert args.device == "2"
    assert args.port == 9000

    assert parse_args([]).web is None


def test_dry_run(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    main(["--dry-run", "--no-web"])
    assert "Dry run OK" in capsys.readouterr().out

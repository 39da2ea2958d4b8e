"""Tests for persisted settings and boundary coercion."""

import json

import pytest
import yaml

from silence_coach.settings import (
    SETTINGS_KEY,
    MemoryBackend,
    Settings,
    SettingsStore,
    YamlFileBackend,
    coerce_silence_duration,
    coerce_threshold,
    coerce_visual_delay,
)


def test_defaults():
    settings = Settings()
    assert settings.threshold == 0.1
    assert settings.silence_duration == 10
    assert settings.visual_delay == 2
    assert settings.count_backwards is True
    assert settings.selected_device_id == "default"


def test_load_empty_store_gives_defaults():
    store = SettingsStore(MemoryBackend())
    assert store.load() == Settings()


def test_round_trip_through_yaml_file(tmp_path):
    path = tmp_path / "settings.yaml"
    store = SettingsStore(YamlFileBackend(path))
    saved = Settings(threshold=0.25, silence_duration=20, visual_delay=0,
                     count_backwards=False, selected_device_id="USB Mic")
    store.save(saved)

    data = yaml.safe_load(path.read_text())
    assert list(data) == [SETTINGS_KEY]
    assert json.loads(data[SETTINGS_KEY])["silenceDuration"] == 20

    assert SettingsStore(YamlFileBackend(path)).load() == saved


def test_record_uses_camel_case_keys():
    backend = MemoryBackend()
    SettingsStore(backend).save(Settings())
    assert set(json.loads(backend.data[SETTINGS_KEY])) == {
        "threshold", "silenceDuration", "visualDelay", "countBackwards", "selectedDeviceId",
    }


def test_missing_fields_use_defaults():
    backend = MemoryBackend({SETTINGS_KEY: json.dumps({"threshold": 0.3})})
    settings = SettingsStore(backend).load()
    assert settings.threshold == 0.3
    assert settings.silence_duration == 10
    assert settings.count_backwards is True


def test_malformed_fields_use_defaults():
    blob = json.dumps({
        "threshold": "loud",
        "silenceDuration": 500,
        "visualDelay": 3,
        "countBackwards": None,
        "selectedDeviceId": "USB Mic",
    })
    settings = SettingsStore(MemoryBackend({SETTINGS_KEY: blob})).load()
    assert settings.threshold == 0.1
    assert settings.silence_duration == 10
    assert settings.visual_delay == 3
    assert settings.count_backwards is True
    assert settings.selected_device_id == "USB Mic"


@pytest.mark.parametrize("blob", ["{not json", "[1, 2, 3]", "42"])
def test_corrupt_blob_falls_back_to_defaults(blob):
    settings = SettingsStore(MemoryBackend({SETTINGS_KEY: blob})).load()
    assert settings == Settings()


def test_corrupt_yaml_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("key: [unclosed")
    assert SettingsStore(YamlFileBackend(path)).load() == Settings()


def test_save_overwrites_whole_record():
    backend = MemoryBackend()
    store = SettingsStore(backend)
    store.save(Settings(threshold=0.5))
    store.save(Settings(visual_delay=5))
    stored = json.loads(backend.data[SETTINGS_KEY])
    assert stored["threshold"] == 0.1
    assert stored["visualDelay"] == 5


def test_yaml_backend_keeps_other_keys(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump({"other": "value"}))
    YamlFileBackend(path).write(SETTINGS_KEY, "{}")
    data = yaml.safe_load(path.read_text())
    assert data["other"] == "value"
    assert data[SETTINGS_KEY] == "{}"


def test_silence_config_from_settings():
    config = Settings(threshold=0.2, silence_duration=7, visual_delay=1,
                      count_backwards=False).silence_config()
    assert config.threshold == 0.2
    assert config.silence_duration == 7
    assert config.visual_delay == 1
    assert config.count_backwards is False


class TestCoercion:
    def test_threshold_parsed_and_clamped(self):
        assert coerce_threshold("0.35", 0.1) == 0.35
        assert coerce_threshold(0.001, 0.1) == 0.01
        assert coerce_threshold(3, 0.1) == 1.0

    def test_threshold_unparseable_keeps_last_valid(self):
        assert coerce_threshold("abc", 0.2) == 0.2
        assert coerce_threshold(None, 0.2) == 0.2
        assert coerce_threshold(float("nan"), 0.2) == 0.2

    def test_silence_duration(self):
        assert coerce_silence_duration("15", 10) == 15
        assert coerce_silence_duration(0, 10) == 1
        assert coerce_silence_duration(600, 10) == 60
        assert coerce_silence_duration("", 10) == 10
        assert coerce_silence_duration("ten", 12) == 12

    def test_visual_delay(self):
        assert coerce_visual_delay(4, 2) == 4
        assert coerce_visual_delay(-3, 2) == 0
        assert coerce_visual_delay(99, 2) == 10
        assert coerce_visual_delay("x", 2) == 2

    def test_slider_floats_accepted(self):
        assert coerce_silence_duration(12.0, 10) == 12
        assert coerce_visual_delay(3.0, 2) == 3

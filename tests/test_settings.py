"""Tests for recorder settings and their persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from wayland_recorder.settings import RecorderSettings, SettingsStore, default_settings_path


def test_defaults_match_documented_values() -> None:
    settings = RecorderSettings()

    assert settings.codec == "h264"
    assert settings.container == "mp4"
    assert settings.buffer_duration == 30
    assert settings.segment_duration == 5
    assert settings.retention_window == pytest.approx(35.0)
    assert settings.extension == ".mp4"
    assert settings.clip_mode is False


def test_values_are_normalised() -> None:
    settings = RecorderSettings(codec=" VP9 ", container=".WEBM", cursor_mode="Hidden", temp_dir=" ")

    assert settings.codec == "vp9"
    assert settings.container == "webm"
    assert settings.cursor_mode == "hidden"
    assert settings.temp_dir is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"codec": "av1"},
        {"container": "avi"},
        {"cursor_mode": "sparkly"},
        {"buffer_duration": 0},
        {"segment_duration": -1},
        {"quality": -5},
        {"codec": "x264", "quality": 500},
        {"encoder_speed": -1},
    ],
)
def test_invalid_values_are_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        RecorderSettings(**overrides)


def test_resolved_output_path_uses_container(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    settings = RecorderSettings(container="mkv")

    resolved = settings.resolved_output_path()

    assert resolved.parent == tmp_path / "Videos" / "recordings"
    assert resolved.name.startswith("recording-")
    assert resolved.suffix == ".mkv"


def test_replace_ignores_unset_values() -> None:
    settings = RecorderSettings(codec="vp8")

    updated = settings.replace(codec=None, clip_mode=True, buffer_duration=60)

    assert updated.codec == "vp8"
    assert updated.clip_mode is True
    assert updated.retention_window == pytest.approx(65.0)


def test_from_dict_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError, match="Unknown settings"):
        RecorderSettings.from_dict({"codec": "h264", "frobnicate": True})


def test_store_round_trip(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "config" / "settings.json")
    settings = RecorderSettings(codec="vp9", container="webm", clip_mode=True, hotkey="alt+z")

    store.save(settings)
    loaded = store.load()

    assert loaded == settings
    payload = json.loads(store.path.read_text(encoding="utf-8"))
    assert payload["hotkey"] == "alt+z"


def test_store_defaults_when_missing(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "missing.json")

    assert store.load() == RecorderSettings()


def test_store_reports_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid settings JSON"):
        SettingsStore(path).load()


def test_default_settings_path_honours_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    assert default_settings_path() == tmp_path / "wayland-recorder" / "settings.json"


def test_numeric_fields_are_coerced_from_strings() -> None:
    settings = RecorderSettings.from_dict({"buffer_duration": "45", "quality": "2000000"})

    assert settings.buffer_duration == 45
    assert settings.quality == 2_000_000
    assert settings.retention_window == pytest.approx(50.0)


@pytest.mark.parametrize("value", ["soon", None, [30]])
def test_non_numeric_durations_are_rejected(value: object) -> None:
    with pytest.raises(ValueError, match="Buffer duration must be an integer"):
        RecorderSettings.from_dict({"buffer_duration": value})

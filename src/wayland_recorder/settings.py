"""Recorder configuration structures and their JSON persistence."""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from .segments import retention_window

SUPPORTED_CODECS: tuple[str, ...] = ("vp8", "vp9", "h264", "x264")
SUPPORTED_CONTAINERS: tuple[str, ...] = ("webm", "mp4", "mkv")
CURSOR_MODES: tuple[str, ...] = ("hidden", "embedded", "metadata")


def default_output_path(container: str = "mp4", *, directory: Path | None = None) -> Path:
    """Return a timestamped recording path in the user's video directory."""

    base = directory or Path.home() / "Videos" / "recordings"
    stamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
    return base / f"recording-{stamp}.{container}"


def default_settings_path() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME")
    root = Path(config_home) if config_home else Path.home() / ".config"
    return root / "wayland-recorder" / "settings.json"


@dataclass(slots=True)
class RecorderSettings:
    """User configurable options for a recording session."""

    output_path: str | None = None
    codec: str = "h264"
    container: str = "mp4"
    encoder_speed: int = 6
    quality: int = 5_000_000
    audio_monitor: bool = True
    audio_mic: bool = True
    clip_mode: bool = False
    buffer_duration: int = 30
    segment_duration: int = 5
    temp_dir: str | None = None
    notifications: bool = True
    cursor_mode: str = "embedded"
    hotkey: str | None = None

    def __post_init__(self) -> None:
        for field_name in ("encoder_speed", "quality", "buffer_duration", "segment_duration"):
            value = getattr(self, field_name)
            try:
                setattr(self, field_name, int(value))
            except (TypeError, ValueError) as exc:
                label = field_name.replace("_", " ").capitalize()
                raise ValueError(f"{label} must be an integer") from exc
        self.codec = str(self.codec).strip().lower()
        self.container = str(self.container).strip().lower().lstrip(".")
        self.cursor_mode = str(self.cursor_mode).strip().lower()
        if self.codec not in SUPPORTED_CODECS:
            raise ValueError(
                f"Unsupported codec: {self.codec} (use: {', '.join(SUPPORTED_CODECS)})"
            )
        if self.container not in SUPPORTED_CONTAINERS:
            raise ValueError(
                f"Unsupported container: {self.container} (use: {', '.join(SUPPORTED_CONTAINERS)})"
            )
        if self.cursor_mode not in CURSOR_MODES:
            raise ValueError(
                f"Invalid cursor mode: {self.cursor_mode} (use: {', '.join(CURSOR_MODES)})"
            )
        if self.encoder_speed < 0:
            raise ValueError("Encoder speed must not be negative")
        if self.quality < 0:
            raise ValueError("Quality must not be negative")
        if self.codec in {"h264", "x264"} and 0 < self.quality < 1000:
            raise ValueError("Quality for h264/x264 must be >= 1000 bps")
        if self.buffer_duration <= 0:
            raise ValueError("Buffer duration must be positive")
        if self.segment_duration <= 0:
            raise ValueError("Segment duration must be positive")
        if self.output_path is not None and not str(self.output_path).strip():
            self.output_path = None
        if self.temp_dir is not None and not str(self.temp_dir).strip():
            self.temp_dir = None

    @property
    def retention_window(self) -> float:
        return retention_window(self.buffer_duration, self.segment_duration)

    @property
    def extension(self) -> str:
        return f".{self.container}"

    def resolved_output_path(self) -> Path:
        if self.output_path:
            return Path(self.output_path).expanduser()
        return default_output_path(self.container)

    def replace(self, **changes: Any) -> "RecorderSettings":
        data = self.to_dict()
        data.update({key: value for key, value in changes.items() if value is not None})
        return RecorderSettings.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RecorderSettings":
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(unknown)}")
        return cls(**{key: payload[key] for key in payload if key in known})


class SettingsStore:
    """Simple JSON backed persistence for :class:`RecorderSettings`."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else default_settings_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RecorderSettings:
        if not self._path.exists():
            return RecorderSettings()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid settings JSON in {self._path}") from exc
        if not isinstance(raw, dict):
            raise ValueError(f"Settings in {self._path} must be a JSON object")
        return RecorderSettings.from_dict(raw)

    def save(self, settings: RecorderSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = settings.to_dict()
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


__all__ = [
    "CURSOR_MODES",
    "RecorderSettings",
    "SUPPORTED_CODECS",
    "SUPPORTED_CONTAINERS",
    "SettingsStore",
    "default_output_path",
    "default_settings_path",
]

"""Command-line entry point for the recorder."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Sequence

from .controller import RecorderError, RecordingController
from .pipeline import PipelineError, build_command
from .settings import CURSOR_MODES, SUPPORTED_CODECS, SUPPORTED_CONTAINERS, RecorderSettings, SettingsStore
from .signals import RecorderNotFoundError, default_pid_file, find_recording_process, send_clip_signal
from .version import APP_VERSION

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the recorder CLI."""

    parser = argparse.ArgumentParser(
        prog="wayland-recorder",
        description="Record your screen on Wayland",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Settings file (default: $XDG_CONFIG_HOME/wayland-recorder/settings.json).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Start recording")
    record.add_argument(
        "--node-id",
        type=int,
        required=True,
        help="PipeWire node id of the screen-cast stream to record.",
    )
    record.add_argument("-o", "--output", default=None, help="Output file path")
    record.add_argument("--codec", choices=SUPPORTED_CODECS, default=None, help="Video codec")
    record.add_argument("--container", choices=SUPPORTED_CONTAINERS, default=None, help="Container format")
    record.add_argument("-c", "--cursor", choices=CURSOR_MODES, default=None, help="Cursor mode")
    record.add_argument(
        "--speed",
        type=int,
        default=None,
        help="Encoder speed/deadline (higher = better quality, slower)",
    )
    record.add_argument(
        "--quality",
        type=int,
        default=None,
        help="Target bitrate in bits/second (0=codec default)",
    )
    record.add_argument(
        "--audio-monitor",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Record system audio (monitor)",
    )
    record.add_argument(
        "--audio-mic",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Record microphone audio",
    )
    record.add_argument(
        "--clip-mode",
        action="store_true",
        help="Buffer recent segments and save clips when signalled",
    )
    record.add_argument(
        "--buffer-duration",
        type=int,
        default=None,
        help="Seconds of recording kept available for clips",
    )
    record.add_argument(
        "--segment-duration",
        type=int,
        default=None,
        help="Seconds of recording per segment file",
    )
    record.add_argument("--temp-dir", default=None, help="Directory for segments (default: system temp)")
    record.add_argument("--no-notifications", action="store_true", help="Disable notifications")

    clip = subparsers.add_parser("clip", help="Ask the running clip-mode recorder to save a clip")
    clip.add_argument("--pid-file", type=Path, default=None, help="PID file written by the recorder")

    show = subparsers.add_parser("settings", help="Print the effective settings")
    show.add_argument("--json", action="store_true", help="Emit settings as JSON.")
    return parser


def settings_from_args(args: argparse.Namespace, base: RecorderSettings) -> RecorderSettings:
    """Overlay command-line options on the stored settings."""

    changes = {
        "output_path": args.output,
        "codec": args.codec,
        "container": args.container,
        "cursor_mode": args.cursor,
        "encoder_speed": args.speed,
        "quality": args.quality,
        "audio_monitor": args.audio_monitor,
        "audio_mic": args.audio_mic,
        "buffer_duration": args.buffer_duration,
        "segment_duration": args.segment_duration,
        "temp_dir": args.temp_dir,
    }
    if args.clip_mode:
        changes["clip_mode"] = True
    if args.no_notifications:
        changes["notifications"] = False
    return base.replace(**changes)


def segment_directory(settings: RecorderSettings, pid: int | None = None) -> Path:
    root = Path(settings.temp_dir).expanduser() if settings.temp_dir else Path(tempfile.gettempdir())
    return root / f"wayland-recorder-{pid if pid is not None else os.getpid()}"


def run_record(args: argparse.Namespace, store: SettingsStore) -> int:
    settings = settings_from_args(args, store.load())
    output_path = settings.resolved_output_path()
    segment_dir = segment_directory(settings) if settings.clip_mode else None
    command = build_command(
        args.node_id, settings, output_path=output_path, segment_dir=segment_dir
    )
    logger.debug("Encoder command: %s", " ".join(command))
    controller = RecordingController(
        command,
        settings,
        output_path=output_path,
        segment_dir=segment_dir,
        pid_file=default_pid_file() if settings.clip_mode else None,
        handle_signals=True,
    )
    print(f"Recording stream {args.node_id}")
    print("Press Ctrl+C to stop")
    outcome = asyncio.run(controller.run())
    print(outcome.describe())
    if outcome.clips:
        print(f"Saved {len(outcome.clips)} clip(s)")
    return 0 if outcome.ok else 1


def run_clip(args: argparse.Namespace, store: SettingsStore) -> int:
    try:
        pid = find_recording_process(args.pid_file)
    except RecorderNotFoundError as exc:
        print(f"Failed to find recording process: {exc}", file=sys.stderr)
        print("Is the recording process running with --clip-mode?", file=sys.stderr)
        return 1
    try:
        send_clip_signal(pid, notifications=store.load().notifications)
    except OSError as exc:
        print(f"Failed to send signal to process {pid}: {exc}", file=sys.stderr)
        return 1
    print(f"Clip signal sent to process {pid}")
    return 0


def run_settings(args: argparse.Namespace, store: SettingsStore) -> int:
    settings = store.load()
    payload = settings.to_dict()
    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0
    print(f"Settings file: {store.path}")
    for key in sorted(payload):
        print(f" - {key}: {payload[key]}")
    print(f" - retention window: {settings.retention_window:g}s")
    return 0


def run(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )
    store = SettingsStore(args.settings)
    handlers = {"record": run_record, "clip": run_clip, "settings": run_settings}
    try:
        return handlers[args.command](args, store)
    except (ValueError, PipelineError, RecorderError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by the ``wayland-recorder`` script and ``python -m``."""

    return run(argv)


__all__ = [
    "build_parser",
    "main",
    "run",
    "segment_directory",
    "settings_from_args",
]


if __name__ == "__main__":  # pragma: no cover - module behaviour
    sys.exit(main())

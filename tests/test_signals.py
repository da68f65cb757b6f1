"""Tests for PID files, recorder discovery and clip signalling."""

from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path

import pytest

from wayland_recorder import signals
from wayland_recorder.signals import (
    CLIP_SIGNAL,
    RecorderNotFoundError,
    default_pid_file,
    find_recording_process,
    install_handlers,
    looks_like_clip_recorder,
    notifications_enabled,
    remove_handlers,
    remove_pid_file,
    send_clip_signal,
    write_pid_file,
)


def _fake_process(proc_root: Path, pid: int, *argv: str) -> None:
    entry = proc_root / str(pid)
    entry.mkdir(parents=True)
    (entry / "cmdline").write_bytes(b"\0".join(part.encode() for part in argv) + b"\0")


def test_pid_file_round_trip(tmp_path: Path) -> None:
    path = write_pid_file(tmp_path / "run" / "recorder.pid", 1234)

    assert path.read_text(encoding="utf-8") == "1234\n"
    remove_pid_file(path)
    assert not path.exists()
    remove_pid_file(path)


def test_write_pid_file_defaults_to_current_process(tmp_path: Path) -> None:
    path = write_pid_file(tmp_path / "recorder.pid")

    assert int(path.read_text(encoding="utf-8")) == os.getpid()


def test_default_pid_file_uses_runtime_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))

    assert default_pid_file() == tmp_path / "wayland-recorder.pid"


def test_looks_like_clip_recorder_matches_arguments(tmp_path: Path) -> None:
    _fake_process(tmp_path, 10, "/usr/bin/wayland-recorder", "record", "--node-id", "5", "--clip-mode")
    _fake_process(tmp_path, 11, "/usr/bin/wayland-recorder", "record", "--node-id", "5")
    _fake_process(tmp_path, 12, "python3", "-m", "wayland_recorder", "record", "--clip-mode")
    _fake_process(tmp_path, 13, "vim", "wayland-recorder-notes.txt", "record", "--clip-mode")

    assert looks_like_clip_recorder(10, proc_root=tmp_path)
    assert not looks_like_clip_recorder(11, proc_root=tmp_path)
    assert looks_like_clip_recorder(12, proc_root=tmp_path)
    assert not looks_like_clip_recorder(13, proc_root=tmp_path)
    assert not looks_like_clip_recorder(99, proc_root=tmp_path)


def test_find_recording_process_prefers_pid_file(tmp_path: Path) -> None:
    proc_root = tmp_path / "proc"
    _fake_process(proc_root, 4000020, "wayland-recorder", "record", "--clip-mode")
    _fake_process(proc_root, 4000030, "wayland-recorder", "record", "--clip-mode")
    pid_file = write_pid_file(tmp_path / "recorder.pid", 4000030)

    assert find_recording_process(pid_file, proc_root=proc_root) == 4000030


def test_find_recording_process_accepts_clip_mode_from_settings(tmp_path: Path) -> None:
    proc_root = tmp_path / "proc"
    _fake_process(proc_root, 4000060, "/usr/bin/wayland-recorder", "record", "--node-id", "5")
    pid_file = write_pid_file(tmp_path / "recorder.pid", 4000060)

    assert find_recording_process(pid_file, proc_root=proc_root) == 4000060
    assert not looks_like_clip_recorder(4000060, proc_root=proc_root)


def test_find_recording_process_ignores_stale_pid_file(tmp_path: Path) -> None:
    proc_root = tmp_path / "proc"
    _fake_process(proc_root, 4000020, "wayland-recorder", "record", "--clip-mode")
    _fake_process(proc_root, 4000021, "sleep", "100")
    pid_file = write_pid_file(tmp_path / "recorder.pid", 4000021)

    assert find_recording_process(pid_file, proc_root=proc_root) == 4000020


def test_find_recording_process_reports_missing_recorder(tmp_path: Path) -> None:
    proc_root = tmp_path / "proc"
    _fake_process(proc_root, 4000020, "wayland-recorder", "record", "--node-id", "4")
    (proc_root / "self").mkdir()

    with pytest.raises(RecorderNotFoundError, match="--clip-mode"):
        find_recording_process(tmp_path / "missing.pid", proc_root=proc_root)


def test_notifications_follow_recorder_flags(tmp_path: Path) -> None:
    _fake_process(tmp_path, 40, "wayland-recorder", "record", "--clip-mode", "--no-notifications")
    _fake_process(tmp_path, 41, "wayland-recorder", "record", "--clip-mode")

    assert notifications_enabled(40, proc_root=tmp_path) is False
    assert notifications_enabled(41, proc_root=tmp_path) is True
    assert notifications_enabled(41, False, proc_root=tmp_path) is False


def test_send_clip_signal_notifies(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _fake_process(tmp_path, 50, "wayland-recorder", "record", "--clip-mode")
    sent: list[tuple[int, int]] = []
    notes: list[tuple[str, str]] = []
    monkeypatch.setattr(signals.os, "kill", lambda pid, signum: sent.append((pid, signum)))
    monkeypatch.setattr(signals, "notify", lambda summary, body: notes.append((summary, body)))

    send_clip_signal(50, proc_root=tmp_path)
    send_clip_signal(50, notifications=False, proc_root=tmp_path)

    assert sent == [(50, CLIP_SIGNAL), (50, CLIP_SIGNAL)]
    assert notes == [("wayland-recorder", "New clip!")]


def test_notify_is_skipped_without_notify_send(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(signals.shutil, "which", lambda name: None)

    def _unexpected(*args, **kwargs):
        raise AssertionError("notify-send should not run")

    monkeypatch.setattr(signals.subprocess, "run", _unexpected)

    signals.notify("title", "body")


def test_install_handlers_routes_signals_through_loop() -> None:
    async def _exercise() -> list[str]:
        loop = asyncio.get_running_loop()
        received: list[str] = []
        ready = asyncio.Event()

        def _on_clip() -> None:
            received.append("clip")
            ready.set()

        installed = install_handlers(loop, {CLIP_SIGNAL: _on_clip})
        try:
            os.kill(os.getpid(), CLIP_SIGNAL)
            await asyncio.wait_for(ready.wait(), timeout=5)
        finally:
            remove_handlers(loop, installed)
        assert installed == [signal.SIGUSR1]
        return received

    assert asyncio.run(_exercise()) == ["clip"]

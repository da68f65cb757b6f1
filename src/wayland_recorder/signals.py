"""OS signal plumbing between recorder processes."""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Iterable, Mapping

logger = logging.getLogger(__name__)

CLIP_SIGNAL = signal.SIGUSR1
STOP_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)
PID_FILE_NAME = "wayland-recorder.pid"
PROC_ROOT = Path("/proc")


class RecorderNotFoundError(RuntimeError):
    """Raised when no clip-mode recorder process can be located."""


def default_pid_file() -> Path:
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    root = Path(runtime_dir) if runtime_dir else Path(tempfile.gettempdir())
    return root / PID_FILE_NAME


def write_pid_file(path: Path, pid: int | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{pid if pid is not None else os.getpid()}\n", encoding="utf-8")
    return path


def remove_pid_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Unable to remove PID file %s: %s", path, exc)


def install_handlers(
    loop: asyncio.AbstractEventLoop,
    handlers: Mapping[signal.Signals, Callable[[], None]],
) -> list[signal.Signals]:
    """Route ``handlers`` through ``loop`` and return the signals that were installed."""

    installed: list[signal.Signals] = []
    for signum, callback in handlers.items():
        try:
            loop.add_signal_handler(signum, callback)
        except (NotImplementedError, RuntimeError, ValueError) as exc:
            logger.warning("Unable to handle %s: %s", signum.name, exc)
            continue
        installed.append(signum)
    return installed


def remove_handlers(loop: asyncio.AbstractEventLoop, signals: Iterable[signal.Signals]) -> None:
    for signum in signals:
        loop.remove_signal_handler(signum)


def _read_cmdline(pid: int, proc_root: Path = PROC_ROOT) -> list[str]:
    try:
        raw = (proc_root / str(pid) / "cmdline").read_bytes()
    except OSError:
        return []
    return [part.decode("utf-8", errors="replace") for part in raw.split(b"\0") if part]


def _is_recorder(argv: list[str]) -> bool:
    launched = any(
        Path(part).name == "wayland-recorder" or part == "wayland_recorder" for part in argv
    )
    return launched and "record" in argv


def looks_like_recorder(pid: int, *, proc_root: Path = PROC_ROOT) -> bool:
    return _is_recorder(_read_cmdline(pid, proc_root))


def looks_like_clip_recorder(pid: int, *, proc_root: Path = PROC_ROOT) -> bool:
    """Return ``True`` when ``pid`` is a recorder started with ``--clip-mode``.

    Recorders that enable clip mode through their settings file can only be
    found through the PID file they write.
    """

    argv = _read_cmdline(pid, proc_root)
    return _is_recorder(argv) and "--clip-mode" in argv


def pid_from_file(path: Path, *, proc_root: Path = PROC_ROOT) -> int | None:
    try:
        pid = int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None
    if not looks_like_recorder(pid, proc_root=proc_root):
        logger.debug("PID file %s does not point to a running recorder", path)
        return None
    return pid


def pid_from_proc_scan(*, proc_root: Path = PROC_ROOT) -> int | None:
    try:
        entries = sorted(proc_root.iterdir())
    except OSError:
        return None
    own_pid = os.getpid()
    for entry in entries:
        if not entry.name.isdigit():
            continue
        pid = int(entry.name)
        if pid != own_pid and looks_like_clip_recorder(pid, proc_root=proc_root):
            return pid
    return None


def find_recording_process(
    pid_file: Path | None = None, *, proc_root: Path = PROC_ROOT
) -> int:
    """Return the PID of the running clip-mode recorder."""

    pid = pid_from_file(pid_file or default_pid_file(), proc_root=proc_root)
    if pid is None:
        pid = pid_from_proc_scan(proc_root=proc_root)
    if pid is None:
        raise RecorderNotFoundError("no clip-mode recording found; start with --clip-mode")
    return pid


def notifications_enabled(pid: int, default: bool = True, *, proc_root: Path = PROC_ROOT) -> bool:
    if "--no-notifications" in _read_cmdline(pid, proc_root):
        return False
    return default


def notify(summary: str, body: str, *, timeout_ms: int = 5000) -> None:
    binary = shutil.which("notify-send")
    if not binary:
        logger.debug("notify-send not available; skipping notification")
        return
    try:
        subprocess.run(
            [binary, summary, body, "-u", "normal", "-t", str(timeout_ms)],
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.debug("notify-send failed: %s", exc)


def send_clip_signal(pid: int, *, notifications: bool = True, proc_root: Path = PROC_ROOT) -> None:
    """Ask the recorder running as ``pid`` to save a clip."""

    os.kill(pid, CLIP_SIGNAL)
    if notifications and notifications_enabled(pid, proc_root=proc_root):
        notify("wayland-recorder", "New clip!")


__all__ = [
    "CLIP_SIGNAL",
    "PID_FILE_NAME",
    "RecorderNotFoundError",
    "STOP_SIGNALS",
    "default_pid_file",
    "find_recording_process",
    "install_handlers",
    "looks_like_clip_recorder",
    "looks_like_recorder",
    "notifications_enabled",
    "notify",
    "pid_from_file",
    "pid_from_proc_scan",
    "remove_handlers",
    "remove_pid_file",
    "send_clip_signal",
    "write_pid_file",
]

"""Recording session controller coordinating the encoder, segments and clips."""
from __future__ import annotations

import asyncio
import logging
import shutil
import signal
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

from .clips import ClipAssembler, ClipAssemblyError, ClipNamer
from .discovery import SegmentPoller
from .segments import Clock, Segment, SegmentStore
from .settings import RecorderSettings
from .signals import (
    CLIP_SIGNAL,
    STOP_SIGNALS,
    install_handlers,
    remove_handlers,
    remove_pid_file,
    write_pid_file,
)

logger = logging.getLogger(__name__)


class RecorderError(RuntimeError):
    """Base class for failures of a recording session."""


class EncoderStartError(RecorderError):
    """Raised when the encoder subprocess could not be launched."""


class ControllerError(RecorderError):
    """Raised when the session cannot be prepared or stopped cleanly."""


class RecorderEvent(str, Enum):
    """Events multiplexed by the controller's main loop."""

    CLIP_TRIGGER = "clip_trigger"
    SHUTDOWN_REQUESTED = "shutdown_requested"
    PROCESS_EXITED = "process_exited"


class StopReason(str, Enum):
    """Why a recording session ended."""

    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class RecordingOutcome:
    """Summary returned once a recording session has ended."""

    reason: StopReason
    returncode: int | None
    clips: list[Path] = field(default_factory=list)
    failed_clips: int = 0

    @property
    def ok(self) -> bool:
        return self.reason is not StopReason.FAILED

    def describe(self) -> str:
        if self.reason is StopReason.STOPPED:
            return "Stopped by request"
        if self.reason is StopReason.COMPLETED:
            return "Done"
        return f"Encoder exited with code {self.returncode}"


class RecordingController:
    """Run one encoder subprocess and react to clip and shutdown events.

    In clip mode a :class:`SegmentPoller` feeds a :class:`SegmentStore`
    sized to ``buffer_duration + segment_duration``; each clip trigger
    snapshots the last ``buffer_duration`` seconds and assembles it in a
    detached task. Whichever terminal event (shutdown request or encoder
    exit) is dequeued first ends the session.
    """

    def __init__(
        self,
        command: Sequence[str],
        settings: RecorderSettings,
        *,
        output_path: Path | None = None,
        segment_dir: Path | None = None,
        assembler: ClipAssembler | None = None,
        clock: Clock = time.time,
        poll_interval: float = 1.0,
        pid_file: Path | None = None,
        handle_signals: bool = False,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self._command = [str(part) for part in command]
        self._settings = settings
        self._output_path = output_path or settings.resolved_output_path()
        self._segment_dir = segment_dir
        self._assembler = assembler or ClipAssembler()
        self._poll_interval = float(poll_interval)
        self._pid_file = pid_file
        self._handle_signals = handle_signals
        self._store = SegmentStore(settings.retention_window, clock=clock)
        self._namer = ClipNamer(self._output_path, settings.container)
        self._events: asyncio.Queue[RecorderEvent] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started = asyncio.Event()
        self._clip_tasks: set[asyncio.Task[None]] = set()
        self._clips: list[Path] = []
        self._failed_clips = 0

    # ------------------------------ properties -----------------------------
    @property
    def clip_mode(self) -> bool:
        return self._settings.clip_mode

    @property
    def store(self) -> SegmentStore:
        return self._store

    @property
    def output_path(self) -> Path:
        return self._output_path

    @property
    def segment_dir(self) -> Path | None:
        return self._segment_dir

    @property
    def pending_clips(self) -> int:
        return len(self._clip_tasks)

    @property
    def clips(self) -> list[Path]:
        return list(self._clips)

    @property
    def failed_clips(self) -> int:
        return self._failed_clips

    # ------------------------------ operations -----------------------------
    def post(self, event: RecorderEvent) -> None:
        """Queue ``event`` for the main loop; safe to call from other threads."""

        loop = self._loop
        if loop is None or loop.is_closed():
            self._events.put_nowait(event)
            return
        loop.call_soon_threadsafe(self._events.put_nowait, event)

    def request_clip(self) -> None:
        self.post(RecorderEvent.CLIP_TRIGGER)

    def request_stop(self) -> None:
        self.post(RecorderEvent.SHUTDOWN_REQUESTED)

    async def wait_started(self) -> None:
        await self._started.wait()

    async def run(self) -> RecordingOutcome:
        """Record until stopped or until the encoder exits."""

        self._loop = asyncio.get_running_loop()
        self._prepare_directories()
        try:
            process = await self._start_encoder()
        except EncoderStartError:
            self._cleanup()
            raise

        installed: list[signal.Signals] = []
        poller: SegmentPoller | None = None
        watcher = asyncio.create_task(self._watch_process(process), name="wayland-recorder-encoder")
        try:
            try:
                if self._handle_signals:
                    handlers = {signum: self.request_stop for signum in STOP_SIGNALS}
                    if self.clip_mode:
                        handlers[CLIP_SIGNAL] = self.request_clip
                    installed = install_handlers(self._loop, handlers)
                if self.clip_mode:
                    assert self._segment_dir is not None
                    if self._pid_file is not None:
                        write_pid_file(self._pid_file)
                    poller = SegmentPoller(
                        self._segment_dir,
                        self._settings.container,
                        self._store,
                        interval=self._poll_interval,
                    )
                    poller.start()
            except OSError as exc:
                await self._abort_encoder(process)
                raise ControllerError(f"unable to start recording session: {exc}") from exc

            if self.clip_mode:
                logger.info(
                    "Clip mode: keeping the last %ds buffered in %s",
                    self._settings.buffer_duration,
                    self._segment_dir,
                )
            else:
                logger.info("Recording to: %s", self._output_path)
            self._started.set()
            outcome = await self._dispatch(process)
        finally:
            if installed:
                remove_handlers(self._loop, installed)
            if poller is not None:
                await poller.aclose()
            if not watcher.done():
                watcher.cancel()
            await self.drain_clips()
            self._cleanup()
        outcome.clips = list(self._clips)
        outcome.failed_clips = self._failed_clips
        return outcome

    async def drain_clips(self) -> None:
        """Wait for clip assemblies still in flight."""

        tasks = list(self._clip_tasks)
        if not tasks:
            return
        logger.info("Waiting for %d clip(s) to finish...", len(tasks))
        await asyncio.gather(*tasks, return_exceptions=True)

    # ----------------------------- implementation --------------------------
    def _prepare_directories(self) -> None:
        try:
            self._output_path.parent.mkdir(parents=True, exist_ok=True)
            if self.clip_mode:
                if self._segment_dir is None:
                    raise ControllerError("clip mode requires a segment directory")
                self._segment_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ControllerError(f"unable to prepare recording directories: {exc}") from exc

    async def _start_encoder(self) -> asyncio.subprocess.Process:
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise EncoderStartError(f"failed to launch {self._command[0]}: {exc}") from exc
        logger.debug("Encoder started with PID %d", process.pid)
        return process

    async def _watch_process(self, process: asyncio.subprocess.Process) -> None:
        await process.wait()
        self._events.put_nowait(RecorderEvent.PROCESS_EXITED)

    async def _dispatch(self, process: asyncio.subprocess.Process) -> RecordingOutcome:
        while True:
            event = await self._events.get()
            if event is RecorderEvent.CLIP_TRIGGER:
                self._handle_clip_trigger()
            elif event is RecorderEvent.SHUTDOWN_REQUESTED:
                return await self._stop_encoder(process)
            elif event is RecorderEvent.PROCESS_EXITED:
                return self._encoder_exited(process)

    def _handle_clip_trigger(self) -> None:
        if not self.clip_mode:
            logger.warning("Clip requested but clip mode is not enabled")
            return
        segments = self._store.recent_segments(self._settings.buffer_duration)
        if not segments:
            logger.warning("Not enough data for a clip yet")
            return
        output = self._namer.next_path()
        task = asyncio.create_task(
            self._assemble_clip(segments, output),
            name=f"wayland-recorder-clip-{self._namer.counter}",
        )
        self._clip_tasks.add(task)
        task.add_done_callback(self._clip_tasks.discard)

    async def _assemble_clip(self, segments: list[Segment], output: Path) -> None:
        try:
            await self._assembler.assemble(segments, output)
        except ClipAssemblyError as exc:
            self._failed_clips += 1
            logger.error("Clip failed: %s", exc)
        except Exception:  # pragma: no cover
            self._failed_clips += 1
            logger.exception("Clip failed unexpectedly for %s", output)
        else:
            self._clips.append(output)
            logger.info("Clip saved to: %s", output)

    async def _stop_encoder(self, process: asyncio.subprocess.Process) -> RecordingOutcome:
        logger.info("Stopping recording and finalizing file...")
        signal_error: Exception | None = None
        try:
            process.send_signal(signal.SIGINT)
        except ProcessLookupError as exc:
            if process.returncode is None:
                signal_error = exc
        returncode = await process.wait()
        if signal_error is not None:
            raise ControllerError(f"unable to signal encoder: {signal_error}") from signal_error
        logger.info("Stopped")
        return RecordingOutcome(StopReason.STOPPED, returncode)

    async def _abort_encoder(
        self, process: asyncio.subprocess.Process, *, grace: float = 5.0
    ) -> None:
        """Stop an encoder whose session failed to start and reap it."""

        if process.returncode is not None:
            return
        try:
            process.send_signal(signal.SIGINT)
            await asyncio.wait_for(process.wait(), timeout=grace)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            logger.warning("Encoder ignored SIGINT; killing it")
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    def _encoder_exited(self, process: asyncio.subprocess.Process) -> RecordingOutcome:
        returncode = process.returncode
        if returncode == 0:
            logger.info("Encoder finished")
            return RecordingOutcome(StopReason.COMPLETED, returncode)
        logger.error("Encoder exited with code %s", returncode)
        return RecordingOutcome(StopReason.FAILED, returncode)

    def _cleanup(self) -> None:
        if not self.clip_mode:
            return
        if self._segment_dir is not None and self._segment_dir.exists():
            try:
                shutil.rmtree(self._segment_dir)
            except OSError as exc:
                logger.warning("Unable to remove segment directory %s: %s", self._segment_dir, exc)
        if self._pid_file is not None:
            remove_pid_file(self._pid_file)


__all__ = [
    "ControllerError",
    "EncoderStartError",
    "RecorderError",
    "RecorderEvent",
    "RecordingController",
    "RecordingOutcome",
    "StopReason",
]

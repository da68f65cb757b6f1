"""Detect finished segment files written by the encoder."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List

from .segments import MIN_SEGMENT_SIZE, SegmentStore

logger = logging.getLogger(__name__)

SEGMENT_PREFIX = "segment_"


def segment_glob(container: str) -> str:
    """Return the glob matching segment files for ``container``."""

    return f"{SEGMENT_PREFIX}*.{container.lstrip('.')}"


def segment_location(directory: Path | str, container: str) -> Path:
    """Return the printf-style location handed to the segmenting muxer."""

    return Path(directory) / f"{SEGMENT_PREFIX}%05d.{container.lstrip('.')}"


class FileState(str, Enum):
    """Tracking state of a candidate segment file."""

    OBSERVED = "observed"
    SEEN = "seen"


@dataclass(slots=True)
class TrackedFile:
    state: FileState
    size: int = 0


class SegmentTracker:
    """Apply the two-tick size stability rule to candidate segment files.

    A file is treated as finished once two consecutive observations report
    the same size and that size is at least ``min_size`` bytes. Registered
    files are remembered as ``SEEN`` and ignored afterwards.
    """

    def __init__(self, store: SegmentStore, *, min_size: int = MIN_SEGMENT_SIZE) -> None:
        self._store = store
        self._min_size = int(min_size)
        self._files: Dict[Path, TrackedFile] = {}
        self._next_sequence = 0

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    def state_of(self, path: Path | str) -> FileState | None:
        tracked = self._files.get(Path(path))
        return tracked.state if tracked is not None else None

    def observe(self, path: Path | str, size: int) -> bool:
        """Record one size observation; return ``True`` when ``path`` was registered."""

        key = Path(path)
        tracked = self._files.get(key)
        if tracked is None:
            self._files[key] = TrackedFile(FileState.OBSERVED, int(size))
            return False
        if tracked.state is FileState.SEEN:
            return False
        if tracked.size == size and size >= self._min_size:
            self._store.add(key, self._next_sequence)
            self._files[key] = TrackedFile(FileState.SEEN)
            self._next_sequence += 1
            return True
        tracked.size = int(size)
        return False

    def scan(self, directory: Path | str, container: str) -> List[Path]:
        """Observe every segment file in ``directory`` and return the newly registered ones."""

        registered: list[Path] = []
        for candidate in sorted(Path(directory).glob(segment_glob(container))):
            tracked = self._files.get(candidate)
            if tracked is not None and tracked.state is FileState.SEEN:
                continue
            try:
                size = candidate.stat().st_size
            except OSError:
                continue
            if self.observe(candidate, size):
                registered.append(candidate)
        return registered


class SegmentPoller:
    """Background task scanning the segment directory on a fixed tick."""

    def __init__(
        self,
        directory: Path | str,
        container: str,
        store: SegmentStore,
        *,
        interval: float = 1.0,
        min_size: int = MIN_SEGMENT_SIZE,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._directory = Path(directory)
        self._container = container
        self._interval = float(interval)
        self._tracker = SegmentTracker(store, min_size=min_size)
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def tracker(self) -> SegmentTracker:
        return self._tracker

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling on the running event loop."""

        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._task = loop.create_task(self._run(), name="wayland-recorder-segment-poller")

    async def aclose(self) -> None:
        """Stop polling and wait for the worker to exit."""

        task = self._task
        if task is None:
            return
        assert self._stop_event is not None
        self._stop_event.set()
        try:
            await task
        finally:
            self._task = None
            self._stop_event = None

    def poll_once(self) -> List[Path]:
        registered = self._tracker.scan(self._directory, self._container)
        for path in registered:
            logger.debug("Segment finished: %s", path.name)
        return registered

    async def _run(self) -> None:
        assert self._stop_event is not None
        loop = asyncio.get_running_loop()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            else:
                break
            try:
                await loop.run_in_executor(None, self.poll_once)
            except Exception:  # pragma: no cover
                logger.exception("Segment scan failed in %s", self._directory)


__all__ = [
    "FileState",
    "SEGMENT_PREFIX",
    "SegmentPoller",
    "SegmentTracker",
    "TrackedFile",
    "segment_glob",
    "segment_location",
]

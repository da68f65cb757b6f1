"""Retention store for segment files produced while recording in clip mode."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Callable, List

logger = logging.getLogger(__name__)

MIN_SEGMENT_SIZE = 1024
"""Smallest file size (bytes) accepted as a finished segment."""


Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class Segment:
    """A finalised chunk of recorded media on disk."""

    path: Path
    start_time: float
    sequence: int

    def age(self, now: float) -> float:
        return now - self.start_time


def retention_window(buffer_duration: float, segment_duration: float) -> float:
    """Return the maximum age a segment may reach before it is evicted."""

    return float(buffer_duration) + float(segment_duration)


class SegmentStore:
    """Ordered, lock protected collection of recently produced segments.

    Segments are kept in discovery order. Every :meth:`add` sweeps the list
    and deletes the files of segments that reached ``retention`` seconds of
    age. There is no timer: a store that stops receiving segments keeps its
    last contents until the next insertion.
    """

    def __init__(self, retention: float, *, clock: Clock = time.time) -> None:
        if retention <= 0:
            raise ValueError("retention must be positive")
        self._retention = float(retention)
        self._clock = clock
        self._segments: list[Segment] = []
        self._lock = Lock()

    @property
    def retention(self) -> float:
        return self._retention

    def __len__(self) -> int:
        with self._lock:
            return len(self._segments)

    def add(self, path: Path | str, sequence: int) -> Segment:
        """Register ``path`` as a finished segment and evict expired ones."""

        segment = Segment(path=Path(path), start_time=self._clock(), sequence=int(sequence))
        with self._lock:
            self._segments.append(segment)
            self._evict(self._clock())
        logger.debug("Registered segment %s (#%d)", segment.path.name, segment.sequence)
        return segment

    def recent_segments(self, duration: float) -> List[Segment]:
        """Return segments that started within the last ``duration`` seconds."""

        with self._lock:
            cutoff = self._clock() - float(duration)
            return [segment for segment in self._segments if segment.start_time > cutoff]

    def snapshot(self) -> List[Segment]:
        with self._lock:
            return list(self._segments)

    def _evict(self, now: float) -> None:
        cutoff = now - self._retention
        kept: list[Segment] = []
        expired: list[Segment] = []
        for segment in self._segments:
            if segment.start_time > cutoff:
                kept.append(segment)
            else:
                expired.append(segment)
        self._segments = kept
        for segment in expired:
            try:
                segment.path.unlink(missing_ok=True)
            except OSError as exc:
                logger.debug("Unable to delete expired segment %s: %s", segment.path, exc)
        if expired:
            logger.debug("Evicted %d expired segment(s)", len(expired))


__all__ = ["Clock", "MIN_SEGMENT_SIZE", "Segment", "SegmentStore", "retention_window"]

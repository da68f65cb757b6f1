"""Assemble retained segments into a standalone clip file."""
from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Iterable, Sequence

import av

from .segments import MIN_SEGMENT_SIZE, Segment

logger = logging.getLogger(__name__)


class ClipAssemblyError(RuntimeError):
    """Raised when a clip could not be produced from the requested segments."""


Concatenator = Callable[[Path, Path], None]


def quote_manifest_path(path: Path | str) -> str:
    """Quote ``path`` for the concat demuxer's ``file`` directive."""

    return "'" + str(path).replace("'", "'\\''") + "'"


def valid_segment_paths(
    segments: Iterable[Segment], *, min_size: int = MIN_SEGMENT_SIZE
) -> list[Path]:
    """Return the paths of ``segments`` that still exist and are large enough."""

    paths: list[Path] = []
    for segment in segments:
        try:
            size = segment.path.stat().st_size
        except OSError:
            logger.debug("Skipping vanished segment %s", segment.path)
            continue
        if size < min_size:
            logger.debug("Skipping undersized segment %s (%d bytes)", segment.path, size)
            continue
        paths.append(segment.path)
    return paths


def write_manifest(paths: Sequence[Path], directory: Path) -> Path:
    """Write a concat manifest listing ``paths`` and return its location."""

    fd, name = tempfile.mkstemp(prefix="concat_", suffix=".txt", dir=str(directory))
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        for path in paths:
            handle.write(f"file {quote_manifest_path(path)}\n")
    return Path(name)


def remux_concat(manifest: Path, output_path: Path) -> None:
    """Concatenate the files listed in ``manifest`` into ``output_path`` without re-encoding."""

    with av.open(str(manifest), format="concat", options={"safe": "0"}) as source:
        inputs = [stream for stream in source.streams if stream.type in ("video", "audio")]
        if not inputs:
            raise ClipAssemblyError("segments contain no audio or video streams")
        with av.open(str(output_path), mode="w") as target:
            mapping = {
                stream.index: target.add_stream_from_template(stream) for stream in inputs
            }
            for packet in source.demux(*inputs):
                # Flush packets carry no timestamps and must not be muxed.
                if packet.dts is None:
                    continue
                packet.stream = mapping[packet.stream.index]
                target.mux(packet)


class ClipAssembler:
    """Validate segment snapshots and concatenate them into clip files."""

    def __init__(
        self,
        *,
        min_segment_size: int = MIN_SEGMENT_SIZE,
        concatenate: Concatenator | None = None,
    ) -> None:
        self._min_segment_size = int(min_segment_size)
        self._concatenate = concatenate or remux_concat

    async def assemble(self, segments: Sequence[Segment], output_path: Path | str) -> Path:
        """Build ``output_path`` from ``segments`` and return it.

        Segments that disappeared or shrank below the minimum size since the
        snapshot was taken are left out. The manifest is always removed.
        """

        if not segments:
            raise ClipAssemblyError("no segments to merge")
        output = Path(output_path)
        paths = valid_segment_paths(segments, min_size=self._min_segment_size)
        if not paths:
            raise ClipAssemblyError("no valid segments remain")
        logger.info("Creating clip from %d segment(s)...", len(paths))
        manifest = write_manifest(paths, paths[0].parent)
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(self._concatenate, manifest, output)
        except ClipAssemblyError:
            _discard(output)
            raise
        except (av.FFmpegError, OSError) as exc:
            _discard(output)
            raise ClipAssemblyError(f"failed to merge segments: {exc}") from exc
        finally:
            _discard(manifest)
        return output


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Unable to remove %s: %s", path, exc)


class ClipNamer:
    """Hand out numbered clip paths derived from the base output path."""

    def __init__(self, base_output: Path | str, container: str) -> None:
        base = Path(base_output)
        self._directory = base.parent
        self._stem = base.stem
        self._extension = "." + container.lstrip(".")
        self._counter = 0

    @property
    def counter(self) -> int:
        return self._counter

    def next_path(self) -> Path:
        while True:
            self._counter += 1
            candidate = self._directory / f"{self._stem}_clip_{self._counter}{self._extension}"
            if not candidate.exists():
                return candidate


__all__ = [
    "ClipAssembler",
    "ClipAssemblyError",
    "ClipNamer",
    "Concatenator",
    "quote_manifest_path",
    "remux_concat",
    "valid_segment_paths",
    "write_manifest",
]

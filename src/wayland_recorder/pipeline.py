"""Build the GStreamer command line that captures a PipeWire stream."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .discovery import segment_location
from .settings import RecorderSettings

GSTREAMER_COMMAND = "gst-launch-1.0"


class PipelineError(RuntimeError):
    """Raised when the requested capture options cannot be expressed as a pipeline."""


@dataclass(frozen=True, slots=True)
class MuxerConfig:
    name: str
    params: tuple[str, ...] = ()


MUXERS: dict[str, MuxerConfig] = {
    "webm": MuxerConfig("webmmux", ("streamable=true",)),
    "mp4": MuxerConfig("mp4mux", ("fragment-duration=1000", "streamable=true", "faststart=true")),
    "mkv": MuxerConfig("matroskamux", ("streamable=true",)),
}


def muxer_for(container: str) -> MuxerConfig:
    try:
        return MUXERS[container]
    except KeyError:
        raise PipelineError(
            f"unsupported container: {container} (use: webm, mp4, or mkv)"
        ) from None


def encoder_args(codec: str, encoder_speed: int, quality: int) -> list[str]:
    if codec in {"vp8", "vp9"}:
        args = ["!", f"{codec}enc", f"deadline={encoder_speed}"]
        if quality > 0:
            args.append(f"target-bitrate={quality}")
        return args
    if codec in {"h264", "x264"}:
        args = ["!", "x264enc", f"speed-preset={encoder_speed}"]
        if quality > 0:
            if quality < 1000:
                raise PipelineError("quality for h264/x264 must be >= 1000 bps")
            args.append(f"bitrate={quality // 1000}")
        return args
    raise PipelineError(f"unsupported codec: {codec} (use: vp8, vp9, h264, or x264)")


def audio_args(settings: RecorderSettings) -> list[str]:
    """Return the audio branch, or nothing when audio is disabled or clip mode is on."""

    if settings.clip_mode or not (settings.audio_monitor or settings.audio_mic):
        return []
    if settings.audio_monitor and settings.audio_mic:
        return [
            "audiomixer", "name=mix",
            "pulsesrc", "device=@DEFAULT_MONITOR@", "!", "queue", "!", "audioconvert", "!", "mix.",
            "pulsesrc", "device=@DEFAULT_SOURCE@", "!", "queue", "!", "audioconvert", "!", "mix.",
            "mix.", "!", "audioresample", "!", "opusenc",
        ]
    device = "@DEFAULT_SOURCE@" if settings.audio_mic else "@DEFAULT_MONITOR@"
    return [
        "pulsesrc", f"device={device}",
        "!", "queue", "!", "audioconvert", "!", "audioresample", "!", "opusenc",
    ]


def build_gstreamer_args(
    node_id: int,
    settings: RecorderSettings,
    *,
    output_path: Path | None = None,
    segment_dir: Path | None = None,
) -> list[str]:
    """Return the ``gst-launch-1.0`` arguments (without the program name)."""

    if node_id <= 0:
        raise PipelineError(f"invalid node ID: {node_id}")
    output = output_path or settings.resolved_output_path()
    muxer = muxer_for(settings.container)

    args = ["-e", "pipewiresrc", f"path={node_id}", "!", "videoconvert", "!", "queue"]
    args.extend(encoder_args(settings.codec, settings.encoder_speed, settings.quality))

    if settings.clip_mode:
        if segment_dir is None:
            raise PipelineError("clip mode requires a segment directory")
        location = segment_location(segment_dir, settings.container)
        max_size_time = settings.segment_duration * 1_000_000_000
        args.extend(
            [
                "!",
                "splitmuxsink",
                f"muxer={muxer.name}",
                f"location={location}",
                f"max-size-time={max_size_time}",
            ]
        )
        return args

    audio = audio_args(settings)
    if audio:
        args.extend(["!", muxer.name, *muxer.params, "name=mux"])
        args.extend(audio)
        args.extend(["!", "mux.", "mux.", "!"])
    else:
        args.extend(["!", muxer.name, *muxer.params, "!"])
    args.extend(["filesink", f"location={output}"])
    return args


def build_command(
    node_id: int,
    settings: RecorderSettings,
    *,
    output_path: Path | None = None,
    segment_dir: Path | None = None,
) -> list[str]:
    return [
        GSTREAMER_COMMAND,
        *build_gstreamer_args(
            node_id, settings, output_path=output_path, segment_dir=segment_dir
        ),
    ]


__all__ = [
    "GSTREAMER_COMMAND",
    "MUXERS",
    "MuxerConfig",
    "PipelineError",
    "audio_args",
    "build_command",
    "build_gstreamer_args",
    "encoder_args",
    "muxer_for",
]

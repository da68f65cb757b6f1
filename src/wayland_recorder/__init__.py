"""Wayland screen recorder with a rolling clip buffer."""

from .clips import ClipAssembler, ClipAssemblyError
from .controller import RecorderEvent, RecordingController, RecordingOutcome, StopReason
from .discovery import SegmentPoller, SegmentTracker
from .segments import Segment, SegmentStore
from .settings import RecorderSettings, SettingsStore
from .version import APP_VERSION

__all__ = [
    "APP_VERSION",
    "ClipAssembler",
    "ClipAssemblyError",
    "RecorderEvent",
    "RecorderSettings",
    "RecordingController",
    "RecordingOutcome",
    "Segment",
    "SegmentPoller",
    "SegmentStore",
    "SegmentTracker",
    "SettingsStore",
    "StopReason",
]

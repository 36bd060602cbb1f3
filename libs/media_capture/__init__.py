"""
Media capture library.

Awaitable audio/video capture over callback-driven platform recorders.
"""

from .capture import MIME_PREFERENCES, CaptureHandle, MediaCaptureAdapter
from .devices import CaptureKind, MediaDevices, MediaRecorder, MediaStream, MediaTrack, RecorderFactory
from .errors import CaptureBusyError, CaptureError, DeviceError, NoDataCapturedError

__all__ = [
    "MIME_PREFERENCES",
    "CaptureHandle",
    "MediaCaptureAdapter",
    "CaptureKind",
    "MediaDevices",
    "MediaRecorder",
    "MediaStream",
    "MediaTrack",
    "RecorderFactory",
    "CaptureBusyError",
    "CaptureError",
    "DeviceError",
    "NoDataCapturedError",
]

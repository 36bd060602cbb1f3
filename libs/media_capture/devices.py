"""
Platform capture primitives.

Mirrors the shape of browser media APIs: a device layer hands out streams made
of tracks, and recorders attached to a stream report chunks through callbacks.
Concrete backends implement these classes; the adapter in `capture.py` only
talks to the abstractions.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Iterable, List, Optional


class CaptureKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class MediaTrack(ABC):
    kind: str = "audio"

    @abstractmethod
    def stop(self) -> None:
        """Release the underlying device."""


class MediaStream:
    def __init__(self, tracks: Iterable[MediaTrack]):
        self._tracks: List[MediaTrack] = list(tracks)

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)


class MediaDevices(ABC):
    @abstractmethod
    async def get_user_media(self, audio: bool, video: bool) -> MediaStream:
        """
        Acquire a stream.

        Raises:
            DeviceError: permission denied, no device, or the device failed to open.
        """


class MediaRecorder(ABC):
    """
    Callback-driven recorder.

    `state` is "inactive" or "recording". Implementations call
    `on_data_available(chunk)` for each chunk, then `on_stop()` once after
    `stop()`, or `on_error(exc)` on a runtime failure. Callbacks may be
    invoked from any thread.
    """

    def __init__(self, stream: MediaStream, mime_type: str = ""):
        self.stream = stream
        self.mime_type = mime_type
        self.state = "inactive"
        self.on_data_available: Optional[Callable[[bytes], None]] = None
        self.on_stop: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[BaseException], None]] = None

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...


class RecorderFactory(ABC):
    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool: ...

    @abstractmethod
    def create(self, stream: MediaStream, mime_type: str = "") -> MediaRecorder:
        """An empty mime_type asks for the platform default encoding."""

"""
Local microphone backend built on sounddevice.

Records PCM frames from the default input device and encodes them as WAV on
stop. Video capture is not available on this backend.
"""

import io
import logging
import threading
from typing import List

import numpy as np
import sounddevice as sd
from scipy.io import wavfile

from .devices import CaptureKind, MediaDevices, MediaRecorder, MediaStream, MediaTrack, RecorderFactory
from .errors import DeviceError

logger = logging.getLogger(__name__)

WAV_MIME = "audio/wav"


class _FrameSink:
    """Collects frames delivered on the PortAudio thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._frames: List[np.ndarray] = []
        self.recording = False

    def feed(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("sounddevice status: %s", status)
        with self._lock:
            if self.recording:
                self._frames.append(indata.copy())

    def begin(self) -> None:
        with self._lock:
            self._frames = []
            self.recording = True

    def drain(self) -> List[np.ndarray]:
        with self._lock:
            self.recording = False
            frames, self._frames = self._frames, []
        return frames


class SoundDeviceTrack(MediaTrack):
    kind = "audio"

    def __init__(self, stream: "sd.InputStream"):
        self._stream = stream
        self._stopped = False

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._stream.stop()
        self._stream.close()


class SoundDeviceStream(MediaStream):
    def __init__(self, track: SoundDeviceTrack, sink: _FrameSink, samplerate: int):
        super().__init__([track])
        self.sink = sink
        self.samplerate = samplerate


class SoundDeviceMedia(MediaDevices):
    def __init__(self, samplerate: int = 16000, channels: int = 1):
        self.samplerate = samplerate
        self.channels = channels

    async def get_user_media(self, audio: bool, video: bool) -> MediaStream:
        if video:
            raise DeviceError(CaptureKind.VIDEO, "not_found", detail="sounddevice backend has no camera")
        sink = _FrameSink()
        try:
            stream = sd.InputStream(
                samplerate=self.samplerate,
                channels=self.channels,
                dtype="int16",
                callback=sink.feed,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise DeviceError(CaptureKind.AUDIO, "not_found", detail=str(e)) from e
        return SoundDeviceStream(SoundDeviceTrack(stream), sink, self.samplerate)


class WavRecorder(MediaRecorder):
    """Emits a single WAV chunk when stopped; nothing if no frames arrived."""

    def start(self) -> None:
        self.stream.sink.begin()
        self.state = "recording"

    def stop(self) -> None:
        if self.state == "inactive":
            return
        self.state = "inactive"
        frames = self.stream.sink.drain()
        try:
            if frames:
                buf = io.BytesIO()
                wavfile.write(buf, self.stream.samplerate, np.concatenate(frames))
                if self.on_data_available:
                    self.on_data_available(buf.getvalue())
        except (ValueError, OSError) as e:
            if self.on_error:
                self.on_error(e)
            return
        if self.on_stop:
            self.on_stop()


class WavRecorderFactory(RecorderFactory):
    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type == WAV_MIME

    def create(self, stream: MediaStream, mime_type: str = "") -> MediaRecorder:
        if not isinstance(stream, SoundDeviceStream):
            raise TypeError("WavRecorder needs a SoundDeviceStream")
        if mime_type and mime_type != WAV_MIME:
            raise ValueError(f"unsupported mimeType {mime_type}")
        return WavRecorder(stream, WAV_MIME)

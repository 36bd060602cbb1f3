"""
Media Capture Adapter.

Turns the callback-driven platform recorder into an awaitable capture:
`start_capture()` acquires a device stream and starts recording,
`await stop_capture()` suspends until the recorder reports completion and
returns the recording as a base64 data URI.

Device streams are scarce; every path that acquired one (stop, recorder
error, empty capture, setup failure, teardown) stops all of its tracks
exactly once.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from libs.utils.data_uri import describe_data_uri, encode_data_uri

from .devices import CaptureKind, MediaDevices, MediaRecorder, MediaStream, RecorderFactory
from .errors import CaptureBusyError, CaptureError, DeviceError, NoDataCapturedError

logger = logging.getLogger(__name__)

MIME_PREFERENCES: Dict[CaptureKind, Tuple[str, ...]] = {
    CaptureKind.AUDIO: ("audio/webm;codecs=opus", "audio/webm"),
    CaptureKind.VIDEO: ("video/webm;codecs=vp9,opus", "video/webm;codecs=vp8,opus", "video/webm"),
}

DEFAULT_CONTAINER: Dict[CaptureKind, str] = {
    CaptureKind.AUDIO: "audio/webm",
    CaptureKind.VIDEO: "video/webm",
}


@dataclass(eq=False)
class CaptureHandle:
    kind: CaptureKind
    stream: MediaStream
    recorder: MediaRecorder
    mime_type: str
    done: asyncio.Future
    chunks: List[bytes] = field(default_factory=list)
    released: bool = False

    @property
    def active(self) -> bool:
        return not self.done.done()


class MediaCaptureAdapter:
    """Single-slot capture: voice and video recordings are mutually exclusive."""

    def __init__(self, devices: MediaDevices, recorders: RecorderFactory):
        self.devices = devices
        self.recorders = recorders
        self._active: Optional[CaptureHandle] = None
        # 已占用但还在等设备 / 启动录音的 kind
        self._starting: Optional[CaptureKind] = None

    @property
    def is_capturing(self) -> bool:
        return self._active is not None or self._starting is not None

    @property
    def active_kind(self) -> Optional[CaptureKind]:
        if self._active is not None:
            return self._active.kind
        return self._starting

    def select_mime_type(self, kind: CaptureKind) -> str:
        """First supported preference, or "" to accept the platform default."""
        for mime in MIME_PREFERENCES[kind]:
            if self.recorders.is_type_supported(mime):
                return mime
            logger.debug("%s not supported", mime)
        return ""

    async def start_capture(self, kind: CaptureKind) -> CaptureHandle:
        kind = CaptureKind(kind)
        if self.is_capturing:
            raise CaptureBusyError(kind, self.active_kind)

        # 先占位再 await，否则并发的两次 start 都能通过上面的检查
        self._starting = kind
        try:
            handle = await self._open_capture(kind)
        finally:
            self._starting = None
        self._active = handle
        return handle

    async def _open_capture(self, kind: CaptureKind) -> CaptureHandle:
        try:
            stream = await self.devices.get_user_media(
                audio=True, video=kind is CaptureKind.VIDEO
            )
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(kind, "unavailable", detail=str(e)) from e

        mime_type = self.select_mime_type(kind)
        logger.info("Starting %s capture, mimeType=%s", kind.value, mime_type or "platform default")
        try:
            recorder = self.recorders.create(stream, mime_type)
        except Exception as e:
            self._stop_tracks(stream)
            raise CaptureError("No compatible recording format is available.", kind=kind) from e

        loop = asyncio.get_running_loop()
        handle = CaptureHandle(
            kind=kind,
            stream=stream,
            recorder=recorder,
            mime_type=mime_type,
            done=loop.create_future(),
        )
        self._wire_callbacks(loop, handle)

        try:
            recorder.start()
        except Exception as e:
            self._release(handle)
            raise CaptureError(f"Failed to start {kind.value} recording: {e}", kind=kind) from e
        return handle

    def _wire_callbacks(self, loop: asyncio.AbstractEventLoop, handle: CaptureHandle) -> None:
        def on_data_available(chunk: bytes) -> None:
            if chunk:
                loop.call_soon_threadsafe(handle.chunks.append, chunk)

        def on_stop() -> None:
            loop.call_soon_threadsafe(self._settle, handle, None)

        def on_error(exc: BaseException) -> None:
            loop.call_soon_threadsafe(self._settle, handle, exc)

        handle.recorder.on_data_available = on_data_available
        handle.recorder.on_stop = on_stop
        handle.recorder.on_error = on_error

    def _settle(self, handle: CaptureHandle, exc: Optional[BaseException]) -> None:
        if handle.done.done():
            return
        if exc is None:
            handle.done.set_result(list(handle.chunks))
            return
        logger.error("%s recorder error: %s", handle.kind.value, exc)
        handle.done.set_exception(
            CaptureError(f"An error occurred during {handle.kind.value} recording: {exc}", kind=handle.kind)
        )
        # Nobody may be awaiting yet; mark the exception as retrieved.
        handle.done.exception()
        self._release(handle)
        if self._active is handle:
            self._active = None

    async def stop_capture(self, handle: CaptureHandle) -> str:
        """Stop recording and return the capture as a data URI."""
        if handle.done.cancelled():
            self._release(handle)
            raise CaptureError("The capture was torn down before it finished.", kind=handle.kind)
        try:
            if not handle.done.done() and handle.recorder.state != "inactive":
                try:
                    handle.recorder.stop()
                except Exception as e:
                    self._settle(handle, e)
            chunks = await handle.done
        finally:
            self._release(handle)
            if self._active is handle:
                self._active = None

        if not chunks:
            logger.error("%s recording stopped but no data chunks received", handle.kind.value)
            raise NoDataCapturedError(handle.kind)

        blob = b"".join(chunks)
        mime_type = handle.mime_type or handle.recorder.mime_type or DEFAULT_CONTAINER[handle.kind]
        data_uri = encode_data_uri(mime_type, blob)
        logger.info("%s capture ready: %s", handle.kind.value, describe_data_uri(data_uri))
        return data_uri

    async def teardown(self) -> None:
        """Stop any in-flight capture and release its device; safe to call repeatedly."""
        handle = self._active
        self._active = None
        if handle is None:
            return
        if handle.recorder.state != "inactive":
            try:
                handle.recorder.stop()
            except Exception as e:
                logger.warning("Recorder stop failed during teardown: %s", e)
        if not handle.done.done():
            handle.done.cancel()
        self._release(handle)

    def _release(self, handle: CaptureHandle) -> None:
        if handle.released:
            return
        handle.released = True
        self._stop_tracks(handle.stream)

    @staticmethod
    def _stop_tracks(stream: MediaStream) -> None:
        for track in stream.get_tracks():
            try:
                track.stop()
            except Exception as e:
                logger.warning("Failed to stop %s track: %s", getattr(track, "kind", "?"), e)

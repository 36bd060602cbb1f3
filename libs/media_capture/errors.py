"""
Capture error taxonomy.

All capture failures derive from CaptureError and carry a user-facing message.
"""

from typing import Any, Optional

DEVICE_GUIDANCE = {
    ("audio", "not_allowed"): "Microphone access denied. Please allow access in your browser settings.",
    ("audio", "not_found"): "No microphone found. Please connect a microphone.",
    ("audio", "unavailable"): "Could not start the microphone.",
    ("video", "not_allowed"): "Please enable camera and microphone permissions.",
    ("video", "not_found"): "No camera found. Please connect a camera.",
    ("video", "unavailable"): "Could not start the camera.",
}


def _kind_value(kind: Any) -> Optional[str]:
    return getattr(kind, "value", kind)


class CaptureError(Exception):
    """Capture could not produce a payload."""

    def __init__(self, message: str, kind: Any = None):
        super().__init__(message)
        self.kind = _kind_value(kind)
        self.user_message = message


class DeviceError(CaptureError):
    """Permission denied, device absent or device failed to start."""

    def __init__(self, kind: Any, reason: str = "unavailable", detail: str = ""):
        kind = _kind_value(kind)
        guidance = (
            DEVICE_GUIDANCE.get((kind, reason))
            or DEVICE_GUIDANCE.get((kind, "unavailable"))
            or "Could not access the capture device."
        )
        super().__init__(guidance, kind=kind)
        self.reason = reason
        self.detail = detail


class NoDataCapturedError(CaptureError):
    def __init__(self, kind: Any):
        kind = _kind_value(kind)
        super().__init__(f"No {kind} data was captured.", kind=kind)


class CaptureBusyError(CaptureError):
    def __init__(self, kind: Any, active_kind: Any):
        kind, active_kind = _kind_value(kind), _kind_value(active_kind)
        super().__init__(
            f"Cannot start {kind} capture while {active_kind} capture is in progress.",
            kind=kind,
        )
        self.active_kind = active_kind

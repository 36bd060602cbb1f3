"""
Companion error taxonomy.

Every error carries `user_message`, the text the presentation layer may show
as-is. Capture errors live with the capture library and are re-exported here.
"""

from libs.media_capture.errors import CaptureBusyError, CaptureError, DeviceError, NoDataCapturedError


class CompanionError(Exception):
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.user_message = message or self.default_message


class InputError(CompanionError):
    """No usable input; nothing was sent to the model."""

    default_message = "Please provide text, voice, or video input to analyze."


class BackendError(CompanionError):
    """Any model-side failure that is neither overload nor a malformed response."""


class ServiceBusyError(BackendError):
    """Model service overloaded / unavailable (503). Not retried automatically."""

    default_message = "The service is currently busy. Please try again shortly."


class ValidationError(BackendError):
    """Model response did not match the expected shape."""

    default_message = "Schema validation failed for the model response."


class TranscriptionError(CompanionError):
    """Audio could not be turned into text; ends the chat turn."""

    default_message = "Unknown transcription error"


__all__ = [
    "CompanionError",
    "InputError",
    "BackendError",
    "ServiceBusyError",
    "ValidationError",
    "TranscriptionError",
    "CaptureError",
    "CaptureBusyError",
    "DeviceError",
    "NoDataCapturedError",
]

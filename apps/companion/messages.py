"""
User-facing texts and error classification for the companion.
"""

from typing import Optional

from apps.companion.errors import CompanionError, ServiceBusyError, ValidationError
from apps.companion.schemas import AnalysisResult

WELCOME_MESSAGE = (
    "Hello! How can I help you today? Feel free to chat, or start an analysis "
    "using the options on the left."
)
ANALYSIS_COMPLETE_MARKER = "Analysis complete"
ANALYSIS_COMPLETE_MESSAGE = (
    "Analysis complete. No specific condition was strongly indicated. Let me know "
    "if you'd like to discuss the results or anything else!"
)
ANALYZING_PLACEHOLDER = "Analyzing..."
VOICE_INPUT_LABEL = "🎤 Voice Input"
FOLLOW_UP_FAILED_MESSAGE = (
    "I've completed the analysis, but encountered an issue starting the follow-up "
    "chat. How can I help otherwise?"
)
ANALYSIS_BUSY_MESSAGE = "The analysis service is currently busy. Please try again in a few moments."
ANALYSIS_FAILED_MESSAGE = "Failed to analyze mental health."
CHAT_VALIDATION_MESSAGE = "Chatbot processing error. Please try again."
CHAT_BUSY_MESSAGE = "Chatbot service is currently busy. Please try again."
CHAT_FAILED_MESSAGE = "Failed to get response from chatbot."

_BUSY_HINTS = ("503", "overloaded", "service unavailable")


def _error_text(err: BaseException) -> str:
    if isinstance(err, CompanionError):
        return err.user_message
    return str(err)


def is_busy_error(err: BaseException) -> bool:
    if isinstance(err, ServiceBusyError):
        return True
    text = _error_text(err).lower()
    return any(hint in text for hint in _BUSY_HINTS)


def describe_analysis_error(err: BaseException) -> str:
    if is_busy_error(err):
        return ANALYSIS_BUSY_MESSAGE
    return _error_text(err) or ANALYSIS_FAILED_MESSAGE


def describe_chat_error(err: BaseException) -> str:
    """Validation, busy and generic failures get distinct chat texts."""
    if isinstance(err, ValidationError):
        return CHAT_VALIDATION_MESSAGE
    if is_busy_error(err):
        return CHAT_BUSY_MESSAGE
    return _error_text(err) or CHAT_FAILED_MESSAGE


def transcription_apology(detail: str) -> str:
    return (
        "I'm sorry, I encountered an error trying to understand the audio: "
        f"{detail or 'Unknown transcription error'}. Could you please type your "
        "message or try recording again?"
    )


def format_diagnosis(result: Optional[AnalysisResult]) -> str:
    if result is None or not result.conditions:
        return "N/A"
    return ", ".join(c.label() for c in result.conditions)

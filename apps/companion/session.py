"""
Companion session controller.

Glue between one CompanionSession and the usecases: the analysis flow, the
chat passthrough and optional device recording. The registry keeps sessions
in memory for the HTTP layer.
"""

import logging
from collections import OrderedDict
from typing import Callable, Optional

from libs.media_capture import CaptureError, CaptureHandle, CaptureKind, DeviceError, MediaCaptureAdapter

from apps.companion.errors import CompanionError, InputError
from apps.companion.messages import (
    ANALYSIS_BUSY_MESSAGE,
    ANALYSIS_FAILED_MESSAGE,
    is_busy_error,
)
from apps.companion.schemas import AnalysisRequest, AnalysisRun, ChatMessage, Modality
from apps.companion.state import CompanionSession
from apps.companion.usecases.analyze import AnalysisOrchestrator, derive_primary_condition
from apps.companion.usecases.chat import ConversationManager

logger = logging.getLogger(__name__)

_RECORDING_STARTED = {
    CaptureKind.AUDIO: "Recording voice...",
    CaptureKind.VIDEO: "Recording video and audio...",
}
_RECORDING_READY = {
    CaptureKind.AUDIO: "Voice input ready for analysis.",
    CaptureKind.VIDEO: "Video input ready for analysis.",
}
_DEVICE_ERROR_TITLE = {
    CaptureKind.AUDIO: "Mic Error",
    CaptureKind.VIDEO: "Camera/Mic Access Denied",
}


class CompanionController:
    def __init__(
        self,
        session: CompanionSession,
        orchestrator: AnalysisOrchestrator,
        conversation: ConversationManager,
        capture: Optional[MediaCaptureAdapter] = None,
    ):
        self.session = session
        self.orchestrator = orchestrator
        self.conversation = conversation
        self.capture = capture
        self._recording: Optional[CaptureHandle] = None

    @classmethod
    def create(
        cls,
        orchestrator: AnalysisOrchestrator,
        capture: Optional[MediaCaptureAdapter] = None,
        session: Optional[CompanionSession] = None,
    ) -> "CompanionController":
        session = session or CompanionSession()
        conversation = ConversationManager(orchestrator.prompt_client, session)
        return cls(session, orchestrator, conversation, capture)

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def is_busy(self) -> bool:
        return self.session.is_loading or self.session.is_bot_loading

    # ========== Analysis ==========

    async def run_analysis(self, request: AnalysisRequest) -> Optional[AnalysisRun]:
        """
        Full analysis flow for the session.

        Returns None when an analysis is already running. Raises InputError
        (after posting an "Input Required" notice) when nothing was supplied.
        Backend failures are absorbed into the chat and the returned run.
        """
        session = self.session
        if session.is_loading:
            logger.info("[%s] analysis already in progress, ignoring", session.session_id)
            return None
        if not request.has_input():
            error = InputError()
            session.notify("Input Required", error.user_message, "destructive")
            raise error

        session.is_loading = True
        try:
            session.begin_analysis(request)
            try:
                outcome = await self.orchestrator.analyze(request)
            # pylint: disable=broad-exception-caught
            except Exception as e:
                logger.error("[%s] Error analyzing mental health: %s", session.session_id, e)
                return self._absorb_analysis_error(e)

            session.record_outcome(request, outcome)
            for modality, message in outcome.failures.items():
                title = "Service Busy" if message == ANALYSIS_BUSY_MESSAGE else "Error"
                session.notify(title, f"{Modality(modality).value.capitalize()} analysis: {message}", "destructive")

            primary = derive_primary_condition(outcome)
            session.detected_condition = primary
            if primary:
                await self.conversation.initiate_from_condition(primary)
            else:
                self.conversation.add_analysis_complete_notice()
            return AnalysisRun(success=True, outcome=outcome, primary_condition=primary)
        finally:
            session.is_loading = False

    def _absorb_analysis_error(self, err: Exception) -> AnalysisRun:
        session = self.session
        if is_busy_error(err):
            message = ANALYSIS_BUSY_MESSAGE
            session.notify("Service Busy", message, "destructive")
        else:
            message = (err.user_message if isinstance(err, CompanionError) else str(err)) or ANALYSIS_FAILED_MESSAGE
            session.notify("Error", message, "destructive")
        session.drop_pending_analysis()
        session.append_message("model", f"Sorry, there was an error during the analysis: {message}")
        session.detected_condition = None
        return AnalysisRun(success=False, error=message)

    # ========== Chat ==========

    async def send_user_turn(
        self, text: Optional[str] = None, audio_data_uri: Optional[str] = None
    ) -> Optional[ChatMessage]:
        return await self.conversation.send_user_turn(text=text, audio_data_uri=audio_data_uri)

    # ========== Recording ==========

    async def start_recording(self, kind: CaptureKind) -> bool:
        if self.capture is None:
            raise CaptureError("No capture device is configured.", kind=kind)
        kind = CaptureKind(kind)
        try:
            self._recording = await self.capture.start_capture(kind)
        except DeviceError as e:
            logger.error("[%s] Error accessing %s device: %s", self.session_id, kind.value, e.detail or e)
            self.session.notify(_DEVICE_ERROR_TITLE[kind], e.user_message, "destructive")
            return False
        except CaptureError as e:
            self.session.notify("Error", e.user_message, "destructive")
            return False
        self.session.notify("Recording Started", _RECORDING_STARTED[kind])
        return True

    async def finish_recording(self) -> Optional[str]:
        """Stop the current recording; returns the data URI or None on failure."""
        handle, self._recording = self._recording, None
        if handle is None or self.capture is None:
            return None
        try:
            data_uri = await self.capture.stop_capture(handle)
        except CaptureError as e:
            logger.error("[%s] Recording failed: %s", self.session_id, e)
            self.session.notify("Recording Error", e.user_message, "destructive")
            return None
        self.session.notify("Recording Complete", _RECORDING_READY[handle.kind])
        return data_uri

    async def close(self) -> None:
        self._recording = None
        if self.capture is not None:
            await self.capture.teardown()


class SessionRegistry:
    """In-memory session map, least recently used evicted past `max_sessions`."""

    def __init__(self, factory: Callable[[], CompanionController], max_sessions: int = 200):
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self.factory = factory
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, CompanionController]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> CompanionController:
        controller = self.factory()
        self._sessions[controller.session_id] = controller
        while len(self._sessions) > self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Evicted companion session %s", evicted_id)
        return controller

    def get(self, session_id: str) -> Optional[CompanionController]:
        controller = self._sessions.get(session_id)
        if controller is not None:
            self._sessions.move_to_end(session_id)
        return controller

    async def drop(self, session_id: str) -> bool:
        controller = self._sessions.pop(session_id, None)
        if controller is None:
            return False
        await controller.close()
        return True

"""
Companion session state.

One explicit state struct per client session; the conversation manager and
the controller mutate it, the presentation layer reads snapshots of it.
"""

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, Dict, List, Optional

from apps.companion.messages import (
    ANALYSIS_COMPLETE_MARKER,
    ANALYZING_PLACEHOLDER,
    WELCOME_MESSAGE,
    format_diagnosis,
)
from apps.companion.schemas import (
    MODALITY_ORDER,
    AnalysisHistoryItem,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    ChatMessage,
    Modality,
    Notice,
    SessionSnapshot,
)

MAX_ANALYSIS_HISTORY = 5
MAX_NOTICES = 20


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_TRANSCRIPTION = "awaiting_transcription"
    AWAITING_REPLY = "awaiting_reply"


_TURN_TRANSITIONS = {
    TurnState.IDLE: {TurnState.AWAITING_TRANSCRIPTION, TurnState.AWAITING_REPLY},
    TurnState.AWAITING_TRANSCRIPTION: {TurnState.AWAITING_REPLY, TurnState.IDLE},
    TurnState.AWAITING_REPLY: {TurnState.IDLE},
}


class IllegalTurnTransition(RuntimeError):
    pass


def _new_session_id() -> str:
    date_str = datetime.now().strftime("%Y%m%d")
    return f"session_{date_str}_{uuid.uuid4().hex[:8]}"


@dataclass
class CompanionSession:
    session_id: str = field(default_factory=_new_session_id)
    chat_history: List[ChatMessage] = field(
        default_factory=lambda: [ChatMessage(role="model", text=WELCOME_MESSAGE)]
    )
    detected_condition: Optional[str] = None
    last_results: Dict[Modality, Optional[AnalysisResult]] = field(
        default_factory=lambda: {m: None for m in MODALITY_ORDER}
    )
    analysis_history: List[AnalysisHistoryItem] = field(default_factory=list)
    notices: Deque[Notice] = field(default_factory=lambda: deque(maxlen=MAX_NOTICES))
    notice_seq: int = 0
    is_loading: bool = False
    turn_state: TurnState = TurnState.IDLE
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    # ========== Turn state ==========

    @property
    def is_bot_loading(self) -> bool:
        return self.turn_state is not TurnState.IDLE

    def advance_turn(self, target: TurnState) -> None:
        if target not in _TURN_TRANSITIONS[self.turn_state]:
            raise IllegalTurnTransition(f"{self.turn_state.value} -> {target.value}")
        self.turn_state = target
        self._touch()

    # ========== Chat history ==========

    def append_message(self, role: str, text: str) -> ChatMessage:
        message = ChatMessage(role=role, text=text)
        self.chat_history.append(message)
        self._touch()
        return message

    def replace_or_append_model_message(self, text: str) -> ChatMessage:
        """Replace a trailing "Analysis complete" notice, otherwise append."""
        last = self.chat_history[-1] if self.chat_history else None
        if last is not None and last.role == "model" and ANALYSIS_COMPLETE_MARKER in last.text:
            message = ChatMessage(role="model", text=text)
            self.chat_history[-1] = message
            self._touch()
            return message
        return self.append_message("model", text)

    # ========== Analysis results ==========

    def begin_analysis(self, request: AnalysisRequest) -> None:
        self.detected_condition = None
        self.last_results = {m: None for m in MODALITY_ORDER}
        label = (request.text_input or "").strip() or (
            "Voice Input" if request.payload_for(Modality.VOICE) else "Video Input"
        )
        pending = AnalysisHistoryItem(input=label, diagnosis=ANALYZING_PLACEHOLDER)
        self.analysis_history = [pending] + self.analysis_history[: MAX_ANALYSIS_HISTORY - 1]
        self._touch()

    def _settled_history(self) -> List[AnalysisHistoryItem]:
        return [item for item in self.analysis_history if item.diagnosis != ANALYZING_PLACEHOLDER]

    def drop_pending_analysis(self) -> None:
        self.analysis_history = self._settled_history()
        self._touch()

    def record_outcome(self, request: AnalysisRequest, outcome: AnalysisOutcome) -> None:
        new_items: List[AnalysisHistoryItem] = []
        for modality in MODALITY_ORDER:
            result = outcome.get(modality)
            self.last_results[modality] = result
            if result is None:
                continue
            if modality is Modality.TEXT:
                label = (request.text_input or "").strip() or "Text Input"
            else:
                label = f"{modality.value.capitalize()} Input"
            new_items.append(
                AnalysisHistoryItem(input=label, diagnosis=format_diagnosis(result), emotion=result.emotion)
            )
        keep = max(MAX_ANALYSIS_HISTORY - len(new_items), 0)
        self.analysis_history = (new_items + self._settled_history()[:keep])[:MAX_ANALYSIS_HISTORY]
        self._touch()

    # ========== Notices ==========

    def notify(self, title: str, description: str, variant: str = "default") -> Notice:
        self.notice_seq += 1
        notice = Notice(title=title, description=description, variant=variant, seq=self.notice_seq)
        self.notices.append(notice)
        return notice

    def _touch(self) -> None:
        self.updated_at = datetime.now()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            chat_history=list(self.chat_history),
            detected_condition=self.detected_condition,
            text_analysis=self.last_results.get(Modality.TEXT),
            voice_analysis=self.last_results.get(Modality.VOICE),
            video_analysis=self.last_results.get(Modality.VIDEO),
            analysis_history=list(self.analysis_history),
            notices=list(self.notices),
            is_loading=self.is_loading,
            is_bot_loading=self.is_bot_loading,
            turn_state=self.turn_state.value,
            updated_at=self.updated_at,
        )

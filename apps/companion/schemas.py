"""
Companion data model.

Pydantic models shared by the orchestration core and the HTTP layer.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MAX_CONDITIONS = 2


class Modality(str, Enum):
    TEXT = "text"
    VOICE = "voice"
    VIDEO = "video"


# 主诊断优先级：文本 > 语音 > 视频
MODALITY_ORDER = (Modality.TEXT, Modality.VOICE, Modality.VIDEO)


class ConditionFinding(BaseModel):
    name: str = Field(..., min_length=1, description="Name of the potential condition")
    confidence: float = Field(..., ge=0, le=100, description="Confidence percentage (0-100)")
    suggestions: List[str] = Field(default_factory=list)

    def label(self) -> str:
        return f"{self.name} ({self.confidence:.1f}%)"


class AnalysisResult(BaseModel):
    conditions: List[ConditionFinding] = Field(default_factory=list)
    emotion: Optional[str] = None

    @field_validator("conditions")
    @classmethod
    def _keep_top_two(cls, v: List[ConditionFinding]) -> List[ConditionFinding]:
        return v[:MAX_CONDITIONS]

    @field_validator("emotion")
    @classmethod
    def _blank_emotion_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    def is_empty(self) -> bool:
        return not self.conditions and not self.emotion


class AnalysisRequest(BaseModel):
    text_input: Optional[str] = None
    voice_input_data_uri: Optional[str] = None
    video_input_data_uri: Optional[str] = None

    def payload_for(self, modality: Modality) -> Optional[str]:
        raw = {
            Modality.TEXT: self.text_input,
            Modality.VOICE: self.voice_input_data_uri,
            Modality.VIDEO: self.video_input_data_uri,
        }[modality]
        return raw if raw and raw.strip() else None

    def modalities(self) -> List[Modality]:
        return [m for m in MODALITY_ORDER if self.payload_for(m) is not None]

    def has_input(self) -> bool:
        return bool(self.modalities())


class AnalysisOutcome(BaseModel):
    text_analysis: Optional[AnalysisResult] = None
    voice_analysis: Optional[AnalysisResult] = None
    video_analysis: Optional[AnalysisResult] = None
    # 失败的模态 -> 用户可读的错误描述
    failures: Dict[Modality, str] = Field(default_factory=dict)

    def get(self, modality: Modality) -> Optional[AnalysisResult]:
        return getattr(self, f"{modality.value}_analysis")


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str


class ChatbotRequest(BaseModel):
    user_message: Optional[str] = None
    audio_input_data_uri: Optional[str] = None
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    detected_condition: Optional[str] = None


class ChatbotResponse(BaseModel):
    bot_response: str


class AnalysisHistoryItem(BaseModel):
    input: str
    diagnosis: str
    emotion: Optional[str] = None


class Notice(BaseModel):
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"
    # 会话内单调递增；notices 有上限，按 seq 而不是下标判断新旧
    seq: int = 0


class AnalysisRun(BaseModel):
    """Result of one session-level analysis; errors are already user-facing text."""

    success: bool
    outcome: Optional[AnalysisOutcome] = None
    primary_condition: Optional[str] = None
    error: Optional[str] = None


class SessionSnapshot(BaseModel):
    session_id: str
    chat_history: List[ChatMessage]
    detected_condition: Optional[str] = None
    text_analysis: Optional[AnalysisResult] = None
    voice_analysis: Optional[AnalysisResult] = None
    video_analysis: Optional[AnalysisResult] = None
    analysis_history: List[AnalysisHistoryItem] = Field(default_factory=list)
    notices: List[Notice] = Field(default_factory=list)
    is_loading: bool = False
    is_bot_loading: bool = False
    turn_state: str = "idle"
    updated_at: datetime

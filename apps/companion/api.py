import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from apps.deps import require_internal_auth
from apps.settings import BackendSettings
from apps.companion.errors import CompanionError, InputError
from apps.companion.prompt_client import PromptClient
from apps.companion.schemas import (
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisRun,
    ChatMessage,
    SessionSnapshot,
)
from apps.companion.session import CompanionController, SessionRegistry
from apps.companion.usecases.analyze import AnalysisOrchestrator

logger = logging.getLogger(__name__)


class CompanionAnalyzeResponse(BaseModel):
    success: bool
    result: Optional[AnalysisOutcome] = None
    error: Optional[str] = None


class CompanionTranscribeRequest(BaseModel):
    audio_input_data_uri: str


class CompanionTranscribeResponse(BaseModel):
    success: bool
    text: Optional[str] = None
    error: Optional[str] = None


class CompanionSessionResponse(BaseModel):
    success: bool
    session: Optional[SessionSnapshot] = None
    error: Optional[str] = None


class CompanionSessionAnalyzeResponse(CompanionSessionResponse):
    run: Optional[AnalysisRun] = None


class CompanionChatRequest(BaseModel):
    text: Optional[str] = None
    audio_input_data_uri: Optional[str] = None


class CompanionChatResponse(CompanionSessionResponse):
    reply: Optional[ChatMessage] = None


def build_companion_router(
    settings: BackendSettings, prompt_client: Optional[PromptClient] = None
) -> APIRouter:
    router = APIRouter()
    auth_dep = require_internal_auth(settings)

    prompt_client = prompt_client or PromptClient.from_settings(settings)
    orchestrator = AnalysisOrchestrator(prompt_client)
    registry = SessionRegistry(
        factory=lambda: CompanionController.create(orchestrator),
        max_sessions=settings.max_sessions,
    )

    def _get_controller(session_id: str) -> CompanionController:
        controller = registry.get(session_id)
        if controller is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        return controller

    @router.post("/api/companion/analyze", response_model=CompanionAnalyzeResponse, dependencies=[Depends(auth_dep)])
    async def companion_analyze(req: AnalysisRequest):
        try:
            outcome = await orchestrator.analyze(req)
        except CompanionError as e:
            return CompanionAnalyzeResponse(success=False, error=e.user_message)
        return CompanionAnalyzeResponse(success=True, result=outcome)

    @router.post(
        "/api/companion/transcribe", response_model=CompanionTranscribeResponse, dependencies=[Depends(auth_dep)]
    )
    async def companion_transcribe(req: CompanionTranscribeRequest):
        try:
            text = await prompt_client.transcribe(req.audio_input_data_uri)
        except CompanionError as e:
            return CompanionTranscribeResponse(success=False, error=e.user_message)
        return CompanionTranscribeResponse(success=True, text=text)

    @router.post("/api/companion/sessions", response_model=CompanionSessionResponse, dependencies=[Depends(auth_dep)])
    async def companion_create_session():
        controller = registry.create()
        logger.info("Created companion session %s", controller.session_id)
        return CompanionSessionResponse(success=True, session=controller.session.snapshot())

    @router.get(
        "/api/companion/sessions/{session_id}",
        response_model=CompanionSessionResponse,
        dependencies=[Depends(auth_dep)],
    )
    async def companion_get_session(session_id: str):
        controller = _get_controller(session_id)
        return CompanionSessionResponse(success=True, session=controller.session.snapshot())

    @router.delete("/api/companion/sessions/{session_id}", dependencies=[Depends(auth_dep)])
    async def companion_delete_session(session_id: str):
        if not await registry.drop(session_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        return {"success": True}

    @router.post(
        "/api/companion/sessions/{session_id}/analyze",
        response_model=CompanionSessionAnalyzeResponse,
        dependencies=[Depends(auth_dep)],
    )
    async def companion_session_analyze(session_id: str, req: AnalysisRequest):
        controller = _get_controller(session_id)
        if controller.session.is_loading:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Analysis already in progress")
        try:
            run = await controller.run_analysis(req)
        except InputError as e:
            return CompanionSessionAnalyzeResponse(
                success=False, error=e.user_message, session=controller.session.snapshot()
            )
        if run is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Analysis already in progress")
        return CompanionSessionAnalyzeResponse(
            success=run.success, run=run, error=run.error, session=controller.session.snapshot()
        )

    @router.post(
        "/api/companion/sessions/{session_id}/chat",
        response_model=CompanionChatResponse,
        dependencies=[Depends(auth_dep)],
    )
    async def companion_session_chat(session_id: str, req: CompanionChatRequest):
        controller = _get_controller(session_id)
        if controller.session.is_bot_loading:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A chat turn is already in progress")

        has_text = bool((req.text or "").strip())
        has_audio = bool((req.audio_input_data_uri or "").strip())
        if has_text == has_audio:
            return CompanionChatResponse(
                success=False,
                error="Provide either a text message or a voice recording.",
                session=controller.session.snapshot(),
            )

        reply = await controller.send_user_turn(text=req.text, audio_data_uri=req.audio_input_data_uri)
        return CompanionChatResponse(
            success=reply is not None, reply=reply, session=controller.session.snapshot()
        )

    return router

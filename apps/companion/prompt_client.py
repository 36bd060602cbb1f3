"""
Companion Prompt Client.

Formats modality-specific prompts, calls Gemini through the structured
client and validates the responses against the expected shapes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from libs.api_keys.api_key_manager import get_default_api_key_manager
from libs.llm_gemini.gemini_client import (
    GeminiCallError,
    GeminiClientConfig,
    GeminiOutputError,
    GeminiStructuredClient,
    GeminiUnavailableError,
    MediaPart,
)
from libs.utils.data_uri import decode_data_uri, describe_data_uri
from libs.utils.rate_limiter import AsyncRateLimiter

from apps.companion.errors import (
    BackendError,
    InputError,
    ServiceBusyError,
    TranscriptionError,
    ValidationError,
)
from apps.companion.llm_schema import ANALYSIS_LLM_SCHEMA, CHATBOT_LLM_SCHEMA
from apps.companion.prompt_builder import (
    build_analysis_prompt,
    build_chatbot_prompt,
    build_transcription_prompt,
)
from apps.companion.schemas import AnalysisResult, ChatbotRequest, ChatbotResponse, Modality
from apps.llm_runtime import get_global_semaphore, get_limiter_for_model
from apps.settings import BackendSettings

logger = logging.getLogger(__name__)

GREETING = "Hello! How can I help you today?"
EMPTY_REPLY_FALLBACK = "I'm sorry, I couldn't generate a response right now. Please try again."
TRANSCRIBE_TEMPERATURE = 0.1


def translate_backend_error(err: GeminiCallError) -> BackendError:
    if isinstance(err, GeminiUnavailableError):
        return ServiceBusyError(f"503 Service Unavailable: {err}")
    if isinstance(err, GeminiOutputError):
        return ValidationError(f"Schema validation failed: {err}")
    return BackendError(str(err))


class PromptClient:
    """Analysis, chat and transcription calls against the hosted model."""

    def __init__(
        self,
        client: GeminiStructuredClient,
        transcribe_model_name: Optional[str] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
        limiter: Optional[AsyncRateLimiter] = None,
        transcribe_limiter: Optional[AsyncRateLimiter] = None,
    ):
        self.client = client
        self.transcribe_model_name = transcribe_model_name
        self._semaphore = semaphore or asyncio.Semaphore(20)
        self._limiter = limiter
        self._transcribe_limiter = transcribe_limiter or limiter

    @classmethod
    def from_settings(cls, settings: BackendSettings) -> "PromptClient":
        client = GeminiStructuredClient(
            api_key_manager=get_default_api_key_manager(),
            config=GeminiClientConfig(model_name=settings.gemini_model_name, temperature=0.4),
        )
        return cls(
            client=client,
            transcribe_model_name=settings.transcribe_model_name,
            semaphore=get_global_semaphore(),
            limiter=get_limiter_for_model(settings.gemini_model_name),
            transcribe_limiter=get_limiter_for_model(settings.transcribe_model_name),
        )

    @asynccontextmanager
    async def _slot(self, limiter: Optional[AsyncRateLimiter]):
        async with self._semaphore:
            if limiter is not None:
                await limiter.check_and_wait()
            yield

    @staticmethod
    def _media_part(data_uri: str, label: str) -> MediaPart:
        try:
            decoded = decode_data_uri(data_uri)
        except ValueError as e:
            raise InputError(f"The {label} recording could not be read: {e}") from e
        return MediaPart(mime_type=decoded.mime_type, data=decoded.data)

    async def run_analysis(self, modality: Modality, payload: str) -> AnalysisResult:
        modality = Modality(modality)
        if not payload or not payload.strip():
            raise InputError()

        if modality is Modality.TEXT:
            prompt = build_analysis_prompt(modality, text_input=payload)
            media = []
            logger.info("Running text analysis (%d chars)", len(payload))
        else:
            prompt = build_analysis_prompt(modality)
            media = [self._media_part(payload, modality.value)]
            logger.info("Running %s analysis: %s", modality.value, describe_data_uri(payload))

        try:
            async with self._slot(self._limiter):
                data = await self.client.generate_json_async(
                    prompt=prompt, media=media, schema=ANALYSIS_LLM_SCHEMA
                )
        except GeminiCallError as e:
            logger.error("%s analysis failed: %s", modality.value, e)
            raise translate_backend_error(e) from e

        try:
            return AnalysisResult.model_validate(data)
        except PydanticValidationError as e:
            logger.error("%s analysis returned an unexpected shape: %s", modality.value, e)
            raise ValidationError(f"Schema validation failed: {e.error_count()} error(s)") from e

    async def run_chat_turn(self, request: ChatbotRequest) -> ChatbotResponse:
        """
        One chatbot reply. `user_message` must already be resolved text;
        audio is transcribed by the conversation manager beforehand.
        """
        user_message = (request.user_message or "").strip()
        if (
            not user_message
            and not request.audio_input_data_uri
            and not request.conversation_history
            and not request.detected_condition
        ):
            return ChatbotResponse(bot_response=GREETING)

        prompt = build_chatbot_prompt(
            user_message=user_message,
            history=request.conversation_history,
            detected_condition=request.detected_condition,
        )
        logger.info(
            "Calling chatbot prompt: message=%d chars, history=%d, condition=%s",
            len(user_message),
            len(request.conversation_history),
            request.detected_condition,
        )
        try:
            async with self._slot(self._limiter):
                data = await self.client.generate_json_async(
                    prompt=prompt, media=[], schema=CHATBOT_LLM_SCHEMA
                )
        except GeminiCallError as e:
            logger.error("Chatbot prompt failed: %s", e)
            raise translate_backend_error(e) from e

        try:
            response = ChatbotResponse.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Schema validation failed: {e.error_count()} error(s)") from e
        if not response.bot_response.strip():
            logger.error("Chatbot prompt returned an empty response")
            return ChatbotResponse(bot_response=EMPTY_REPLY_FALLBACK)
        return response

    async def transcribe(self, audio_data_uri: str) -> str:
        """Multilingual transcription; blank audio yields ""."""
        try:
            media = self._media_part(audio_data_uri, "audio")
        except InputError as e:
            raise TranscriptionError(e.user_message) from e

        logger.info("Transcribing %s", describe_data_uri(audio_data_uri))
        try:
            async with self._slot(self._transcribe_limiter):
                text = await self.client.generate_text_async(
                    prompt=build_transcription_prompt(),
                    media=[media],
                    temperature=TRANSCRIBE_TEMPERATURE,
                    model_name=self.transcribe_model_name,
                )
        except GeminiCallError as e:
            logger.error("Transcription failed: %s", e)
            raise TranscriptionError(str(e)) from e

        text = (text or "").strip()
        if not text:
            logger.warning("Transcription result was empty or whitespace only")
        return text

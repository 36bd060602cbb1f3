"""
Companion Chat Usecase.

Owns the conversation flow of one session: condition-seeded openings after
an analysis, and user turns (text, or audio transcribed first).
"""

import asyncio
import logging
from typing import Optional

from apps.companion.errors import CompanionError
from apps.companion.messages import (
    ANALYSIS_COMPLETE_MESSAGE,
    FOLLOW_UP_FAILED_MESSAGE,
    VOICE_INPUT_LABEL,
    describe_chat_error,
    transcription_apology,
)
from apps.companion.prompt_client import PromptClient
from apps.companion.schemas import ChatbotRequest, ChatMessage
from apps.companion.state import CompanionSession, TurnState

logger = logging.getLogger(__name__)


class ConversationManager:
    """
    Turn lifecycle: IDLE -> AWAITING_TRANSCRIPTION (audio only) -> AWAITING_REPLY -> IDLE.

    A request arriving while a turn is in flight is dropped (returns None) so
    replies never interleave.
    """

    def __init__(self, prompt_client: PromptClient, session: CompanionSession):
        self.prompt_client = prompt_client
        self.session = session

    @property
    def is_bot_loading(self) -> bool:
        return self.session.is_bot_loading

    async def initiate_from_condition(self, condition: Optional[str]) -> Optional[ChatMessage]:
        session = self.session
        if session.is_bot_loading:
            logger.info("Skipping condition opening, a turn is in flight")
            return None

        session.detected_condition = condition
        session.advance_turn(TurnState.AWAITING_REPLY)
        try:
            response = await self.prompt_client.run_chat_turn(
                ChatbotRequest(
                    user_message="",
                    conversation_history=list(session.chat_history),
                    detected_condition=condition,
                )
            )
        # pylint: disable=broad-exception-caught
        except Exception as e:
            logger.error("Error initiating chatbot with condition: %s", e)
            session.notify("Chatbot Error", "Could not start the condition-based chat.", "destructive")
            return session.append_message("model", FOLLOW_UP_FAILED_MESSAGE)
        finally:
            session.advance_turn(TurnState.IDLE)

        return session.replace_or_append_model_message(response.bot_response)

    async def send_user_turn(
        self, text: Optional[str] = None, audio_data_uri: Optional[str] = None
    ) -> Optional[ChatMessage]:
        """
        Returns the assistant reply, or None when the turn was rejected
        (no input, both inputs, or another turn in flight).
        """
        session = self.session
        text = (text or "").strip()
        audio = (audio_data_uri or "").strip() or None
        if bool(text) == bool(audio) or session.is_bot_loading:
            return None

        prior_history = list(session.chat_history)
        session.append_message("user", VOICE_INPUT_LABEL if audio else text)

        resolved = text
        if audio:
            session.advance_turn(TurnState.AWAITING_TRANSCRIPTION)
            try:
                resolved = await self.prompt_client.transcribe(audio)
            except asyncio.CancelledError:
                # 请求被取消也要放开回合，否则会话一直处于忙碌
                session.advance_turn(TurnState.IDLE)
                raise
            # pylint: disable=broad-exception-caught
            except Exception as e:
                detail = e.user_message if isinstance(e, CompanionError) else str(e)
                logger.error("Error during transcription for chatbot: %s", detail)
                session.advance_turn(TurnState.IDLE)
                return session.append_message("model", transcription_apology(detail))

        session.advance_turn(TurnState.AWAITING_REPLY)
        try:
            response = await self.prompt_client.run_chat_turn(
                ChatbotRequest(
                    user_message=resolved,
                    audio_input_data_uri=audio,
                    conversation_history=prior_history,
                    detected_condition=session.detected_condition,
                )
            )
        # pylint: disable=broad-exception-caught
        except Exception as e:
            error_message = describe_chat_error(e)
            logger.error("Error sending message to chatbot: %s", e)
            session.notify("Chatbot Error", error_message, "destructive")
            return session.append_message("model", f"Sorry, I encountered an error: {error_message}")
        finally:
            session.advance_turn(TurnState.IDLE)

        return session.append_message("model", response.bot_response)

    def add_analysis_complete_notice(self) -> Optional[ChatMessage]:
        session = self.session
        if session.is_bot_loading:
            return None
        last = session.chat_history[-1] if session.chat_history else None
        if last is not None and last.text == ANALYSIS_COMPLETE_MESSAGE:
            return None
        return session.append_message("model", ANALYSIS_COMPLETE_MESSAGE)

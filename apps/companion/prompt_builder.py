from typing import List, Optional

from apps.companion.schemas import ChatMessage, Modality

_ANALYSIS_FOCUS = {
    Modality.TEXT: "Analyze the user's text input",
    Modality.VOICE: "Analyze the user's voice input (tone, pace, words)",
    Modality.VIDEO: "Analyze the user's facial expressions and spoken words in the video",
}

_ANALYSIS_RULES = """Only return the two most probable conditions. If no conditions are strongly indicated, return an empty array for conditions. If no clear emotion is detected, set emotion to null.

Format your response as a JSON object with 'conditions' (an array of objects with 'name', 'confidence' and 'suggestions') and 'emotion' (a string or null)."""


def build_analysis_prompt(modality: Modality, text_input: str = "") -> str:
    """
    Voice/video payloads travel as media parts next to the prompt; only text
    is embedded inline.
    """
    intro = (
        f"{_ANALYSIS_FOCUS[modality]} to identify potential mental health conditions "
        "and detect the primary emotion (e.g., happy, sad, angry, stressed, neutral). "
        "Provide a confidence percentage for each condition. For each condition, generate "
        "a list of suggestions that the user can follow to improve their mental health."
    )
    if modality is Modality.TEXT:
        attachment = f"Text Input: {text_input.strip()}"
    else:
        attachment = f"{modality.value.capitalize()} Input: see the attached {modality.value} recording."
    return f"{intro}\n\n{_ANALYSIS_RULES}\n\n{attachment}\n"


_PERSONA = """You are TherapyAI, a supportive and empathetic chatbot designed to offer gentle conversation and encouragement. Your goal is to be a kind listener. Do NOT provide medical advice, diagnoses, or treatment plans. You can suggest general well-being tips but always encourage users to consult professionals for serious concerns.

The user might communicate in different languages (like English, Hindi, etc.). Respond empathetically in the language the user seems most comfortable with, or default to English if unsure."""

_CLOSING = """Respond empathetically and continue the supportive conversation in the appropriate language. Keep your responses concise and encouraging. If the user asks for medical advice, gently redirect them to seek professional help."""


def _situation(user_message: str, history: List[ChatMessage], detected_condition: Optional[str]) -> str:
    if detected_condition:
        if user_message:
            return (
                "The user just sent a message (could be text or transcribed audio). A recent analysis "
                f"suggested they might be experiencing signs related to: {detected_condition}. Weave this "
                "context into your response subtly if appropriate, offering support related to that theme. "
                "Prioritize responding to the user's current message empathetically."
            )
        return (
            "An analysis just completed and suggested the user might be experiencing signs related to: "
            f"{detected_condition}. Acknowledge this analysis result gently and offer support or ask an "
            "open-ended question related to how they are feeling. Example: \"Based on the recent analysis, "
            f"it seems like things might be related to {detected_condition}. How are you feeling about that?\" "
            "Do NOT treat it as a confirmed diagnosis. Start the conversation based on this."
        )
    if user_message:
        return (
            "Continue the conversation based on the history and the user's latest message "
            "(could be text or transcribed audio)."
        )
    if history:
        # 有历史但没有消息：通常是语音转写为空
        return (
            "It seems the user sent input (likely audio) but transcription failed or was empty. Ask them "
            "to try again or type their message. Example: \"I'm sorry, I didn't quite catch that. Could you "
            "please try speaking again, or type your message?\""
        )
    return 'Start the conversation with a gentle and supportive opening like "Hello! How can I help you today?"'


def build_chatbot_prompt(
    user_message: str,
    history: List[ChatMessage],
    detected_condition: Optional[str],
) -> str:
    user_message = (user_message or "").strip()
    history_lines = "\n".join(f"{m.role}: {m.text}" for m in history)
    latest = f"\nUser's latest message: {user_message}\n" if user_message else ""
    return f"""{_PERSONA}

{_situation(user_message, history, detected_condition)}

Conversation History:
{history_lines}
{latest}
{_CLOSING}
AI Response:
"""


def build_transcription_prompt() -> str:
    return (
        "Please detect the language of the following audio and provide an accurate "
        "transcription of the spoken words. Return only the transcription."
    )

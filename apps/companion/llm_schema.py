"""
Companion LLM 结构化输出 schema（用于 Gemini response_schema）

原则：
- 模型只输出可观察的推断（候选状况、置信度、建议、主要情绪）
- 数量截断（最多两项）由代码侧兜底
"""

ANALYSIS_LLM_SCHEMA = {
    "type": "object",
    "properties": {
        "conditions": {
            "type": "array",
            "description": "Potential mental health conditions, only the two most probable.",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Name of the potential mental health condition."},
                    "confidence": {
                        "type": "number",
                        "description": "Confidence percentage (0-100) of the condition.",
                    },
                    "suggestions": {
                        "type": "array",
                        "description": "Suggestions to improve the user's mental health with respect to the condition.",
                        "items": {"type": "string"},
                    },
                },
                "required": ["name", "confidence", "suggestions"],
            },
        },
        "emotion": {
            "type": "string",
            "nullable": True,
            "description": "Primary emotion detected (e.g., happy, sad, angry, stressed, neutral), null if unclear.",
        },
    },
    "required": ["conditions", "emotion"],
}


CHATBOT_LLM_SCHEMA = {
    "type": "object",
    "properties": {
        "bot_response": {"type": "string", "description": "The chatbot's response to the user."},
    },
    "required": ["bot_response"],
}

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from libs.api_keys.api_key_manager import APIKeyManager

logger = logging.getLogger(__name__)

_BUSY_MARKERS = ("overloaded", "unavailable", "503")


class GeminiCallError(Exception):
    """Gemini 调用失败（网络、鉴权、配额等）"""


class GeminiUnavailableError(GeminiCallError):
    """服务过载 / 503，调用方应提示稍后重试"""


class GeminiOutputError(GeminiCallError):
    """模型返回内容为空或不是合法 JSON"""


@dataclass
class GeminiClientConfig:
    model_name: str
    temperature: float = 0.2


@dataclass(frozen=True)
class MediaPart:
    """二进制媒体输入（音频 / 视频）"""

    mime_type: str
    data: bytes


def _is_busy_error(err: genai_errors.APIError) -> bool:
    if getattr(err, "code", None) == 503:
        return True
    text = f"{getattr(err, 'status', '') or ''} {getattr(err, 'message', '') or ''} {err}".lower()
    return any(marker in text for marker in _BUSY_MARKERS)


def _is_auth_error(err: genai_errors.APIError) -> bool:
    if getattr(err, "code", None) in (401, 403):
        return True
    return "api key" in str(err).lower()


class GeminiStructuredClient:
    """
    Gemini 多模态 + 结构化输出封装（原子能力）

    约定：
    - 只负责“调用模型并按 schema 返回 JSON / 文本”
    - 不包含任何业务 prompt/schema
    - 失败时抛出 GeminiCallError 子类，由调用方决定用户提示
    """

    def __init__(self, api_key_manager: APIKeyManager, config: GeminiClientConfig):
        self.api_key_manager = api_key_manager
        self.config = config
        self.current_api_key: Optional[str] = None
        self._client: Optional[genai.Client] = None
        self._init_client()

    @property
    def client_ready(self) -> bool:
        return self._client is not None

    def _init_client(self) -> None:
        api_key = self.api_key_manager.get_key()
        if not api_key:
            self._client = None
            return
        try:
            self._client = genai.Client(api_key=api_key)
            self.current_api_key = api_key
        except Exception as e:
            logger.error("Gemini client init failed: %s", e)
            self.api_key_manager.mark_failed(api_key)
            self.current_api_key = None
            self._client = None

    def _require_client(self) -> genai.Client:
        if self._client is None:
            self._init_client()
        if self._client is None:
            raise GeminiCallError("Gemini client unavailable (no usable API key)")
        return self._client

    @staticmethod
    def _build_contents(prompt: str, media: Sequence[MediaPart]) -> List[Any]:
        contents: List[Any] = [prompt]
        for part in media or []:
            contents.append(types.Part.from_bytes(data=part.data, mime_type=part.mime_type))
        return contents

    async def _generate(self, model_name: str, contents: List[Any], config: types.GenerateContentConfig):
        client = self._require_client()
        try:
            return await client.aio.models.generate_content(
                model=model_name, contents=contents, config=config
            )
        except genai_errors.APIError as e:
            if _is_busy_error(e):
                raise GeminiUnavailableError(f"Gemini service unavailable: {e}") from e
            if _is_auth_error(e) and self.current_api_key:
                self.api_key_manager.mark_failed(self.current_api_key)
                self._client = None
            raise GeminiCallError(f"Gemini call failed: {e}") from e
        # pylint: disable=broad-exception-caught
        except Exception as e:
            raise GeminiCallError(f"Gemini call failed: {e}") from e

    async def generate_json_async(
        self,
        prompt: str,
        media: Sequence[MediaPart],
        schema: Dict[str, Any],
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """按 response_schema 生成 JSON，返回解析后的 dict"""
        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=schema,
            temperature=self.config.temperature if temperature is None else temperature,
        )
        response = await self._generate(
            self.config.model_name, self._build_contents(prompt, media), config
        )
        text = getattr(response, "text", None) or ""
        if not text.strip():
            raise GeminiOutputError("Gemini returned an empty response")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise GeminiOutputError(f"Gemini returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise GeminiOutputError("Gemini JSON root is not an object")
        return data

    async def generate_text_async(
        self,
        prompt: str,
        media: Sequence[MediaPart] = (),
        temperature: Optional[float] = None,
        model_name: Optional[str] = None,
    ) -> str:
        """纯文本生成（例如转写），返回可能为空字符串"""
        config = types.GenerateContentConfig(
            temperature=self.config.temperature if temperature is None else temperature,
        )
        response = await self._generate(
            model_name or self.config.model_name, self._build_contents(prompt, media), config
        )
        return getattr(response, "text", None) or ""

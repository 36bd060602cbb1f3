import hmac
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class InternalTokenAuth:
    """
    最小化的进程间鉴权：Bearer Token

    使用方式（HTTP 请求头）：
    Authorization: Bearer <token>

    未配置 token 时视为关闭鉴权。
    """

    token: Optional[str]

    def is_enabled(self) -> bool:
        return bool(self.token and self.token.strip())

    def verify_token(self, provided: Optional[str]) -> bool:
        if not self.is_enabled():
            return True
        if not provided:
            return False
        return hmac.compare_digest(provided.strip(), (self.token or "").strip())

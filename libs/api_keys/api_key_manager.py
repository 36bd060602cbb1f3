import logging
import os
import random
from dataclasses import dataclass, field
from typing import List, Optional, Set

from libs.core.project_paths import get_project_root

logger = logging.getLogger(__name__)

DEFAULT_KEY_ENV_VARS = ["GEMINI_API_KEY", "GOOGLE_API_KEY"]


@dataclass
class APIKeyManager:
    """
    API Key 管理器（原子能力）

    - 从环境变量与根目录 .env 汇总 key（去重，保持顺序）
    - 随机/顺序获取可用 key
    - 鉴权失败的 key 被标记并暂时跳过；全部失败后重置
    """

    key_env_vars: List[str] = field(default_factory=lambda: list(DEFAULT_KEY_ENV_VARS))
    keys: List[str] = field(default_factory=list)
    failed_keys: Set[str] = field(default_factory=set)
    load_environment: bool = True

    def __post_init__(self) -> None:
        loaded = [k.strip() for k in self.keys if k and k.strip()]
        if self.load_environment:
            loaded.extend(self._load_from_env(self.key_env_vars))
            loaded.extend(self._load_from_dotenv(self.key_env_vars))
        self.keys = list(dict.fromkeys(loaded))

    @staticmethod
    def _split_values(raw: str) -> List[str]:
        # 支持逗号分隔的多 key：GEMINI_API_KEY=key1,key2
        return [v.strip() for v in raw.split(",") if v.strip()]

    def _load_from_env(self, env_vars: List[str]) -> List[str]:
        out: List[str] = []
        for name in env_vars:
            out.extend(self._split_values(os.getenv(name) or ""))
        return out

    def _load_from_dotenv(self, env_vars: List[str]) -> List[str]:
        env_path = get_project_root() / ".env"
        if not env_path.exists():
            return []

        want = set(env_vars)
        values: List[str] = []
        for line in env_path.read_text(encoding="utf-8", errors="ignore").splitlines():
            s = line.strip()
            if not s or s.startswith("#") or "=" not in s:
                continue
            k, v = s.split("=", 1)
            if k.strip() not in want:
                continue
            values.extend(self._split_values(v.strip().strip('"').strip("'")))
        return values

    def get_key(self, random_select: bool = True) -> Optional[str]:
        available = [k for k in self.keys if k not in self.failed_keys]
        if not available and self.failed_keys:
            logger.warning("All %d API keys marked failed, resetting", len(self.keys))
            self.failed_keys.clear()
            available = list(self.keys)
        if not available:
            return None
        return random.choice(available) if random_select else available[0]

    def mark_failed(self, key: str) -> None:
        if key in self.keys:
            self.failed_keys.add(key)

    def available_count(self) -> int:
        return len([k for k in self.keys if k not in self.failed_keys])


_default_manager: Optional[APIKeyManager] = None


def get_default_api_key_manager() -> APIKeyManager:
    """进程内共享的 key 管理器（失败标记需要跨 usecase 生效）"""
    global _default_manager
    if _default_manager is None:
        _default_manager = APIKeyManager()
    return _default_manager

"""
Backend Settings.

Loads and validates configuration for the backend application,
aggregating settings from environment variables, the project-root .env
and config.json.
"""

import os
import re
from dataclasses import dataclass
from typing import Dict, Tuple

from libs.core.config_loader import load_root_config
from libs.core.project_paths import get_project_root

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:9002",
)


@dataclass(frozen=True)
class BackendSettings:
    """Immutable configuration object for the backend service."""

    host: str = "127.0.0.1"
    port: int = 8001
    internal_token: str = ""
    gemini_model_name: str = "gemini-2.5-flash"
    # 转写单独配置，默认与主模型相同
    transcribe_model_name: str = "gemini-2.5-flash"
    max_sessions: int = 200
    cors_allow_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS


_DOTENV_CACHE: Dict[str, str] = {}


def _load_dotenv_vars() -> Dict[str, str]:
    """
    Load key/value pairs from project root .env without third-party deps.
    """
    if _DOTENV_CACHE:
        return _DOTENV_CACHE

    env_path = get_project_root() / ".env"
    if not env_path.exists():
        return _DOTENV_CACHE

    content = env_path.read_text(encoding="utf-8", errors="ignore")
    pattern = re.compile(
        r'^\s*([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?:["\'](.+?)["\']|([^#\r\n]*))'
    )

    for line in content.splitlines():
        match = pattern.match(line)
        if not match:
            continue
        val = match.group(2) if match.group(2) is not None else match.group(3)
        if val is not None:
            _DOTENV_CACHE[match.group(1)] = val.strip()

    return _DOTENV_CACHE


def _get_env_value(name: str, default: str = "") -> str:
    """
    Read from real env first, then .env, then fallback.
    """
    value = os.getenv(name)
    if value is not None and value.strip():
        return value.strip()
    dotenv_val = _load_dotenv_vars().get(name, "").strip()
    return dotenv_val if dotenv_val else default


def _get_int(name: str, default: int) -> int:
    raw = _get_env_value(name, str(default))
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def load_settings() -> BackendSettings:
    """
    后端配置（单进程入口）

    配置优先级：环境变量 > 根目录 .env > 根目录 config.json > 默认值
    """
    root_cfg = load_root_config()

    default_model = str(root_cfg.get("GEMINI_MODEL_NAME") or BackendSettings.gemini_model_name)
    gemini_model_name = _get_env_value("GEMINI_MODEL_NAME", default_model)
    default_transcribe = str(root_cfg.get("GEMINI_TRANSCRIBE_MODEL_NAME") or gemini_model_name)

    origins_str = _get_env_value(
        "CORS_ALLOW_ORIGINS", str(root_cfg.get("CORS_ALLOW_ORIGINS") or "")
    )
    origins = tuple(o.strip() for o in origins_str.split(",") if o.strip())

    max_sessions = _get_int("COMPANION_MAX_SESSIONS", int(root_cfg.get("COMPANION_MAX_SESSIONS") or 200))
    if max_sessions < 1:
        raise ValueError("COMPANION_MAX_SESSIONS must be >= 1")

    return BackendSettings(
        host=_get_env_value("BACKEND_HOST", "127.0.0.1"),
        port=_get_int("BACKEND_PORT", 8001),
        internal_token=_get_env_value("BACKEND_INTERNAL_TOKEN", ""),
        gemini_model_name=gemini_model_name,
        transcribe_model_name=_get_env_value("GEMINI_TRANSCRIBE_MODEL_NAME", default_transcribe),
        max_sessions=max_sessions,
        cors_allow_origins=origins or DEFAULT_CORS_ORIGINS,
    )

"""
Main Application Entry Point.

Configures and initializes the FastAPI application, including logging,
routers, and health checks.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.settings import BackendSettings, load_settings
from apps.companion.api import build_companion_router
from apps.companion.prompt_client import PromptClient


def create_app(
    settings: Optional[BackendSettings] = None, prompt_client: Optional[PromptClient] = None
) -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = settings or load_settings()
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )

    # Silence httpx/httpcore (used by google-genai)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google.genai").setLevel(logging.WARNING)

    fastapi_app = FastAPI(title="TherapyAI Companion", version="0.1.0")

    # CORS 配置 - 允许前端跨域访问
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @fastapi_app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": "companion",
            "gemini_model": settings.gemini_model_name,
            "transcribe_model": settings.transcribe_model_name,
            "internal_auth_enabled": bool(settings.internal_token),
        }

    fastapi_app.include_router(build_companion_router(settings, prompt_client=prompt_client))
    return fastapi_app


app = create_app()

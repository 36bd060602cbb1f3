"""
Dependencies for FastAPI.

Provides dependency injection for internal token authentication.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from libs.auth_internal.token_auth import InternalTokenAuth
from apps.settings import BackendSettings

logger = logging.getLogger(__name__)

# auto_error=False 允许未认证时继续（由我们手动检查），同时 Swagger UI 显示 Authorize 按钮
http_bearer = HTTPBearer(auto_error=False)


def require_internal_auth(settings: BackendSettings):
    """
    Dependency generator for internal token authentication.

    When BACKEND_INTERNAL_TOKEN is empty every request is allowed.
    """
    auth = InternalTokenAuth(token=settings.internal_token)
    if not auth.is_enabled():
        logger.warning("No internal token configured, API auth disabled")

    async def _dep(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    ):
        if not auth.is_enabled():
            return
        token = credentials.credentials if credentials else None
        if not auth.verify_token(token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized: missing/invalid internal token",
            )

    return _dep

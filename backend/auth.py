"""Authentication layer for the ContentForge API.

Bearer tokens are configured as ``CF_API_TOKENS="token:user_id,..."``; each
token identifies one owner. With no tokens configured the API runs in local
mode and every request acts as ``LOCAL_USER``.
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request, status

from contentforge.config import Settings

logger = logging.getLogger(__name__)

LOCAL_USER = "local"

# Paths that do NOT require authentication
PUBLIC_PATHS = {
    "/health",
    "/api/health",
    "/api/",
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
}


def validate_token(token: str, settings: Settings) -> Optional[str]:
    """Return the owner id for ``token``, or None when it is unknown."""
    for known, user_id in settings.api_token_map.items():
        if hmac.compare_digest(known, token):
            return user_id
    return None


def resolve_user(authorization: str, settings: Settings) -> Optional[str]:
    """Owner id for an Authorization header value (None = reject)."""
    if not settings.api_token_map:
        return LOCAL_USER
    if not authorization.lower().startswith("bearer "):
        return None
    return validate_token(authorization.split(" ", 1)[1].strip(), settings)


def current_user(request: Request) -> str:
    """FastAPI dependency: the owner id the auth middleware attached to the request."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id

"""
Request authentication: the shared gateway key and per-user bearer tokens.
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, Header
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from cryptodca.config import get_settings
from cryptodca.dependencies import get_token_service
from cryptodca.errors import ApiError
from cryptodca.tokens import TokenService

GATEWAY_KEY_HEADER = "X-API-KEY"


class GatewayKeyMiddleware(BaseHTTPMiddleware):
    """Only allow requests whose X-API-KEY header matches the shared secret."""

    def __init__(self, app, api_key: str):
        super().__init__(app)
        self.api_key = api_key

    async def dispatch(self, request: Request, call_next):
        supplied = request.headers.get(GATEWAY_KEY_HEADER, "")
        if not hmac.compare_digest(supplied.encode(), self.api_key.encode()):
            return JSONResponse(
                status_code=401, content={"errorMessage": "Invalid API key"}
            )
        return await call_next(request)


def require_user_id(
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_token_service),
) -> str:
    """Resolve the user id from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise ApiError(401, "Authorization header is missing")

    parts = authorization.split(" ")
    if len(parts) < 2 or parts[0] != "Bearer" or not parts[1]:
        raise ApiError(
            401, "Invalid authorization format. Expected: Bearer [token]"
        )

    result = tokens.verify_access_token(parts[1])
    if not result.ok:
        raise ApiError(401, result.error.message)
    return result.value


def authorize_user_path(
    user_id: str,
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_token_service),
) -> str:
    """
    Guard for /users/{user_id}/... routes. Open unless
    ``require_bearer_on_user_routes`` is set, in which case the bearer token
    must belong to ``user_id``.
    """
    if not get_settings().require_bearer_on_user_routes:
        return user_id
    token_user_id = require_user_id(authorization, tokens)
    if token_user_id != user_id:
        raise ApiError(401, "Unauthorized")
    return user_id

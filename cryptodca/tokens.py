"""
Access/refresh token issuance, verification, rotation and revocation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import jwt

from cryptodca.config import Settings
from cryptodca.errors import ErrorKind, Result
from cryptodca.security import decode_token, encode_token
from cryptodca.token_store import RefreshTokenStore

logger = logging.getLogger(__name__)

INVALID_ACCESS_TOKEN = "Invalid authorization token"
INVALID_REFRESH_TOKEN = "Invalid refresh token"
EXPIRED_REFRESH_TOKEN = "Refresh token expired"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def as_dict(self) -> dict:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


class TokenService:
    """
    Access tokens are stateless and short lived. Refresh tokens are long
    lived and tracked in ``store`` so they can be revoked on logout.
    """

    def __init__(self, settings: Settings, store: RefreshTokenStore):
        self.settings = settings
        self.store = store

    def _issue_access_token(self, user_id: str) -> str:
        return encode_token(
            {"userId": user_id},
            self.settings.jwt_secret_access_token,
            self.settings.access_token_expires_in,
            self.settings.jwt_algorithm,
        )

    def issue_token_pair(self, user_id: str) -> TokenPair:
        access_token = self._issue_access_token(user_id)
        refresh_token = encode_token(
            {"userId": user_id},
            self.settings.jwt_secret_refresh_token,
            self.settings.refresh_token_expires_in,
            self.settings.jwt_algorithm,
        )
        # The stored record outlives the JWT so an expired token is still
        # found and reported as expired rather than unknown.
        self.store.save(
            refresh_token,
            user_id,
            self.settings.refresh_token_expires_in
            + self.settings.refresh_token_store_grace_seconds,
        )
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def issue_reset_password_token(self, user_id: str) -> str:
        return encode_token(
            {"userId": user_id},
            self.settings.jwt_secret_reset_password_token,
            self.settings.reset_password_token_expires_in,
            self.settings.jwt_algorithm,
        )

    def verify_access_token(self, token: str) -> Result[str]:
        try:
            payload = decode_token(
                token,
                self.settings.jwt_secret_access_token,
                self.settings.jwt_algorithm,
            )
        except jwt.InvalidTokenError:
            return Result.failure(ErrorKind.AUTHENTICATION, INVALID_ACCESS_TOKEN)
        user_id = payload.get("userId")
        if not user_id or not isinstance(user_id, str):
            return Result.failure(ErrorKind.AUTHENTICATION, INVALID_ACCESS_TOKEN)
        return Result.success(user_id)

    def rotate_access_token(self, refresh_token: str) -> Result[str]:
        """
        Mint a new access token from a stored refresh token. The refresh
        token itself is left unchanged.
        """
        if not refresh_token or self.store.get_user_id(refresh_token) is None:
            return Result.failure(
                ErrorKind.AUTHENTICATION,
                INVALID_REFRESH_TOKEN,
                reason="refresh_token_not_found",
            )
        try:
            payload = decode_token(
                refresh_token,
                self.settings.jwt_secret_refresh_token,
                self.settings.jwt_algorithm,
            )
        except jwt.ExpiredSignatureError:
            return Result.failure(
                ErrorKind.AUTHENTICATION,
                EXPIRED_REFRESH_TOKEN,
                reason="refresh_token_expired",
            )
        except jwt.InvalidTokenError:
            return Result.failure(
                ErrorKind.AUTHENTICATION, INVALID_REFRESH_TOKEN, reason="invalid_token"
            )
        user_id = payload.get("userId")
        if not user_id:
            return Result.failure(
                ErrorKind.AUTHENTICATION, INVALID_REFRESH_TOKEN, reason="invalid_token"
            )
        return Result.success(self._issue_access_token(user_id))

    def revoke_refresh_token(self, refresh_token: str) -> Result[None]:
        if not refresh_token or not self.store.delete(refresh_token):
            return Result.failure(
                ErrorKind.AUTHENTICATION,
                INVALID_REFRESH_TOKEN,
                reason="refresh_token_not_found",
            )
        logger.info("Refresh token revoked")
        return Result.success()

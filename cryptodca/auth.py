"""
Sign-up, log-in, log-out, token refresh and password reset requests.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from cryptodca.config import Settings
from cryptodca.credentials import CredentialStore
from cryptodca.errors import Result
from cryptodca.notifications import Mailer, reset_password_message
from cryptodca.observability import report_exception
from cryptodca.tokens import TokenPair, TokenService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        settings: Settings,
        credentials: CredentialStore,
        tokens: TokenService,
        mailer: Mailer,
    ):
        self.settings = settings
        self.credentials = credentials
        self.tokens = tokens
        self.mailer = mailer

    def sign_up(
        self, firstname: str, lastname: str, email: str, password: str
    ) -> Result[TokenPair]:
        created = self.credentials.create_user(firstname, lastname, email, password)
        if not created.ok:
            return Result(error=created.error)
        logger.info("User %s signed up", created.value)
        return Result.success(self.tokens.issue_token_pair(created.value))

    def log_in(self, email: str, password: str) -> Result[TokenPair]:
        verified = self.credentials.verify_credentials(email, password)
        if not verified.ok:
            return Result(error=verified.error)
        logger.info("User %s logged in", verified.value)
        return Result.success(self.tokens.issue_token_pair(verified.value))

    def log_out(self, refresh_token: str) -> Result[None]:
        return self.tokens.revoke_refresh_token(refresh_token)

    def refresh(self, refresh_token: str) -> Result[str]:
        return self.tokens.rotate_access_token(refresh_token)

    def request_password_reset(self, email: str) -> None:
        """
        Email a reset link if the account exists. Never fails and never tells
        the caller whether the email is registered.
        """
        try:
            user = self.credentials.find_user_by_email(email)
            if user is None:
                logger.info("Password reset requested for unknown email")
                return
            token = self.tokens.issue_reset_password_token(user.user_id)
            link = f"{self.settings.reset_password_url}?{urlencode({'token': token})}"
            self.mailer.send(reset_password_message(user.firstname, user.email, link))
        except Exception as exc:
            report_exception(exc)

"""
User creation and password verification.
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptodca.db import UserRecord, UserStore
from cryptodca.errors import DuplicateEmailError, ErrorKind, Result, validation_error
from cryptodca.security import hash_password, normalize_email, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

FIRSTNAME_REQUIRED = "First name is required"
LASTNAME_REQUIRED = "Last name is required"
INVALID_EMAIL = "Invalid email address"
PASSWORD_TOO_SHORT = "Password must be at least 8 characters"
EMAIL_EXISTS = "Email address already exists"
# Never reveal whether the email or the password was wrong.
INVALID_CREDENTIALS = "Invalid email or password"


def clean_name(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


class CredentialStore:
    def __init__(self, store: UserStore, bcrypt_rounds: int = 10):
        self.store = store
        self.bcrypt_rounds = bcrypt_rounds

    def create_user(
        self, firstname: str, lastname: str, email: str, password: str
    ) -> Result[str]:
        """Validate and persist a new user, returning its id."""
        first = clean_name(firstname)
        if first is None:
            return validation_error(FIRSTNAME_REQUIRED, "firstname")
        last = clean_name(lastname)
        if last is None:
            return validation_error(LASTNAME_REQUIRED, "lastname")
        normalized_email = normalize_email(email)
        if normalized_email is None:
            return validation_error(INVALID_EMAIL, "email")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            return validation_error(PASSWORD_TOO_SHORT, "password")

        hashed = hash_password(password, self.bcrypt_rounds)
        try:
            user = self.store.insert_user(first, last, normalized_email, hashed)
        except DuplicateEmailError:
            return Result.failure(ErrorKind.CONFLICT, EMAIL_EXISTS, field="email")
        logger.info("Created user %s", user.user_id)
        return Result.success(user.user_id)

    def verify_credentials(self, email: str, password: str) -> Result[str]:
        normalized_email = normalize_email(email)
        if (
            normalized_email is None
            or not isinstance(password, str)
            or len(password) < MIN_PASSWORD_LENGTH
        ):
            return Result.failure(ErrorKind.AUTHENTICATION, INVALID_CREDENTIALS)
        user = self.store.get_user_by_email(normalized_email)
        if user is None or not verify_password(password, user.hashed_password):
            return Result.failure(ErrorKind.AUTHENTICATION, INVALID_CREDENTIALS)
        return Result.success(user.user_id)

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        normalized_email = normalize_email(email)
        if normalized_email is None:
            return None
        return self.store.get_user_by_email(normalized_email)

"""
Password hashing, email normalisation and JWT helpers.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from email_validator import EmailNotValidError, validate_email

# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds)).decode(
        "utf-8"
    )


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            _password_bytes(plain_password), hashed_password.encode("utf-8")
        )
    except ValueError:
        # Stored hash is not a bcrypt hash.
        return False


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Return the trimmed, lowercased email if it is syntactically valid,
    otherwise None.
    """
    if not isinstance(email, str) or not email.strip():
        return None
    candidate = email.strip()
    try:
        validate_email(candidate, check_deliverability=False)
    except EmailNotValidError:
        return None
    return candidate.lower()


def encode_token(
    claims: Dict[str, Any],
    secret: str,
    expires_in: int,
    algorithm: str = "HS256",
) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        **claims,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        # Tokens minted in the same second for the same user must still differ.
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """
    Decode and verify a token. Raises ``jwt.ExpiredSignatureError`` or
    ``jwt.InvalidTokenError``.
    """
    return jwt.decode(
        token,
        secret,
        algorithms=[algorithm],
        options={"require": ["exp", "iat"]},
    )

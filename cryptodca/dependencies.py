"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from cryptodca.auth import AuthService
from cryptodca.config import get_settings
from cryptodca.credentials import CredentialStore
from cryptodca.db import InMemoryUserStore, SqlUserStore, UserStore
from cryptodca.notifications import InMemoryMailer, LoggingMailer, Mailer, SmtpMailer
from cryptodca.token_store import (
    InMemoryRefreshTokenStore,
    RedisRefreshTokenStore,
    RefreshTokenStore,
)
from cryptodca.tokens import TokenService
from cryptodca.users import UserRepository

_user_store: UserStore | None = None
_refresh_token_store: RefreshTokenStore | None = None
_mailer: Mailer | None = None


def get_user_store() -> UserStore:
    """
    Return a singleton user store; the SQL engine and its connection pool
    are created on first use and shared by every request.
    """
    global _user_store
    if _user_store:
        return _user_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _user_store = InMemoryUserStore()
    else:
        _user_store = SqlUserStore(settings.database_url)
    return _user_store


def get_refresh_token_store() -> RefreshTokenStore:
    global _refresh_token_store
    if _refresh_token_store:
        return _refresh_token_store

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _refresh_token_store = RedisRefreshTokenStore(
            url=settings.redis_url,
            key_prefix=settings.redis_refresh_token_prefix,
        )
    else:
        _refresh_token_store = InMemoryRefreshTokenStore()
    return _refresh_token_store


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is not None:
        return _mailer

    settings = get_settings()
    if settings.use_in_memory_backends:
        _mailer = InMemoryMailer(sender=settings.mail_from)
    elif settings.smtp_host:
        _mailer = SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.mail_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )
    else:
        _mailer = LoggingMailer(sender=settings.mail_from)
    return _mailer


def get_token_service() -> TokenService:
    return TokenService(get_settings(), get_refresh_token_store())


def get_credential_store() -> CredentialStore:
    return CredentialStore(get_user_store(), get_settings().bcrypt_rounds)


def get_user_repository() -> UserRepository:
    return UserRepository(get_user_store())


def get_auth_service() -> AuthService:
    return AuthService(
        get_settings(),
        get_credential_store(),
        get_token_service(),
        get_mailer(),
    )

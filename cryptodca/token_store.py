"""
Server-side refresh token storage.

A refresh token is only honoured while it is present in the store, which is
what makes logout immediate. Supports an in-memory fallback for tests/local
runs and a Redis-backed implementation for production.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, TypeVar

import redis
from redis import exceptions as redis_exceptions

T = TypeVar("T")


class RefreshTokenStore(Protocol):
    """Minimal interface for tracking issued refresh tokens."""

    def save(self, token: str, user_id: str, expires_in: int) -> None:
        ...

    def get_user_id(self, token: str) -> Optional[str]:
        ...

    def delete(self, token: str) -> bool:
        ...


@dataclass
class InMemoryRefreshTokenStore:
    """Dictionary-backed token store for testing/dev."""

    tokens: dict[str, tuple[str, float]] = field(default_factory=dict)

    def reset(self) -> None:
        self.tokens.clear()

    def save(self, token: str, user_id: str, expires_in: int) -> None:
        self.tokens[token] = (user_id, time.time() + expires_in)

    def get_user_id(self, token: str) -> Optional[str]:
        entry = self.tokens.get(token)
        if entry is None:
            return None
        user_id, expires_at = entry
        if expires_at <= time.time():
            self.tokens.pop(token, None)
            return None
        return user_id

    def delete(self, token: str) -> bool:
        return self.tokens.pop(token, None) is not None


@dataclass
class RedisRefreshTokenStore:
    """Redis-backed store; each token is a key that expires with the token."""

    url: str
    key_prefix: str = "cryptodca:refresh:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    def _call(self, operation: Callable[[redis.Redis], T]) -> T:
        try:
            return operation(self.client)
        except redis_exceptions.ConnectionError:
            # Connection resets can happen on managed Redis. Reconnect and
            # retry once before giving up.
            self.client = redis.Redis.from_url(self.url)
            return operation(self.client)

    def save(self, token: str, user_id: str, expires_in: int) -> None:
        self._call(
            lambda client: client.set(self._key(token), user_id, ex=max(1, expires_in))
        )

    def get_user_id(self, token: str) -> Optional[str]:
        value = self._call(lambda client: client.get(self._key(token)))
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def delete(self, token: str) -> bool:
        return bool(self._call(lambda client: client.delete(self._key(token))))

"""Duplicate suppression for received messages.

A message id is claimed with an atomic SET NX plus TTL before a worker is
spawned and released when the worker exits. The TTL is the retry visibility
timeout, so a claim left behind by a crashed worker expires on the same
boundary at which the message becomes visible again.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Protocol

import redis

from sqsworker.main.exceptions import IdempotencyStoreError
from sqsworker.main.logging import get_logger

if TYPE_CHECKING:
    from sqsworker.main.config import Settings

logger = get_logger(__name__)


class IdempotencyStore(Protocol):
    def set_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool: ...

    def expire(self, key: str, seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisIdempotencyStore:
    """Idempotency store backed by Redis.

    Args:
        redis_client: Redis connection.
    """

    def __init__(self, redis_client: redis.Redis) -> None:
        self._redis = redis_client

    def set_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set ``key`` only if it does not exist, with optional expiry.

        Raises:
            IdempotencyStoreError: Redis call failed.
        """
        try:
            if ttl:
                return bool(self._redis.set(key, value, nx=True, ex=ttl))
            return bool(self._redis.setnx(key, value))
        except redis.RedisError as exc:
            raise IdempotencyStoreError("set_if_absent", str(exc)) from exc

    def expire(self, key: str, seconds: int) -> None:
        try:
            self._redis.expire(key, seconds)
        except redis.RedisError as exc:
            raise IdempotencyStoreError("expire", str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.RedisError as exc:
            raise IdempotencyStoreError("delete", str(exc)) from exc


class InMemoryIdempotencyStore:
    """Process-local store with TTL support, for tests and local runs."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        expires_at = self._expires.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._values.pop(key, None)
            self._expires.pop(key, None)

    def set_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        self._purge(key)
        if key in self._values:
            return False
        self._values[key] = value
        if ttl:
            self.expire(key, ttl)
        return True

    def expire(self, key: str, seconds: int) -> None:
        if key in self._values:
            self._expires[key] = self._clock() + seconds

    def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._expires.pop(key, None)

    def __contains__(self, key: str) -> bool:
        self._purge(key)
        return key in self._values


class IdempotencyGuard:
    """Claims message ids in an idempotency store.

    With no store configured every claim succeeds and release does nothing.

    Args:
        store: Idempotency store, or None to disable duplicate suppression.
        key_prefix: Prefix prepended to message ids to form store keys.
    """

    def __init__(self, store: IdempotencyStore | None = None, key_prefix: str = "") -> None:
        self._store = store
        self._key_prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self._store is not None

    def _key(self, message_id: str) -> str:
        return f"{self._key_prefix}{message_id}"

    def claim(self, message_id: str, body: str, ttl: int) -> bool:
        """Claim a message id for processing.

        Args:
            message_id: Queue message id.
            body: Message body, stored as the claim value.
            ttl: Claim lifetime in seconds.

        Returns:
            True if the claim was acquired, False if already claimed or the
            store is unreachable.
        """
        if self._store is None:
            return True

        try:
            return self._store.set_if_absent(self._key(message_id), body, ttl=max(int(ttl), 1))
        except IdempotencyStoreError as exc:
            logger.warning(
                "Failed to claim message",
                extra={"message_id": message_id, "error": str(exc)},
            )
            return False

    def release(self, message_id: str) -> None:
        """Remove the claim for a message id; the TTL covers failures here."""
        if self._store is None:
            return

        try:
            self._store.delete(self._key(message_id))
        except IdempotencyStoreError as exc:
            logger.warning(
                "Failed to release message claim",
                extra={"message_id": message_id, "error": str(exc)},
            )


def create_idempotency_guard(settings: Settings) -> IdempotencyGuard:
    """Build the guard for a settings snapshot (no-op without Redis)."""
    from sqsworker.redis.connection import create_redis_client

    redis_client = create_redis_client(settings)
    store = RedisIdempotencyStore(redis_client) if redis_client is not None else None
    return IdempotencyGuard(store, key_prefix=settings.idempotency_key_prefix)

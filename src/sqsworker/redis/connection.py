"""Redis connection helpers for the idempotency store."""

from __future__ import annotations

from typing import Any

import redis

from sqsworker.main.config import Settings, get_settings


def build_redis_kwargs(
    settings: Settings | None = None,
    *,
    decode_responses: bool = True,
) -> dict[str, Any]:
    """Build keyword arguments for redis.Redis from settings."""
    resolved_settings = settings or get_settings()
    kwargs: dict[str, Any] = {
        "host": resolved_settings.redis_server,
        "port": resolved_settings.redis_port,
        "db": resolved_settings.redis_db,
        "decode_responses": decode_responses,
        "socket_timeout": resolved_settings.redis_socket_timeout,
        "socket_connect_timeout": resolved_settings.redis_socket_timeout,
        "retry_on_timeout": True,
        "health_check_interval": 30,
    }

    if resolved_settings.redis_password:
        kwargs["password"] = resolved_settings.redis_password

    if resolved_settings.redis_ssl:
        kwargs["ssl"] = True
        kwargs["ssl_cert_reqs"] = resolved_settings.redis_ssl_cert_reqs

    return kwargs


def create_redis_client(settings: Settings | None = None) -> redis.Redis | None:
    """Create a Redis client, or None when no Redis server is configured."""
    resolved_settings = settings or get_settings()
    if not resolved_settings.redis_server:
        return None
    return redis.Redis(**build_redis_kwargs(resolved_settings))

"""Redis connection utilities for the idempotency store."""

from sqsworker.redis.connection import build_redis_kwargs, create_redis_client

__all__ = ["build_redis_kwargs", "create_redis_client"]

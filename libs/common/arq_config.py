"""ARQ (Async Redis Queue) configuration utilities.

Provides helpers for parsing Redis connection settings from the
application config into ARQ-compatible RedisSettings, and for
enqueueing ledger jobs from collaborators.
"""

from typing import Any
from urllib.parse import urlparse

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from libs.common.config import get_settings


def get_redis_settings() -> RedisSettings:
    """Parse REDIS_URL from application settings into ARQ RedisSettings."""
    settings = get_settings()
    parsed = urlparse(settings.REDIS_URL)

    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        database=int(parsed.path.lstrip("/") or "0"),
        password=parsed.password,
    )


_pool: ArqRedis | None = None


async def get_pool() -> ArqRedis:
    """Return the shared enqueue pool, creating it on first use."""
    global _pool
    if _pool is None:
        _pool = await create_pool(get_redis_settings())
    return _pool


async def close_pool() -> None:
    """Close the shared enqueue pool. Safe to call when none was opened."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def enqueue(function_name: str, *args: Any, job_id: str | None = None) -> None:
    """Enqueue a worker job. ``job_id`` deduplicates retries of the same event."""
    redis = await get_pool()
    await redis.enqueue_job(function_name, *args, _job_id=job_id)

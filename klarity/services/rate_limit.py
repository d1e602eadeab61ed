"""Redis fixed-window limits on booking agent turns per user."""

import logging
import time

import redis.asyncio as aioredis

from klarity.config import settings

logger = logging.getLogger(__name__)


def agent_windows() -> list[tuple[str, int, int]]:
    """``(name, window_seconds, limit)`` for every configured agent limit."""
    return [
        ("minute", 60, settings.agent_rate_limit_per_minute),
        ("hour", 3600, settings.agent_rate_limit_per_hour),
    ]


async def check_agent_rate_limit(user_id: int) -> bool:
    """Count this turn in every window; False once any window is over its limit."""
    windows = agent_windows()
    now = int(time.time())
    r = aioredis.from_url(settings.redis_url)
    try:
        pipe = r.pipeline()
        for name, seconds, _ in windows:
            key = f"agent_rate:{name}:{user_id}:{now // seconds}"
            pipe.incr(key)
            pipe.expire(key, seconds * 2)
        results = await pipe.execute()
    finally:
        await r.aclose()

    counts = results[::2]
    for (name, _, limit), count in zip(windows, counts):
        if count > limit:
            logger.warning("[rate_limit] user=%s over %s agent limit (%d/%d)", user_id, name, count, limit)
            return False
    return True

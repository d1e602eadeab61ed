"""arq worker: agent log persistence and pending booking expiry.

Run with ``arq klarity.workers.WorkerSettings``.
"""

import logging

from arq import cron
from arq.connections import RedisSettings

from klarity.config import settings
from klarity.workers.agent_logs import persist_agent_logs_task
from klarity.workers.bookings import expire_pending_bookings_task

logger = logging.getLogger(__name__)

EVERY_MINUTE = set(range(60))
EVERY_FIVE_MINUTES = set(range(0, 60, 5))


def redis_settings() -> RedisSettings:
    return RedisSettings(
        host=settings.redis_host,
        port=settings.redis_port,
        database=settings.redis_db,
        password=settings.redis_password,
    )


async def on_startup(ctx: dict) -> None:
    logger.info("[worker] started, pending booking ttl=%s min", settings.pending_booking_ttl_minutes)


class WorkerSettings:
    redis_settings = redis_settings()
    on_startup = on_startup
    functions = [persist_agent_logs_task, expire_pending_bookings_task]
    cron_jobs = [
        cron(persist_agent_logs_task, minute=EVERY_MINUTE),
        cron(expire_pending_bookings_task, minute=EVERY_FIVE_MINUTES),
    ]

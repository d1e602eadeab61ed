"""Worker task: move queued booking agent call records from Redis into ``agent_logs``."""

import json
import logging
import uuid

import redis.asyncio as aioredis

from klarity.config import settings
from klarity.database import async_session_factory
from klarity.models.agent_log import AgentLog
from klarity.tools.agent_logger import REDIS_AGENT_LOG_KEY

logger = logging.getLogger(__name__)

BATCH_SIZE = 50

_RECORD_FIELDS = (
    "request_messages",
    "request_text",
    "response_text",
    "tool_calls",
    "tokens_prompt",
    "tokens_completion",
    "tokens_total",
    "latency_ms",
    "error",
)


def agent_log_from_record(rec: dict) -> AgentLog:
    """Build an AgentLog row from a record pushed by AgentCallLogger.flush."""
    return AgentLog(
        id=uuid.UUID(rec["id"]),
        user_id=rec["user_id"],
        model=rec["model"],
        **{name: rec.get(name) for name in _RECORD_FIELDS},
    )


async def _take_batch(r: aioredis.Redis) -> list[bytes]:
    # Read and trim in one transaction so two workers never insert the same record
    pipe = r.pipeline(transaction=True)
    pipe.lrange(REDIS_AGENT_LOG_KEY, 0, BATCH_SIZE - 1)
    pipe.ltrim(REDIS_AGENT_LOG_KEY, BATCH_SIZE, -1)
    raw, _ = await pipe.execute()
    return raw


async def persist_agent_logs_task(ctx: dict) -> int:
    r = aioredis.from_url(settings.redis_url)
    try:
        raw = await _take_batch(r)
        if not raw:
            return 0

        rows = []
        for item in raw:
            try:
                rows.append(agent_log_from_record(json.loads(item)))
            except (ValueError, KeyError, TypeError):
                logger.warning("[agent_logs] skipping malformed record: %r", item[:200])

        async with async_session_factory() as session:
            session.add_all(rows)
            await session.commit()
        logger.info("[agent_logs] persisted %d of %d records", len(rows), len(raw))
        return len(rows)
    except Exception:
        logger.exception("[agent_logs] failed to persist agent logs")
        return 0
    finally:
        await r.aclose()

"""Agent call logger: logs to stdout and pushes to Redis for async DB persistence."""

import json
import logging
import time
import uuid

import redis.asyncio as aioredis

from klarity.config import settings

logger = logging.getLogger("agent_logger")

REDIS_AGENT_LOG_KEY = "agent_logs:queue"

_redis: aioredis.Redis | None = None


def _get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.redis_url)
    return _redis


def usage_tokens(response) -> tuple[int | None, int | None, int | None]:
    """(prompt, completion, total) token counts of a langchain response, if reported."""
    usage = getattr(response, "usage_metadata", None) or {}
    if isinstance(usage, dict):
        return usage.get("input_tokens"), usage.get("output_tokens"), usage.get("total_tokens")
    return (
        getattr(usage, "input_tokens", None),
        getattr(usage, "output_tokens", None),
        getattr(usage, "total_tokens", None),
    )


class AgentCallLogger:
    """Collects one booking agent call and flushes it to stdout and Redis."""

    def __init__(self, model: str, user_id: int | str) -> None:
        self.model = model
        self.user_id = user_id
        self.request_messages: list[dict] | None = None
        self.request_text: str | None = None
        self.response_text: str | None = None
        self.tool_calls: list[dict] | None = None
        self.tokens_prompt: int | None = None
        self.tokens_completion: int | None = None
        self.tokens_total: int | None = None
        self.error: str | None = None
        self._start_time: float = 0
        self._latency_ms: int = 0

    @property
    def latency_ms(self) -> int:
        return self._latency_ms

    def set_request(self, messages: list[dict] | None = None, text: str | None = None) -> None:
        self.request_messages = messages
        self.request_text = text

    def set_response(self, text: str | None = None, tool_calls: list[dict] | None = None, response=None) -> None:
        self.response_text = text
        self.tool_calls = tool_calls
        if response is not None:
            self.tokens_prompt, self.tokens_completion, self.tokens_total = usage_tokens(response)

    def set_error(self, error: str) -> None:
        self.error = error

    def start_timer(self) -> None:
        self._start_time = time.monotonic()

    def stop_timer(self) -> None:
        if self._start_time:
            self._latency_ms = int((time.monotonic() - self._start_time) * 1000)

    def record(self) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "user_id": int(self.user_id),
            "model": self.model,
            "request_messages": self.request_messages,
            "request_text": self.request_text,
            "response_text": self.response_text,
            "tool_calls": self.tool_calls,
            "tokens_prompt": self.tokens_prompt,
            "tokens_completion": self.tokens_completion,
            "tokens_total": self.tokens_total,
            "latency_ms": self._latency_ms,
            "error": self.error,
        }

    async def flush(self) -> None:
        """Log to stdout and push to Redis queue."""
        self.stop_timer()

        req_preview = (self.request_text or "")[:200]
        resp_preview = (self.response_text or "")[:200]
        tools_info = ",".join(call["name"] for call in self.tool_calls or []) or "-"
        tokens_info = f"tokens={self.tokens_total}" if self.tokens_total else "tokens=?"
        error_info = f" ERROR: {self.error}" if self.error else ""

        logger.info(
            "[booking_agent] user=%s model=%s %s latency=%dms tools=%s | req: %s | resp: %s%s",
            self.user_id,
            self.model,
            tokens_info,
            self._latency_ms,
            tools_info,
            req_preview,
            resp_preview,
            error_info,
        )

        try:
            r = _get_redis()
            await r.rpush(REDIS_AGENT_LOG_KEY, json.dumps(self.record(), ensure_ascii=False, default=str))
        except Exception:
            logger.warning("Failed to push agent log to Redis", exc_info=True)


async def close_agent_log_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None

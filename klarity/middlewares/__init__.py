"""Bot middlewares."""

from klarity.middlewares.db import DbSessionMiddleware
from klarity.middlewares.logging import LoggingMiddleware
from klarity.middlewares.rate_limit import RateLimitMiddleware
from klarity.middlewares.user import UserMiddleware

__all__ = [
    "DbSessionMiddleware",
    "LoggingMiddleware",
    "RateLimitMiddleware",
    "UserMiddleware",
]

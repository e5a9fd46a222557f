"""
Throttling for the /auth API.

Every /auth request counts against a shared ceiling and a per-client ceiling.
Endpoints that accept credentials or send mail also count against a smaller
per-client, per-endpoint bucket. Counters live in Redis in fixed windows.
"""

import logging
import time
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from lawpal.core.config import Settings, settings
from lawpal.core.security import extract_bearer_token
from lawpal.services.jwt_service import jwt_service
from lawpal.services.redis_connection import RedisConnection, redis_connection

logger = logging.getLogger("lawpal.rate_limit")

RATE_LIMITED_PREFIX = "/auth"

CREDENTIAL_PATHS = frozenset(
    {
        "/auth/signup",
        "/auth/signin",
        "/auth/verify-email",
        "/auth/resend-verification",
        "/auth/set-password",
        "/auth/forgot-password",
        "/auth/reset-password",
    }
)


@dataclass
class RateLimitDecision:
    allowed: bool
    bucket: str | None = None
    retry_after: int = 0


class RateLimiter:
    """
    Fixed-window counters in Redis.

    With `fail_closed` (the default) requests are refused while Redis is
    unreachable; otherwise they pass unthrottled.
    """

    def __init__(
        self,
        config: Settings | None = None,
        redis: RedisConnection | None = None,
        fail_closed: bool = True,
        clock=time.time,
    ):
        self._config = config
        self.redis = redis or redis_connection
        self.fail_closed = fail_closed
        self.clock = clock

    @property
    def config(self) -> Settings:
        return self._config or settings

    def buckets(self, path: str, identity: str) -> list[tuple[str, int]]:
        """Counter names and their ceilings for one request."""
        buckets = [
            ("all", self.config.RATE_LIMIT_GLOBAL_PER_MINUTE),
            (f"client:{identity}", self.config.RATE_LIMIT_PER_USER_PER_MINUTE),
        ]
        if path in CREDENTIAL_PATHS:
            buckets.append((f"credential:{path}:{identity}", self.config.RATE_LIMIT_CREDENTIAL_PER_MINUTE))
        return buckets

    def _window(self, now: float) -> tuple[int, int]:
        size = self.config.RATE_LIMIT_WINDOW_SECONDS
        start = int(now) - int(now) % size
        return start, start + size - int(now)

    async def check(self, path: str, identity: str) -> RateLimitDecision:
        """Count this request in every bucket it belongs to and report the first one over its ceiling."""
        client = self.redis.client if self.redis.is_available else None
        if client is None:
            logger.error("Rate limiting enabled but Redis is unavailable")
            return RateLimitDecision(allowed=not self.fail_closed, retry_after=1)

        window_start, remaining = self._window(self.clock())
        buckets = self.buckets(path, identity)

        pipe = client.pipeline()
        for name, _ in buckets:
            key = f"lawpal:rl:{window_start}:{name}"
            pipe.incr(key)
            pipe.expire(key, self.config.RATE_LIMIT_WINDOW_SECONDS + 1)
        try:
            results = await pipe.execute()
        except Exception as e:
            logger.error("Rate limit counters unavailable: %s", e)
            return RateLimitDecision(allowed=not self.fail_closed, retry_after=1)

        # Results alternate incr/expire
        for (name, ceiling), count in zip(buckets, results[::2]):
            if count > ceiling:
                logger.warning("Rate limit hit on %s (%d > %d)", name, count, ceiling)
                return RateLimitDecision(allowed=False, bucket=name, retry_after=remaining)
        return RateLimitDecision(allowed=True)


limiter = RateLimiter()


def request_identity(request: Request) -> str:
    """The session's user id when a valid token is presented, otherwise the client IP."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    payload = jwt_service.verify_access_token(token) if token else None
    if payload:
        return f"user:{payload['sub']}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


async def rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if not settings.ENABLE_RATE_LIMITING or not path.startswith(RATE_LIMITED_PREFIX):
        return await call_next(request)

    decision = await limiter.check(path, request_identity(request))
    if not decision.allowed:
        return JSONResponse(
            status_code=429,
            content={"success": False, "message": "Too many requests. Please try again later."},
            headers={"Retry-After": str(decision.retry_after)},
        )
    return await call_next(request)

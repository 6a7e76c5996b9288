from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from fastapi import HTTPException, status
from redis.exceptions import RedisError

from ..redis_client import get_redis_client
from ..settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """Fixed window per visitor address; `max_requests <= 0` turns the rule off."""

    name: str
    max_requests: int
    window_seconds: int = 60

    def window_start(self, now: datetime) -> int:
        epoch = int(now.timestamp())
        return epoch - epoch % self.window_seconds

    def key(self, subject: str, window_start: int) -> str:
        return f"ratelimit:{self.name}:{window_start}:{subject}"


def redirect_rule() -> RateLimitRule:
    return RateLimitRule("redirect", settings.redirect_rate_limit_per_minute)


def conversion_rule() -> RateLimitRule:
    return RateLimitRule("conversion", settings.conversion_rate_limit_per_minute)


def enforce_rate_limit(subject: str, rule: RateLimitRule, now: datetime | None = None) -> int | None:
    """Count one hit for `subject` and return the hits left in this window.

    Returns None when the rule is off or redis cannot be reached; tracking
    traffic is never refused because the limiter is down.
    """
    if rule.max_requests <= 0:
        return None
    current = now or datetime.now(UTC)
    window_start = rule.window_start(current)
    key = rule.key(subject, window_start)
    try:
        pipeline = get_redis_client().pipeline()
        pipeline.incr(key)
        # keys outlive their window once so a late hit never resets a full bucket
        pipeline.expire(key, rule.window_seconds * 2)
        hits, _ = pipeline.execute()
    except RedisError:
        logger.warning("rate limiter unavailable rule=%s", rule.name)
        return None
    hits = int(hits)
    if hits > rule.max_requests:
        retry_after = max(1, window_start + rule.window_seconds - int(current.timestamp()))
        logger.info("rate limited rule=%s subject=%s hits=%s", rule.name, subject, hits)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"too many {rule.name} requests",
            headers={"Retry-After": str(retry_after)},
        )
    return rule.max_requests - hits

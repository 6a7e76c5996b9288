from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError as SettingsValidationError
from redis.exceptions import ConnectionError as RedisConnectionError

from affiliate_api.services import rate_limit
from affiliate_api.services.rate_limit import RateLimitRule
from affiliate_api.settings import Settings

WINDOW_OPEN = datetime(2026, 10, 1, 12, 0, 0, tzinfo=UTC)


class _Pipeline:
    def __init__(self, redis: "_CountingRedis") -> None:
        self.redis = redis
        self.calls: list[tuple[str, str, int]] = []

    def incr(self, key: str) -> None:
        self.calls.append(("incr", key, 0))

    def expire(self, key: str, ttl: int) -> None:
        self.calls.append(("expire", key, ttl))

    def execute(self) -> list[int | bool]:
        results: list[int | bool] = []
        for name, key, ttl in self.calls:
            if name == "incr":
                self.redis.counts[key] = self.redis.counts.get(key, 0) + 1
                results.append(self.redis.counts[key])
            else:
                self.redis.expiries[key] = ttl
                results.append(True)
        return results


class _CountingRedis:
    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self.expiries: dict[str, int] = {}

    def pipeline(self) -> _Pipeline:
        return _Pipeline(self)


class _BrokenRedis:
    def pipeline(self) -> _Pipeline:
        raise RedisConnectionError("down")


def test_rate_limit_blocks_after_threshold(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _CountingRedis()
    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: fake)
    rule = RateLimitRule("redirect", max_requests=3)

    remaining = [rate_limit.enforce_rate_limit("203.0.113.1", rule, now=WINDOW_OPEN) for _ in range(3)]
    assert remaining == [2, 1, 0]
    with pytest.raises(HTTPException) as exc_info:
        rate_limit.enforce_rate_limit("203.0.113.1", rule, now=WINDOW_OPEN + timedelta(seconds=45))

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {"Retry-After": "15"}
    assert set(fake.expiries.values()) == {120}
    assert rate_limit.enforce_rate_limit("203.0.113.2", rule, now=WINDOW_OPEN) == 2


def test_rate_limit_window_rolls_over(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _CountingRedis()
    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: fake)
    rule = RateLimitRule("conversion", max_requests=1)

    rate_limit.enforce_rate_limit("198.51.100.9", rule, now=WINDOW_OPEN)
    assert rate_limit.enforce_rate_limit("198.51.100.9", rule, now=WINDOW_OPEN + timedelta(minutes=1)) == 0
    assert len(fake.counts) == 2
    assert all(key.startswith("ratelimit:conversion:") for key in fake.counts)


def test_rate_limit_fails_open_when_redis_is_down(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit, "get_redis_client", lambda: _BrokenRedis())
    rule = RateLimitRule("redirect", max_requests=1)
    assert rate_limit.enforce_rate_limit("203.0.113.1", rule) is None
    assert rate_limit.enforce_rate_limit("203.0.113.1", rule) is None


def test_rate_limit_disabled_skips_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    def _unexpected():
        raise AssertionError("redis should not be touched")

    monkeypatch.setattr(rate_limit, "get_redis_client", _unexpected)
    assert rate_limit.enforce_rate_limit("203.0.113.1", rate_limit.redirect_rule()) is None




def test_settings_reject_unknown_timezone() -> None:
    with pytest.raises(SettingsValidationError):
        Settings(stats_timezone="Mars/Olympus")


def test_settings_accept_named_timezone() -> None:
    assert Settings(stats_timezone="America/New_York").stats_timezone == "America/New_York"


def test_production_requires_admin_key() -> None:
    with pytest.raises(SettingsValidationError):
        Settings(app_env="production", admin_api_key=None, dev_auth_bypass=False)
    with pytest.raises(SettingsValidationError):
        Settings(app_env="production", admin_api_key="k", dev_auth_bypass=True)
    assert Settings(app_env="production", admin_api_key="k", dev_auth_bypass=False).app_env == "production"

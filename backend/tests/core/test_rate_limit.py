"""Rate Limiter — tests for the sliding window, LRU bound and abuse flagging.

Tests cover:
    - requests within limit allowed, over limit throttled with retry_after
    - window slides: old requests stop counting
    - identities are independent
    - memory bounded by max_identities (least recently seen evicted)
    - error rate > 50% over more than 10 requests flags the identity
"""

from datetime import datetime, timedelta, timezone

from hera_core.core.rate_limit import RateLimiter

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_allows_up_to_limit_then_throttles():
    limiter = RateLimiter(limit_per_minute=3, burst_limit=0)
    results = [limiter.check("u", now=T0) for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert results[2].remaining == 0
    assert results[3].retry_after_seconds == 60


def test_window_slides():
    limiter = RateLimiter(limit_per_minute=2, burst_limit=0)
    limiter.check("u", now=T0)
    limiter.check("u", now=T0 + timedelta(seconds=30))
    assert not limiter.check("u", now=T0 + timedelta(seconds=59)).allowed
    assert limiter.check("u", now=T0 + timedelta(seconds=61)).allowed


def test_burst_extends_limit():
    limiter = RateLimiter(limit_per_minute=2, burst_limit=1)
    assert limiter.limit == 3


def test_identities_independent():
    limiter = RateLimiter(limit_per_minute=1, burst_limit=0)
    assert limiter.check("a", now=T0).allowed
    assert limiter.check("b", now=T0).allowed
    assert not limiter.check("a", now=T0).allowed


def test_lru_bound():
    limiter = RateLimiter(limit_per_minute=1, burst_limit=0, max_identities=2)
    limiter.check("a", now=T0)
    limiter.check("b", now=T0)
    limiter.check("c", now=T0)
    assert len(limiter) == 2
    # "a" was evicted, so it starts with a fresh budget
    assert limiter.check("a", now=T0).allowed


def test_high_error_rate_flags_identity():
    limiter = RateLimiter(limit_per_minute=100, burst_limit=0)
    for _ in range(11):
        limiter.check("abuser", now=T0)
        limiter.record_error("abuser", now=T0)
    result = limiter.check("abuser", now=T0)
    assert not result.allowed
    assert result.flagged


def test_low_error_rate_not_flagged():
    limiter = RateLimiter(limit_per_minute=100, burst_limit=0)
    for i in range(12):
        limiter.check("ok", now=T0)
        if i % 4 == 0:
            limiter.record_error("ok", now=T0)
    assert limiter.check("ok", now=T0).allowed


def test_reset_clears_identity():
    limiter = RateLimiter(limit_per_minute=1, burst_limit=0)
    limiter.check("u", now=T0)
    limiter.reset("u")
    assert limiter.check("u", now=T0).allowed

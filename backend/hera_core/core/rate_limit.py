"""Rate Limiting — per-identity sliding window plus error-rate abuse flagging.

Invariants:
    - Best-effort and per replica: no cross-replica coordination
    - Bounded memory: at most max_identities buckets, least recently seen evicted first
    - Time is injected (now=...) so checks are deterministic in tests
    - Flagged identities (error rate > 50% over more than 10 requests in a window)
      are throttled until their window rolls over

Design Decisions:
    - Deque of timestamps per identity: exact sliding window, O(limit) memory per identity
    - OrderedDict as LRU: eviction is O(1) and needs no background sweeper
"""

from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

ABUSE_MIN_REQUESTS = 10
ABUSE_ERROR_RATE = 0.5


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    limit: int
    retry_after_seconds: float = 0.0
    flagged: bool = False


@dataclass
class _Bucket:
    requests: deque = field(default_factory=deque)
    errors: deque = field(default_factory=deque)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """Sliding-window limiter keyed by identity (user id)."""

    def __init__(
        self,
        limit_per_minute: int = 120,
        burst_limit: int = 20,
        max_identities: int = 10_000,
        window_seconds: int = 60,
    ) -> None:
        self.limit = limit_per_minute + burst_limit
        self._max_identities = max_identities
        self._window = timedelta(seconds=window_seconds)
        self._buckets: OrderedDict[str, _Bucket] = OrderedDict()

    def __len__(self) -> int:
        return len(self._buckets)

    def _bucket(self, identity: str) -> _Bucket:
        bucket = self._buckets.get(identity)
        if bucket is None:
            bucket = _Bucket()
            self._buckets[identity] = bucket
            while len(self._buckets) > self._max_identities:
                self._buckets.popitem(last=False)
        else:
            self._buckets.move_to_end(identity)
        return bucket

    def _evict(self, bucket: _Bucket, now: datetime) -> None:
        cutoff = now - self._window
        for series in (bucket.requests, bucket.errors):
            while series and series[0] < cutoff:
                series.popleft()

    def _is_flagged(self, bucket: _Bucket) -> bool:
        total = len(bucket.requests)
        return (
            total > ABUSE_MIN_REQUESTS
            and len(bucket.errors) / total > ABUSE_ERROR_RATE
        )

    def check(self, identity: str, now: datetime | None = None) -> RateLimitResult:
        """Record a request for identity if within budget."""
        now = now or _now()
        bucket = self._bucket(identity)
        self._evict(bucket, now)

        flagged = self._is_flagged(bucket)
        if flagged or len(bucket.requests) >= self.limit:
            oldest = bucket.requests[0] if bucket.requests else now
            retry_after = (oldest + self._window - now).total_seconds()
            return RateLimitResult(
                allowed=False, remaining=0, limit=self.limit,
                retry_after_seconds=max(0.0, retry_after), flagged=flagged,
            )

        bucket.requests.append(now)
        return RateLimitResult(
            allowed=True,
            remaining=max(0, self.limit - len(bucket.requests)),
            limit=self.limit,
        )

    def record_error(self, identity: str, now: datetime | None = None) -> None:
        """Count a failed request toward the identity's error rate."""
        now = now or _now()
        bucket = self._bucket(identity)
        self._evict(bucket, now)
        bucket.errors.append(now)

    def reset(self, identity: str) -> None:
        self._buckets.pop(identity, None)

"""
Fixed-window rate limiting.

Authenticated callers are counted per (subject, operation) in one-minute
windows; anonymous public callers per client address in one-hour windows.
A window is identified by its formatted UTC timestamp, so the count resets
the moment the clock enters the next minute/hour.

    rate_limits:
      optimize: 60
      session: 120
      default: 100
      chat: 50
      other: 50
      public_hourly: 30

Counters are process-local. Running several workers multiplies the
effective limits.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from promptrelay.storage.models import utcnow

logger = logging.getLogger(__name__)

MINUTE_BUCKET = "%Y-%m-%d-%H-%M"
HOUR_BUCKET = "%Y-%m-%d-%H"

DEFAULT_LIMITS = {
    "optimize": 60,
    "session": 120,
    "default": 100,
    "chat": 50,
}


@dataclass
class RateLimitInfo:
    request_count: int
    limit: int
    remaining: int
    reset_at: datetime

    def to_dict(self) -> dict:
        return {
            "request_count": self.request_count,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat(),
        }


class RateLimiter:
    def __init__(
        self,
        limits: dict | None = None,
        default_limit: int = 50,
        public_limit: int = 30,
        clock=utcnow,
    ):
        self.limits = {**DEFAULT_LIMITS, **(limits or {})}
        self.default_limit = default_limit
        self.public_limit = public_limit
        self._clock = clock
        self._counts: dict[tuple[str, str, str], int] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: dict, clock=utcnow) -> "RateLimiter":
        cfg = dict(cfg or {})
        default_limit = int(cfg.pop("other", 50))
        public_limit = int(cfg.pop("public_hourly", 30))
        limits = {k.lower(): int(v) for k, v in cfg.items()}
        return cls(limits, default_limit=default_limit, public_limit=public_limit, clock=clock)

    def limit_for(self, operation: str) -> int:
        return self.limits.get((operation or "default").lower(), self.default_limit)

    # ── Internals ────────────────────────────────────────────────────────

    def _hit(self, key: tuple[str, str, str], limit: int) -> bool:
        """Atomic compare-and-increment. Denials do not count."""
        with self._lock:
            if key not in self._counts:
                self._prune(key[1], key[2])
            count = self._counts.get(key, 0)
            if count >= limit:
                return False
            self._counts[key] = count + 1
            return True

    def _prune(self, scope: str, bucket: str) -> None:
        """Drop counters of the same scope from earlier windows."""
        stale = [k for k in self._counts if k[1] == scope and k[2] != bucket]
        for k in stale:
            del self._counts[k]

    def _count(self, key: tuple[str, str, str]) -> int:
        with self._lock:
            return self._counts.get(key, 0)

    def _minute(self) -> tuple[str, datetime]:
        now = self._clock()
        reset = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
        return now.strftime(MINUTE_BUCKET), reset

    def _hour(self) -> tuple[str, datetime]:
        now = self._clock()
        reset = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        return now.strftime(HOUR_BUCKET), reset

    # ── Per-subject, per-minute ──────────────────────────────────────────

    def check(self, subject: str, operation: str = "default") -> bool:
        bucket, _ = self._minute()
        op = (operation or "default").lower()
        allowed = self._hit((subject, op, bucket), self.limit_for(op))
        if not allowed:
            logger.warning("Rate limit exceeded for %s (operation=%s)", subject, op)
        return allowed

    def info(self, subject: str, operation: str = "default") -> RateLimitInfo:
        bucket, reset = self._minute()
        op = (operation or "default").lower()
        limit = self.limit_for(op)
        count = self._count((subject, op, bucket))
        return RateLimitInfo(count, limit, max(0, limit - count), reset)

    # ── Public, per-address, per-hour ────────────────────────────────────

    def check_public(self, address: str) -> bool:
        bucket, _ = self._hour()
        allowed = self._hit((address, "public", bucket), self.public_limit)
        if not allowed:
            logger.warning("Public rate limit exceeded for %s", address)
        return allowed

    def public_info(self, address: str) -> RateLimitInfo:
        bucket, reset = self._hour()
        count = self._count((address, "public", bucket))
        return RateLimitInfo(count, self.public_limit, max(0, self.public_limit - count), reset)

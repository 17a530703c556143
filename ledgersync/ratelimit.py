"""Fixed-window rate limiting on top of ``limits`` (the engine behind slowapi).

``RateLimiter`` is the seam call sites depend on.  Both backends drive a
``limits.strategies.FixedWindowRateLimiter``; they differ only in storage.
``InMemoryRateLimiter`` keeps process-local windows with an explicit
lifecycle (constructed at app start, swept on a timer thread, stopped at
shutdown).  ``RedisRateLimiter`` shares windows through Redis so limits hold
across instances; the in-memory variant silently multiplies the effective
limit under horizontal scaling.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage, RedisStorage, Storage
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int
    window_seconds: int


# Endpoint-class presets
RATE_LIMITS: dict[str, RateLimitConfig] = {
    "standard": RateLimitConfig(limit=100, window_seconds=60),  # per org
    "ai": RateLimitConfig(limit=20, window_seconds=60),  # per org
    "auth": RateLimitConfig(limit=10, window_seconds=60),  # per IP
    "email": RateLimitConfig(limit=10, window_seconds=60),  # per org
    "webhook": RateLimitConfig(limit=200, window_seconds=60),  # per source IP
}


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds

    def retry_after(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(1, int(self.reset_at - now + 0.999))


@runtime_checkable
class RateLimiter(Protocol):
    def check(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class _FixedWindowLimiter:
    """Shared ``check`` over a limits storage backend."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        self._strategy = FixedWindowRateLimiter(storage)

    def _hit(self, key: str, limit: int, window_seconds: int) -> tuple[RateLimitItem, RateLimitDecision]:
        item = RateLimitItemPerSecond(limit, window_seconds)
        allowed = self._strategy.hit(item, key)
        stats = self._strategy.get_window_stats(item, key)
        decision = RateLimitDecision(
            allowed=allowed,
            remaining=max(0, stats.remaining),
            reset_at=stats.reset_time,
        )
        return item, decision


class InMemoryRateLimiter(_FixedWindowLimiter):
    """Process-local fixed windows with a background sweep."""

    def __init__(self, sweep_interval: float = 300.0) -> None:
        super().__init__(MemoryStorage())
        # storage key -> window reset time, for sweeping and sizing
        self._windows: dict[str, float] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def check(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        item, decision = self._hit(key, limit, window_seconds)
        with self._lock:
            self._windows[item.key_for(key)] = decision.reset_at
        return decision

    def sweep(self) -> int:
        """Evict expired windows; returns how many were removed."""
        now = time.time()
        with self._lock:
            expired = [storage_key for storage_key, reset_at in self._windows.items() if now > reset_at]
            for storage_key in expired:
                del self._windows[storage_key]
                self._storage.clear(storage_key)
        if expired:
            logger.debug("Rate limiter swept %d expired window(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _run(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Rate limiter sweep failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="ratelimit-sweep", daemon=True)
        self._thread.start()
        logger.info("Rate limiter sweep started (interval=%ss)", self._sweep_interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        with self._lock:
            self._windows.clear()
            self._storage.reset()


class RedisRateLimiter(_FixedWindowLimiter):
    """Fixed windows shared through Redis.

    Keys expire with their window, so no sweep is needed.  If Redis is
    unreachable the request is allowed (fail open for availability).
    """

    def __init__(self, redis_url: str, storage: Storage | None = None) -> None:
        super().__init__(storage if storage is not None else RedisStorage(redis_url))

    def check(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        try:
            _, decision = self._hit(key, limit, window_seconds)
        except Exception:
            logger.warning("Redis unavailable for rate limiting - allowing %s", key, exc_info=True)
            return RateLimitDecision(allowed=True, remaining=limit, reset_at=time.time() + window_seconds)
        return decision

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None

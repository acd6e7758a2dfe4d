"""Fixed-window rate limiters for the public verification endpoints."""

import math
import threading
import time
from dataclasses import dataclass
from typing import Protocol

from django.conf import settings
from django.core.cache import caches
from django.utils.module_loading import import_string


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


class RateLimiter(Protocol):
    def check(self, key: str, limit: int, window: int) -> RateDecision:
        ...


class LocalRateLimiter:
    """Per-process buckets. Counts are not shared between workers."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._buckets = {}
        self._lock = threading.Lock()

    def check(self, key, limit, window):
        now = self._clock()
        with self._lock:
            count, reset_at = self._buckets.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window
            count += 1
            self._buckets[key] = (count, reset_at)
            if count > limit:
                return RateDecision(False, max(1, math.ceil(reset_at - now)))
            if len(self._buckets) > 10000:
                self._prune(now)
        return RateDecision(True, 0)

    def _prune(self, now):
        expired = [k for k, (_, reset_at) in self._buckets.items() if reset_at <= now]
        for k in expired:
            del self._buckets[k]

    def reset(self):
        with self._lock:
            self._buckets.clear()


class CacheRateLimiter:
    """Buckets kept in a Django cache so every instance shares one count."""

    def __init__(self, alias="default", prefix="ratelimit", clock=time.time):
        self.alias = alias
        self.prefix = prefix
        self._clock = clock

    @property
    def cache(self):
        return caches[self.alias]

    def check(self, key, limit, window):
        now = self._clock()
        window_start = int(now // window) * window
        cache_key = f"{self.prefix}:{key}:{window_start}"
        # add() is a no-op if the bucket already exists
        self.cache.add(cache_key, 0, timeout=window + 1)
        try:
            count = self.cache.incr(cache_key)
        except ValueError:
            # bucket expired between add() and incr()
            self.cache.set(cache_key, 1, timeout=window + 1)
            count = 1
        if count > limit:
            return RateDecision(False, max(1, math.ceil(window_start + window - now)))
        return RateDecision(True, 0)


_default_limiter = None
_default_limiter_path = None


def get_rate_limiter():
    """Limiter configured by ``DOCUMENT_RATE_LIMITER``, built once per process."""
    global _default_limiter, _default_limiter_path
    path = getattr(
        settings, "DOCUMENT_RATE_LIMITER", "documents.services.rate_limit.LocalRateLimiter"
    )
    if _default_limiter is None or path != _default_limiter_path:
        _default_limiter = import_string(path)()
        _default_limiter_path = path
    return _default_limiter

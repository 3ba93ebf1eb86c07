"""
Per-address request ceilings over a rolling time window.
"""
import logging
import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from fastapi import Request

from errors import RateLimited

logger = logging.getLogger(__name__)


class RollingWindowLimiter:
    """Allows at most `max_requests` hits per key in any `window_seconds` span."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._next_sweep = 0.0

    def hit(self, key: str) -> bool:
        now = self.clock()
        cutoff = now - self.window_seconds
        with self._lock:
            self._sweep(now, cutoff)
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def _sweep(self, now: float, cutoff: float) -> None:
        # Drops keys whose newest hit has expired, at most once per window. Lock held.
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _enforce(request: Request, limiter_name: str) -> None:
    limiter = getattr(request.app.state, limiter_name, None)
    if limiter is None:
        return
    key = _client_key(request)
    if not limiter.hit(key):
        logger.warning("Rate limit (%s) exceeded for %s on %s", limiter_name, key, request.url.path)
        raise RateLimited()


def general_rate_limit(request: Request) -> None:
    _enforce(request, "limiter")


def auth_rate_limit(request: Request) -> None:
    _enforce(request, "auth_limiter")

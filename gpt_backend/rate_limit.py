"""
In-memory sliding-window rate limiter, keyed by client IP.

Windows are checked in order and a request is counted in a window before
that window is checked, so a rejected request still uses up quota. A breach
stops evaluation, later windows do not see the request.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Sequence, Tuple

from fastapi import Request

from gpt_backend.config import Settings
from gpt_backend.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateWindow:
    limit: int
    seconds: float
    message: str


def default_windows(settings: Settings) -> List[RateWindow]:
    return [
        RateWindow(settings.rate_limit_minute, 60, "Too many requests, please try again later."),
        RateWindow(settings.rate_limit_hour, 60 * 60, "Hourly request limit exceeded. Try again later."),
        RateWindow(settings.rate_limit_day, 24 * 60 * 60, "Daily request limit exceeded. Come back tomorrow."),
    ]


class SlidingWindowLimiter:
    def __init__(
        self,
        windows: Sequence[RateWindow],
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60,
    ):
        self.windows = list(windows)
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._hits: Dict[Tuple[int, str], Deque[float]] = defaultdict(deque)
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def _prune(self, idx: int, hits: Deque[float], now: float) -> None:
        horizon = now - self.windows[idx].seconds
        while hits and hits[0] <= horizon:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        # Forget clients whose hits have all aged out of their window.
        for (idx, key), hits in list(self._hits.items()):
            self._prune(idx, hits, now)
            if not hits:
                del self._hits[(idx, key)]
        self._last_sweep = now

    def hit(self, key: str, route: str = "") -> None:
        """Record a request for key; raise RateLimitExceeded on the first breached window."""
        now = self.clock()
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)
            for idx, window in enumerate(self.windows):
                hits = self._hits[(idx, key)]
                self._prune(idx, hits, now)
                hits.append(now)
                if len(hits) > window.limit:
                    logger.warning(
                        "Rate limit exceeded for IP: %s | Route: %s | Limit: %d requests",
                        key,
                        route,
                        window.limit,
                    )
                    raise RateLimitExceeded(window.message, window.limit)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def enforce_rate_limit(request: Request) -> None:
    limiter: SlidingWindowLimiter = request.app.state.rate_limiter
    client_ip = request.client.host if request.client else "unknown"
    limiter.hit(client_ip, request.url.path)

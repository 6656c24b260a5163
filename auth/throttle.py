"""
auth/throttle.py -- Per-client-address login attempt limiter.

Moving window: at most max_attempts hits per window_seconds for one client
address, where the window slides with each attempt rather than resetting on
minute boundaries. Every attempt counts -- the gate runs before the
credentials are checked, so a correct password does not earn a free pass.

Backed by the `limits` package (the engine slowapi is built on):
MovingWindowRateLimiter.hit() checks and records an attempt in one step under
MemoryStorage's lock, so two concurrent requests cannot both slip in as the
10th attempt.

State is in-process memory. Horizontally scaled deployments each keep their
own counters; moving to a shared store means swapping MemoryStorage for a
Redis storage, nothing else here changes.

Layer rule: no imports from api/, audit/, or inventory/.
"""

from __future__ import annotations

import logging
import math
import time

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from auth.errors import TooManyAttempts

logger = logging.getLogger("homeinv.auth")

_NAMESPACE = "login"


class LoginThrottle:
    """Moving-window attempt counter keyed by client address.

    Usage:
        throttle = LoginThrottle(max_attempts=10, window_seconds=60)
        throttle.hit("203.0.113.7")   # raises TooManyAttempts on the 11th call within 60s
    """

    def __init__(self, max_attempts: int = 10, window_seconds: int = 60) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._item = RateLimitItemPerSecond(max_attempts, window_seconds)
        self._storage = MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self._storage)

    def hit(self, client_address: str) -> None:
        """Record one attempt for client_address, or raise TooManyAttempts."""
        if self._limiter.hit(self._item, _NAMESPACE, client_address):
            return
        stats = self._limiter.get_window_stats(self._item, _NAMESPACE, client_address)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        logger.warning("Login throttled for %s (retry after %ds)", client_address, retry_after)
        raise TooManyAttempts(retry_after)

    def remaining(self, client_address: str) -> int:
        return self._limiter.get_window_stats(self._item, _NAMESPACE, client_address).remaining

    def reset(self) -> None:
        """Forget every counter. Used by tests and by operators after an incident."""
        self._storage.reset()

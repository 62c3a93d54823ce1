import logging
import math
import threading
import time
from typing import Callable

from fastapi import Request

from dataweb.app.config import settings
from dataweb.app.errors import RateLimitedError

logger = logging.getLogger("dataweb.ratelimit")


class RateLimiter:
    """Fixed-window request counter keyed by client address."""

    def __init__(self, calls: int, period: int, clock: Callable[[], float] = time.monotonic):
        self.calls = calls
        self.period = period
        self.clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self.lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.period]
        for key in expired:
            del self._windows[key]

    def hit(self, key: str) -> float | None:
        """Count one request for ``key``.

        Returns None when allowed, otherwise the seconds until the window resets.
        """
        with self.lock:
            now = self.clock()
            start, count = self._windows.get(key, (now, 0))
            if now - start >= self.period:
                self._prune(now)
                start, count = now, 0
            if count >= self.calls:
                return self.period - (now - start)
            self._windows[key] = (start, count + 1)
            return None

    def reset(self) -> None:
        with self.lock:
            self._windows.clear()


class RateLimit:
    """FastAPI dependency rejecting requests once ``limiter`` is exhausted."""

    def __init__(self, limiter: RateLimiter, message: str):
        self.limiter = limiter
        self.message = message

    def __call__(self, request: Request) -> None:
        client = request.client.host if request.client else "anonymous"
        retry_after = self.limiter.hit(client)
        if retry_after is not None:
            logger.warning("Rate limit hit: client=%s path=%s", client, request.url.path)
            raise RateLimitedError(
                self.message,
                headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
            )


auth_limiter = RateLimiter(calls=settings.AUTH_RATE_LIMIT, period=settings.RATE_LIMIT_WINDOW_SECONDS)
chat_limiter = RateLimiter(calls=settings.CHAT_RATE_LIMIT, period=settings.RATE_LIMIT_WINDOW_SECONDS)

auth_rate_limit = RateLimit(auth_limiter, "Too many auth attempts — try again in a minute")
chat_rate_limit = RateLimit(chat_limiter, "Too many requests — slow down")

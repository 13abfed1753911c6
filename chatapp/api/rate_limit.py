"""
Rate Limiting - Fixed-window request cap per client IP for /api routes.

State is in-process; each worker enforces its own window.
"""

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from structlog import get_logger

from chatapp.config import settings
from chatapp.exceptions import RateLimitExceededError
from chatapp.observability import metrics

logger = get_logger(__name__)

RATE_LIMITED_PATH_PREFIX = "/api"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of counting one request."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the window resets


class FixedWindowRateLimiter:
    """
    Counts requests per key in fixed windows of window_seconds.

    The first request from a key opens its window; the count resets when the
    window elapses.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}  # key -> (window_start, count)
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for key and decide whether it is allowed."""
        with self._lock:
            now = self._clock()
            window_start, count = self._windows.get(key, (now, 0))
            if now - window_start >= self.window_seconds:
                window_start, count = now, 0

            count += 1
            self._windows[key] = (window_start, count)
            self._prune(now)

            reset_after = max(0, int(window_start + self.window_seconds - now))
            return RateLimitDecision(
                allowed=count <= self.max_requests,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - count),
                reset_after=reset_after,
            )

    def reset(self) -> None:
        """Reset the limiter state. Used by tests."""
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        """Drop expired windows once the table grows."""
        if len(self._windows) < 10000:
            return
        expired = [
            k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds
        ]
        for k in expired:
            del self._windows[k]


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request.

    X-Forwarded-For is only honoured when TRUST_PROXY is enabled, otherwise a
    client could spoof it to dodge the limit.
    """
    if settings.trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# Global limiter instance
limiter = FixedWindowRateLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject /api requests over the per-IP cap with 429 RATE_LIMITED."""

    def __init__(self, app: ASGIApp, rate_limiter: FixedWindowRateLimiter | None = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter or limiter

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.method.upper() == "OPTIONS" or not request.url.path.startswith(
            RATE_LIMITED_PATH_PREFIX
        ):
            return await call_next(request)

        client_ip = get_client_ip(request)
        decision = self.rate_limiter.hit(client_ip)
        headers = {
            "RateLimit-Limit": str(decision.limit),
            "RateLimit-Remaining": str(decision.remaining),
            "RateLimit-Reset": str(decision.reset_after),
        }

        if not decision.allowed:
            error = RateLimitExceededError(decision.reset_after)
            metrics.rate_limited_total.inc()
            logger.warning("rate_limit_exceeded", client_ip=client_ip, path=request.url.path)
            headers["Retry-After"] = str(error.retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content={"message": error.message, "code": error.code},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

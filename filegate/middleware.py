import asyncio
import logging
import math
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from filegate.errors import error_body

logger = logging.getLogger(__name__)

RATE_LIMITED_PREFIX = "/api"

CallNext = Callable[[Request], Awaitable[Response]]


@dataclass
class RateLimitState:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float


class FixedWindowRateLimiter:
    """Per-client request counter that resets every ``window_seconds``."""

    def __init__(self, *, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[float, int]] = {}
        self._last_eviction = clock()

    def hit(self, client_key: str) -> RateLimitState:
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(client_key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[client_key] = (started, count)
            if now - self._last_eviction >= self.window_seconds:
                self._evict_expired(now)
                self._last_eviction = now

        return RateLimitState(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(self.max_requests - count, 0),
            reset_after=max(started + self.window_seconds - now, 0.0),
        )

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._windows)

    def _evict_expired(self, now: float) -> None:
        # Runs at most once per window, under the lock.
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]


def _rate_limit_headers(state: RateLimitState) -> dict[str, str]:
    return {
        "RateLimit-Limit": str(state.limit),
        "RateLimit-Remaining": str(state.remaining),
        "RateLimit-Reset": str(math.ceil(state.reset_after)),
    }


async def rate_limit_middleware(request: Request, call_next: CallNext) -> Response:
    if not request.url.path.startswith(RATE_LIMITED_PREFIX):
        return await call_next(request)

    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    client_key = request.client.host if request.client else "unknown"
    state = limiter.hit(client_key)
    headers = _rate_limit_headers(state)
    if not state.allowed:
        logger.warning("Rate limit exceeded for %s", client_key)
        headers["Retry-After"] = headers["RateLimit-Reset"]
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=error_body(
                code="RATE_LIMIT_EXCEEDED",
                error="Too many requests",
                message="Please try again later",
                request=request,
            ),
            headers=headers,
        )

    response = await call_next(request)
    response.headers.update(headers)
    return response


async def request_timeout_middleware(request: Request, call_next: CallNext) -> Response:
    timeout = request.app.state.settings.request_timeout_seconds
    try:
        return await asyncio.wait_for(call_next(request), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("Request %s %s exceeded %ss", request.method, request.url.path, timeout)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=error_body(
                code="SERVICE_UNAVAILABLE",
                error="Request timed out",
                message=f"Request exceeded {timeout} seconds",
                request=request,
            ),
        )


async def request_logging_middleware(request: Request, call_next: CallNext) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
}


async def security_headers_middleware(request: Request, call_next: CallNext) -> Response:
    """Attach security-focused response headers."""
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response

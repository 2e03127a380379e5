"""Per-client fixed-window rate limiting.

Counters live in process memory, so they reset on restart and are not
shared between workers.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.middleware.base import BaseHTTPMiddleware


@dataclass
class Window:
    started_at: float
    count: int = 0


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: float


class FixedWindowRateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, Window] = {}
        self._last_prune = clock()

    def _prune(self, now: float) -> None:
        """Drop windows that have already expired."""
        if now - self._last_prune < self.window_seconds:
            return
        cutoff = now - self.window_seconds
        self._windows = {
            k: w for k, w in self._windows.items() if w.started_at > cutoff
        }
        self._last_prune = now

    def hit(self, key: str) -> RateLimitResult:
        now = self.clock()
        self._prune(now)

        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.window_seconds:
            window = Window(started_at=now)
            self._windows[key] = window

        window.count += 1
        return RateLimitResult(
            allowed=window.count <= self.max_requests,
            remaining=max(0, self.max_requests - window.count),
            reset_in=window.started_at + self.window_seconds - now,
        )

    def reset(self) -> None:
        self._windows.clear()


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: FixedWindowRateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next: Callable):
        result = self.limiter.hit(client_key(request))
        headers = {
            "X-RateLimit-Limit": str(self.limiter.max_requests),
            "X-RateLimit-Remaining": str(result.remaining),
        }

        if not result.allowed:
            headers["Retry-After"] = str(max(1, math.ceil(result.reset_in)))
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "Too many requests, please try again later."},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

"""Request guards for the public API: rate limits, referer check, headers."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class RateLimiter:
    """Fixed-window request counter per client address.

    Usable directly as a FastAPI dependency. Expired windows are swept out
    once per window length so idle clients do not accumulate.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        message: str = "Too many requests, please try again later.",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now

    def hit(self, key: str) -> bool:
        """Count a request for `key`; return False once the window is exhausted."""
        now = self._clock()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)

        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        count += 1
        self._windows[key] = (started, count)
        return count <= self.max_requests

    def reset(self) -> None:
        self._windows.clear()

    async def __call__(self, request: Request) -> None:
        key = client_address(request)
        if not self.hit(key):
            logger.warning(f"Rate limit exceeded for {key} on {request.url.path}")
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=self.message)


def client_address(request: Request) -> str:
    """The caller's address, taken from X-Forwarded-For when the proxy is trusted."""
    if getattr(request.app.state, "trust_proxy", False):
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def is_allowed_source(source: str | None, allowed: list[str]) -> bool:
    if not source:
        return False
    return any(source.startswith(domain) for domain in allowed)


async def check_referer(request: Request) -> None:
    """Dependency that rejects requests not coming from an allowed site.

    Only enforced in production; API calls without a Referer are rejected.
    """
    if not request.app.state.is_production:
        return

    allowed = request.app.state.allowed_origins
    origin = request.headers.get("origin")
    referer = request.headers.get("referer")

    if origin and not is_allowed_source(origin, allowed):
        logger.warning(f"Blocked request from invalid origin: {origin}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    if not referer:
        logger.warning(f"Blocked request with no referer: {client_address(request)}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    if not is_allowed_source(referer, allowed):
        logger.warning(f"Blocked request from invalid referer: {referer}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


async def add_security_headers(request: Request, call_next):
    """HTTP middleware setting conservative security headers on every response."""
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if request.app.state.is_production:
        response.headers.setdefault("Strict-Transport-Security", "max-age=15552000; includeSubDomains")
    return response

"""Boundary policies applied to every HTTP request."""
from __future__ import annotations

import logging
import math
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Tuple

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' 'unsafe-eval' https://unpkg.com https://cdnjs.cloudflare.com",
        "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
        "font-src 'self' https://fonts.gstatic.com",
        "img-src 'self' data: https:",
        "connect-src 'self'",
        "base-uri 'self'",
        "form-action 'self'",
        "frame-ancestors 'self'",
        "object-src 'none'",
    ]
)

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
}


class SlidingWindowRateLimiter:
    """Counts hits per key over a trailing window of ``window_seconds``."""

    _SWEEP_EVERY = 1000

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._calls = 0

    def hit(self, key: str) -> Tuple[bool, int, float]:
        """Record a hit for ``key``.

        Returns ``(allowed, remaining, retry_after_seconds)``; rejected hits
        are not recorded.
        """

        now = self._clock()
        self._calls += 1
        if self._calls % self._SWEEP_EVERY == 0:
            self._sweep(now)

        hits = self._hits[key]
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = self.window_seconds - (now - hits[0])
            return False, 0, max(retry_after, 0.0)

        hits.append(now)
        return True, self.limit - len(hits), 0.0

    def _sweep(self, now: float) -> None:
        stale = [
            key
            for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= self.window_seconds
        ]
        for key in stale:
            del self._hits[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        limiter: SlidingWindowRateLimiter,
        path_prefix: str = "/api/",
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        allowed, remaining, retry_after = self.limiter.hit(client)
        if not allowed:
            logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
            return JSONResponse(
                {"error": "Too many requests, please try again later."},
                status_code=429,
                headers={
                    "Retry-After": str(math.ceil(retry_after)),
                    "RateLimit-Limit": str(self.limiter.limit),
                    "RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["RateLimit-Limit"] = str(self.limiter.limit)
        response.headers["RateLimit-Remaining"] = str(remaining)
        return response


class _BodyTooLarge(Exception):
    pass


class BodySizeLimitMiddleware:
    """Caps request bodies at ``max_body_bytes``.

    A declared ``Content-Length`` is checked up front; bodies without one
    (chunked uploads) are counted as the application reads them.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                response = JSONResponse({"error": "Invalid Content-Length header"}, status_code=400)
                await response(scope, receive, send)
                return
            if size > self.max_body_bytes:
                logger.warning("Rejected %d byte request body on %s", size, scope["path"])
                await self._reject(scope, receive, send)
                return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise _BodyTooLarge()
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except _BodyTooLarge:
            if response_started:
                raise
            logger.warning(
                "Rejected streamed request body over %d bytes on %s",
                self.max_body_bytes,
                scope["path"],
            )
            await self._reject(scope, receive, send)

    @staticmethod
    async def _reject(scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse({"error": "Payload too large"}, status_code=413)
        await response(scope, receive, send)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

"""Request hardening for the Orion API.

Three layers, all driven by ``[orion.server]``:

- Security headers on every response (:class:`SecurityHeadersMiddleware`).
- An ``Origin`` allowlist check on the chat, approvals and event routes.
  CORS only tells browsers what they may read; this rejects the request on
  the server with 403.
- A per-client token bucket on the state-changing POST routes, answered
  with 429 and ``Retry-After`` when empty.

The checks are FastAPI dependencies that read the :class:`SecurityPolicy`
stored on ``app.state.security`` by :func:`install_security`.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from orion.config import ServerConfig

logger = logging.getLogger(__name__)

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": "; ".join(
        [
            "default-src 'self'",
            "script-src 'self' 'unsafe-inline'",
            "style-src 'self' 'unsafe-inline'",
            "img-src 'self' data:",
            "connect-src 'self'",
            "font-src 'self' data:",
            "frame-ancestors 'none'",
        ]
    ),
}


class OriginNotAllowedError(Exception):
    """Raised when a request's ``Origin`` is outside the allowlist."""

    def __init__(self, origin: str) -> None:
        super().__init__(f"Origin not allowed: {origin}")
        self.origin = origin


class RateLimitedError(Exception):
    """Raised when a client has exhausted its request budget."""

    def __init__(self, key: str, retry_after: float) -> None:
        super().__init__("Too many requests; slow down")
        self.key = key
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Origin allowlist
# ---------------------------------------------------------------------------


def _origin_matches(origin: str, allowed: str) -> bool:
    got = urlsplit(origin)
    want = urlsplit(allowed)
    if not got.hostname or not want.hostname or got.scheme != want.scheme:
        return False
    if want.port is not None and got.port != want.port:
        return False
    if want.hostname.startswith("*."):
        suffix = want.hostname[2:]
        return got.hostname == suffix or got.hostname.endswith(f".{suffix}")
    return got.hostname == want.hostname


def is_origin_allowed(origin: str | None, allowlist: list[str]) -> bool:
    """Return True when *origin* matches an entry of *allowlist*.

    Requests without an ``Origin`` header (same-origin navigation, curl) are
    allowed. Entries may use a leading ``*.`` to cover subdomains; an entry
    without a port accepts any port.
    """
    if not origin:
        return True
    try:
        return any(_origin_matches(origin, allowed) for allowed in allowlist)
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Token bucket rate limiting
# ---------------------------------------------------------------------------


@dataclass
class TokenBucket:
    """Token bucket refilled continuously at ``refill_rate`` tokens per second."""

    capacity: int
    tokens: float
    refill_rate: float
    last_refill: float

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, now: float) -> bool:
        """Take one token. Returns False when the bucket is empty."""
        self.refill(now)
        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False

    def seconds_until_available(self) -> float:
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.refill_rate


class RateLimiter:
    """Per-key token buckets with a shared per-minute budget."""

    def __init__(self, rate_per_minute: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.rate_per_minute = rate_per_minute
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}

    def check(self, key: str) -> float | None:
        """Consume one token for *key*.

        Returns None when admitted, otherwise the seconds until a token frees up.
        """
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(
                capacity=self.rate_per_minute,
                tokens=float(self.rate_per_minute),
                refill_rate=self.rate_per_minute / 60.0,
                last_refill=now,
            )
            self._buckets[key] = bucket
        if bucket.consume(now):
            return None
        return bucket.seconds_until_available()


def client_key(request: Request) -> str:
    """Identify the caller as ``<ip>:<session>`` for rate limiting.

    The ip is the first ``X-Forwarded-For`` hop, then ``X-Real-IP``, then the
    socket peer. The session comes from a ``session_id`` query parameter or
    an ``X-Session-Id`` header.
    """
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    ip = (
        forwarded
        or request.headers.get("x-real-ip")
        or (request.client.host if request.client else None)
        or "anonymous"
    )
    session = (
        request.query_params.get("session_id")
        or request.headers.get("x-session-id")
        or "no-session"
    )
    return f"{ip}:{session}"


# ---------------------------------------------------------------------------
# Policy and FastAPI wiring
# ---------------------------------------------------------------------------


@dataclass
class SecurityPolicy:
    """Security settings for one application instance."""

    allowed_origins: list[str] = field(default_factory=list)
    enforce_origin: bool = True
    security_headers: bool = True
    limiter: RateLimiter | None = None

    @classmethod
    def from_config(cls, server: ServerConfig) -> SecurityPolicy:
        limiter = RateLimiter(server.rate_limit_per_minute) if server.rate_limit_per_minute else None
        return cls(
            allowed_origins=list(server.cors_origins),
            enforce_origin=server.enforce_origin,
            security_headers=server.security_headers,
            limiter=limiter,
        )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add :data:`SECURITY_HEADERS` to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


def _policy(request: Request) -> SecurityPolicy | None:
    return getattr(request.app.state, "security", None)


async def require_allowed_origin(request: Request) -> None:
    """Dependency: reject browser requests from origins outside the allowlist."""
    policy = _policy(request)
    if policy is None or not policy.enforce_origin:
        return
    origin = request.headers.get("origin")
    if not is_origin_allowed(origin, policy.allowed_origins):
        logger.warning("Rejected request from origin %s to %s", origin, request.url.path)
        raise OriginNotAllowedError(origin or "")


async def enforce_rate_limit(request: Request) -> None:
    """Dependency: spend one token from the caller's bucket or raise 429."""
    policy = _policy(request)
    if policy is None or policy.limiter is None:
        return
    key = client_key(request)
    retry_after = policy.limiter.check(key)
    if retry_after is not None:
        logger.info("Rate limited %s on %s", key, request.url.path)
        raise RateLimitedError(key, retry_after)


def install_security(app: FastAPI, server: ServerConfig) -> SecurityPolicy:
    """Attach the policy to *app* and add the headers middleware when enabled."""
    policy = SecurityPolicy.from_config(server)
    app.state.security = policy
    if policy.security_headers:
        app.add_middleware(SecurityHeadersMiddleware)
    return policy


def retry_after_header(exc: RateLimitedError) -> str:
    return str(max(1, math.ceil(exc.retry_after)))

"""
Fixed-window rate limiting per client address.

Uses slowapi's Limiter with the limits fixed-window strategy. The limiter is
owned by the app (constructed in create_app and stored on app.state) with
its own in-memory storage, so tests get a fresh one per app.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from limits import RateLimitItem, RateLimitItemPerSecond
from slowapi import Limiter
from slowapi.util import get_remote_address

from core.errors import ErrorCode

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {"/", "/health"}


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


def client_id_for(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


class RateLimiter:
    """Allows `max_requests` hits per client in each window of `window_seconds`."""

    def __init__(self, max_requests: int, window_seconds: int, storage_uri: str = "memory://"):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.item: RateLimitItem = RateLimitItemPerSecond(max_requests, window_seconds)
        self.limiter = Limiter(
            key_func=client_id_for,
            storage_uri=storage_uri,
            strategy="fixed-window",
            headers_enabled=True,
        )

    def hit(self, client_id: str) -> RateLimitDecision:
        allowed = self.limiter.limiter.hit(self.item, client_id)
        reset_at, remaining = self.limiter.limiter.get_window_stats(self.item, client_id)
        return RateLimitDecision(
            allowed=allowed,
            limit=self.max_requests,
            remaining=remaining,
            reset_at=reset_at,
        )

    def reset(self) -> None:
        self.limiter.reset()


async def rate_limit_middleware(request: Request, call_next: Callable) -> Response:
    """Apply the app's limiter to everything except health and banner routes."""
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None or request.url.path in EXEMPT_PATHS or request.method == "OPTIONS":
        return await call_next(request)

    client = client_id_for(request)
    decision = limiter.hit(client)
    if not decision.allowed:
        logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
        retry_after = max(1, int(decision.reset_at - time.time()))
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "error": "Too many requests, please try again later",
                "code": ErrorCode.RATE_LIMITED.value,
            },
            headers={**decision.headers(), "Retry-After": str(retry_after)},
        )

    response = await call_next(request)
    response.headers.update(decision.headers())
    return response

"""
Rate Limiting for public booking routes.

Sliding window per client IP, shared by every public route. The limiter
lives on app.state.rate_limiter (built from settings in main.py), so tests
can swap in their own.

Usage:
    @router.post("/tenants/{tenant_id}/bookings", dependencies=[Depends(enforce_public_rate_limit)])
    async def create_booking(...):
        ...
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request

logger = logging.getLogger(__name__)


class RateLimitExceeded(Exception):
    def __init__(self, limit: int, window_seconds: int, retry_after: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        super().__init__(f"Too many requests. Limit: {limit} per {window_seconds}s")

    @property
    def headers(self) -> dict:
        return {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
        }


# ────────────────────────────────────────────────────────────────
# In-Memory Rate Limiter
# ────────────────────────────────────────────────────────────────

class RateLimiter:
    """
    In-memory sliding-window rate limiter.

    For multiple servers, put a shared limiter (e.g. at the proxy) in front.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
        cleanup_interval: int = 300,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        # Structure: {ip_address: [timestamp, ...]}
        self.requests: Dict[str, list] = defaultdict(list)
        self.cleanup_interval = cleanup_interval
        self.last_cleanup = clock()

    def _cleanup_old_requests(self, now: float) -> None:
        """Drop IPs with no request inside the window, at most once per cleanup_interval."""
        if now - self.last_cleanup < self.cleanup_interval:
            return

        cutoff = now - self.window_seconds
        for ip in list(self.requests.keys()):
            recent = [ts for ts in self.requests[ip] if ts > cutoff]
            if recent:
                self.requests[ip] = recent
            else:
                del self.requests[ip]

        self.last_cleanup = now
        logger.debug(f"Rate limiter cleanup: {len(self.requests)} IPs tracked")

    @staticmethod
    def client_ip(request: Request) -> str:
        """X-Forwarded-For first (proxied requests), then the socket peer."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    def check(self, client_ip: str) -> Tuple[bool, dict]:
        """
        Record a hit for client_ip if it is within the limit.

        Returns:
            (is_allowed, metadata) with remaining, reset_time, total_requests
        """
        now = self.clock()
        self._cleanup_old_requests(now)
        window_start = now - self.window_seconds

        recent = [ts for ts in self.requests[client_ip] if ts > window_start]
        self.requests[client_ip] = recent

        is_allowed = len(recent) < self.max_requests
        reset_time = (min(recent) if recent else now) + self.window_seconds
        if is_allowed:
            recent.append(now)

        return is_allowed, {
            "remaining": max(0, self.max_requests - len(recent)),
            "reset_time": int(reset_time),
            "total_requests": len(recent),
            "limit": self.max_requests,
            "window_seconds": self.window_seconds,
        }

    def clear(self, ip_address: Optional[str] = None) -> None:
        if ip_address:
            self.requests.pop(ip_address, None)
        else:
            self.requests.clear()


# ────────────────────────────────────────────────────────────────
# FastAPI Dependency
# ────────────────────────────────────────────────────────────────

async def enforce_public_rate_limit(request: Request) -> None:
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return

    client_ip = limiter.client_ip(request)
    is_allowed, metadata = limiter.check(client_ip)
    if not is_allowed:
        retry_after = max(1, metadata["reset_time"] - int(limiter.clock()))
        logger.warning(
            f"[RATE_LIMIT] Blocked request from {client_ip} to {request.url.path}: "
            f"{metadata['total_requests']}/{metadata['limit']} in {metadata['window_seconds']}s window"
        )
        raise RateLimitExceeded(metadata["limit"], metadata["window_seconds"], retry_after)

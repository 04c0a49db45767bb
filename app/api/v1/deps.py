"""API dependencies: service access and rate limiting."""
from __future__ import annotations

import re
import time

from cachetools import TTLCache
from fastapi import HTTPException, Request, status

from app.api.models.errors import ErrorCodes, error_detail
from app.api.services.audit_runner import AuditRunner, audit_runner
from site_audit.config.settings import settings
from site_audit.pipeline.service import AuditService

# Valid audit ID pattern (32 hex chars)
AUDIT_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$")


class APIRateLimiter:
    """Sliding-window rate limiter with automatic TTL-based cleanup."""

    def __init__(self, limit: int | None = None, max_identifiers: int = 10000):
        self.limit = limit or settings.api.start_rate_limit
        # TTL = 2x rate limit window to ensure entries live long enough
        # Max 10k identifiers to cap memory usage
        ttl = settings.api.rate_limit_window * 2
        self._requests: TTLCache[str, list[float]] = TTLCache(
            maxsize=max_identifiers, ttl=ttl
        )

    @staticmethod
    def _get_identifier(request: Request) -> str:
        """Get rate limit identifier (client IP)."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def check(self, request: Request) -> tuple[bool, int, int]:
        """
        Check if request is within rate limit.

        Returns:
            (allowed, remaining, reset_seconds)
        """
        identifier = self._get_identifier(request)
        window = settings.api.rate_limit_window

        now = time.time()
        window_start = now - window

        # Clean old requests within window
        requests = [t for t in self._requests.get(identifier, []) if t > window_start]

        current_count = len(requests)
        remaining = max(0, self.limit - current_count - 1)

        if current_count >= self.limit:
            # Calculate reset time from oldest request in window
            oldest = min(requests) if requests else now
            reset_seconds = int(oldest + window - now)
            self._requests[identifier] = requests
            return False, 0, max(1, reset_seconds)

        requests.append(now)
        self._requests[identifier] = requests
        return True, remaining, window

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance (audit creation only; polling is never limited)
start_rate_limiter = APIRateLimiter()


def get_audit_service() -> AuditService:
    return audit_runner.service


def get_audit_runner() -> AuditRunner:
    return audit_runner


def validate_audit_id(audit_id: str) -> str:
    """Reject malformed audit IDs before touching the store."""
    if not AUDIT_ID_PATTERN.match(audit_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(
                ErrorCodes.INVALID_REQUEST,
                "Invalid audit ID format. Expected 32 hex characters.",
                audit_id=audit_id,
            ),
        )
    return audit_id


async def check_start_rate_limit(request: Request) -> None:
    """Check and enforce the audit creation rate limit.

    Adds rate limit info to request.state for response headers.
    Raises HTTPException if rate limit exceeded.
    """
    allowed, remaining, reset = start_rate_limiter.check(request)

    # Store for response headers
    request.state.rate_limit_remaining = remaining
    request.state.rate_limit_reset = reset
    request.state.rate_limit_limit = start_rate_limiter.limit

    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=error_detail(
                ErrorCodes.RATE_LIMIT_EXCEEDED,
                "Too many audits started. Please slow down.",
                retry_after=reset,
                limit=start_rate_limiter.limit,
            ),
            headers={
                "Retry-After": str(reset),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(time.time()) + reset),
            },
        )

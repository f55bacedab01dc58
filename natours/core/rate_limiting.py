"""
Rate Limiting & Throttling
One application-wide request budget per client IP.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse
import logging

from natours.core.config import settings

logger = logging.getLogger(__name__)

# Initialize rate limiter; application_limits are shared by every route
limiter = Limiter(
    key_func=get_remote_address,
    application_limits=[settings.rate_limit],
    enabled=settings.rate_limit_enabled,
)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 JSON response when rate limit exceeded."""
    client_host = request.client.host if request.client else "unknown"
    logger.warning(f"Rate limit exceeded for {client_host}: {request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "status": "fail",
            "message": "Too many requests from this IP, please try again in an hour!",
        },
        headers={"Retry-After": "3600"},
    )

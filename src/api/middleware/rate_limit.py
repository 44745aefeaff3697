# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rate limiting using slowapi.

Limits are applied per client: the authenticated user when there is one,
otherwise the remote address. Counters live in process memory.

Example:
    @router.post("")
    @limiter.limit(enrollment_limit)
    async def create_enrollment(request: Request, ...):
        ...
"""

import json
import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for the client.

    Uses user ID if authenticated, otherwise uses IP address.

    Args:
        request: HTTP request.

    Returns:
        Client identifier string.
    """
    user = getattr(request.state, "user", None)
    if user:
        return f"user:{user.id}"
    return f"ip:{get_remote_address(request)}"


def enrollment_limit() -> str:
    """Limit string for submitting enrollment requests."""
    return f"{get_settings().rate_limit.enrollment_requests_per_hour}/hour"


settings = get_settings()
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit.requests_per_minute}/minute"],
    enabled=settings.rate_limit.enabled,
)


async def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns a 429 Too Many Requests response with retry information.

    Args:
        request: HTTP request.
        exc: Rate limit exceeded exception.

    Returns:
        JSON response with error details.
    """
    logger.warning(
        "Rate limit exceeded: %s for %s",
        exc.detail,
        get_client_identifier(request),
    )

    body = {
        "detail": {
            "code": "rate_limited",
            "message": "Too many requests. Please try again later.",
            "details": {"limit": str(exc.detail)},
        }
    }
    return Response(
        content=json.dumps(body),
        status_code=429,
        media_type="application/json",
        headers={"Retry-After": "60"},
    )

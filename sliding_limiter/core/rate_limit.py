"""Rate limiting dependency for FastAPI routes.

This module maps limiter decisions onto the HTTP layer:
- Allow: the route runs; X-RateLimit-* headers describe the remaining budget.
- Deny (no client identity, policy blocks it): 403 Forbidden.
- Deny (limit exceeded): 429 Too Many Requests.
- Deny (store unavailable, fail-closed): 503 Service Unavailable.

The limiter is built once by the app factory and kept on ``app.state``, so
nothing here consults process-wide settings at request time.
"""

from __future__ import annotations

import logging
import math

from fastapi import HTTPException, Request, Response, status

from sliding_limiter.services.rate_limiter import Decision, DecisionKind, RateLimiter

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> RateLimiter | None:
    """Return the limiter configured on the application, or None when disabled."""

    return getattr(request.app.state, "rate_limiter", None)


def _limit_headers(decision: Decision, limiter: RateLimiter) -> dict[str, str]:
    headers = {"X-RateLimit-Limit": str(limiter.config.max_requests)}
    if decision.remaining is not None:
        headers["X-RateLimit-Remaining"] = str(decision.remaining)
    return headers


def _raise_for_denial(decision: Decision, limiter: RateLimiter, include_headers: bool) -> None:
    if decision.kind is DecisionKind.DENY_FORBIDDEN:
        logger.warning("rate_limit.unidentified_client", extra={"decision": decision.kind.value})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Client identity could not be determined.",
        )

    if decision.kind is DecisionKind.DENY_UNAVAILABLE:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting is temporarily unavailable. Try again later.",
        )

    # Upper bound: the oldest entry in the window expires within one window.
    retry_after = math.ceil(limiter.config.time_window)
    logger.debug(
        "rate_limit.exceeded",
        extra={
            "count": decision.count,
            "limit": decision.max_requests,
            "window_s": limiter.config.time_window,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if include_headers:
        headers["Retry-After"] = str(retry_after)
        headers.update(_limit_headers(decision, limiter))

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )


async def enforce_rate_limit(request: Request, response: Response) -> None:
    """FastAPI dependency enforcing the sliding-window limit.

    Usage:
        @router.get("/items", dependencies=[Depends(enforce_rate_limit)])

    Args:
        request: FastAPI request, handed to the limiter's identifier.
        response: Response whose headers receive the remaining budget.

    Raises:
        HTTPException: 403, 429 or 503 when the request is denied.
        StoreUnavailableAppError: When the limiter propagates store failures.
    """

    limiter = get_rate_limiter(request)
    if limiter is None:
        return

    include_headers = getattr(request.app.state, "rate_limit_include_headers", True)
    decision = await limiter.evaluate(request)

    if not decision.allowed:
        _raise_for_denial(decision, limiter, include_headers)

    logger.debug(
        "rate_limit.allowed",
        extra={"count": decision.count, "limit": decision.max_requests},
    )
    if include_headers and decision.count is not None:
        response.headers.update(_limit_headers(decision, limiter))

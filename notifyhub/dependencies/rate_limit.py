"""
Rate limit dependency for FastAPI routes.
"""
from fastapi import Request

from notifyhub.errors import RateLimitExceeded
from notifyhub.routes.metrics import track_rate_limit_exceeded


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def check_rate_limit(request: Request):
    """
    Count the call against the client's window.

    The result is left on ``request.state.rate_limit`` for the quota headers.
    Raises RateLimitExceeded (rendered as 429) if the limit is exceeded.
    """
    limiter = request.app.state.context.rate_limiter
    if limiter is None:
        return

    result = await limiter.hit(client_address(request))

    if not result.allowed:
        track_rate_limit_exceeded()
        raise RateLimitExceeded(limit=result.limit, retry_after=result.retry_after)

    request.state.rate_limit = result

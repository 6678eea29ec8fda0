"""
Quota headers for rate limited routes.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """
    Copy the rate limit result onto the response.

    Runs outside the exception handlers, so error responses (404, 400, 503)
    carry the headers too.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        result = getattr(request.state, "rate_limit", None)
        if result is not None:
            response.headers["X-RateLimit-Limit"] = str(result.limit)
            response.headers["X-RateLimit-Remaining"] = str(result.remaining)

        return response

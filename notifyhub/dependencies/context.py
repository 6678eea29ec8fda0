"""
Service context dependencies for FastAPI.
"""
from fastapi import HTTPException, Request, status

from notifyhub.services.context import ServiceContext


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


async def require_broker_ready(request: Request) -> None:
    """
    Readiness gate for write paths that publish to the broker.

    Raises 503 until producer connect, admin connect and topic
    provisioning have all completed.
    """
    if not get_context(request).broker_ready:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Kafka producer not ready"
        )

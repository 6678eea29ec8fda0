"""
Notification API routes.

Request ingestion plus read access to request status and audit history.
"""
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.database import get_db
from notifyhub.dependencies.context import get_context, require_broker_ready
from notifyhub.errors import BrokerNotReadyError
from notifyhub.services.context import ServiceContext
from notifyhub.services.notification_service import NotificationService, is_acceptable
from notifyhub.services.status_service import StatusService


router = APIRouter(prefix="/api", tags=["notifications"])


@router.post(
    "/notifications",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_broker_ready)],
)
async def create_notifications(
    payload: dict[str, Any] | list[Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    context: ServiceContext = Depends(get_context),
):
    """
    Create notification request(s).

    Accepts one object or an array of
    ``{user_name, user_email, template_id, data}``. Array entries without
    template_id or data are skipped. Object in, object out; array in,
    array out.
    """
    single = isinstance(payload, dict)
    if single and not is_acceptable(payload):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="template_id and data are required"
        )

    service = NotificationService(
        db,
        context.broker,
        topic=context.settings.NOTIFICATION_TOPIC,
        max_retries=context.settings.MAX_RETRIES,
    )
    try:
        requests = await service.create_notifications([payload] if single else payload)
    except BrokerNotReadyError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    rows = [r.to_dict() for r in requests]
    return rows[0] if single else rows


@router.get("/requests", response_model=dict)
async def list_requests(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Paginated request list, newest first, with template names."""
    rows, total = await StatusService(db).list_requests(limit=limit, offset=offset)
    return {
        "requests": rows,
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/requests/{request_id}", response_model=dict)
async def get_request(request_id: int, db: AsyncSession = Depends(get_db)):
    """A single request with its processing log."""
    request = await StatusService(db).get_request_with_logs(request_id)
    if not request:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Request not found"
        )
    return request

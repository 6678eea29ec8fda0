"""
Dead-letter queue API routes.

Inspection, manual single/bulk replay and deletion of dead-lettered messages.
"""
from aiokafka.errors import KafkaError
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.database import get_db
from notifyhub.dependencies.context import get_context
from notifyhub.errors import BrokerNotReadyError, DeadLetterAlreadyRetried
from notifyhub.services.context import ServiceContext
from notifyhub.services.dead_letter_service import DeadLetterService


router = APIRouter(prefix="/api/dlq", tags=["dlq"])


def get_dead_letter_service(
    db: AsyncSession = Depends(get_db),
    context: ServiceContext = Depends(get_context),
) -> DeadLetterService:
    return DeadLetterService(
        db,
        broker=context.broker,
        topic=context.settings.NOTIFICATION_TOPIC,
        max_retries=context.settings.MAX_RETRIES,
        batch_size=context.settings.DLQ_RETRY_BATCH_SIZE,
    )


def publish_failed(e: Exception) -> HTTPException:
    if isinstance(e, BrokerNotReadyError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Failed to publish to broker: {e}"
    )


@router.get("", response_model=list[dict])
async def list_entries(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: DeadLetterService = Depends(get_dead_letter_service),
):
    """Dead-letter entries, most recent failure first."""
    entries = await service.list_entries(limit=limit, offset=offset)
    return [e.to_dict() for e in entries]


@router.get("/stats", response_model=dict)
async def get_stats(service: DeadLetterService = Depends(get_dead_letter_service)):
    return await service.stats()


@router.post("/retry-all", response_model=dict)
async def retry_all(service: DeadLetterService = Depends(get_dead_letter_service)):
    """Requeue up to one batch of entries not yet retried, oldest first."""
    try:
        entries = await service.retry_all()
    except (BrokerNotReadyError, KafkaError) as e:
        raise publish_failed(e)

    return {
        "message": f"Requeued {len(entries)} message(s)",
        "count": len(entries),
        "ids": [e.id for e in entries],
    }


@router.post("/{entry_id}/retry", response_model=dict)
async def retry_entry(entry_id: int, service: DeadLetterService = Depends(get_dead_letter_service)):
    try:
        entry = await service.retry_entry(entry_id)
    except (BrokerNotReadyError, KafkaError) as e:
        raise publish_failed(e)
    except DeadLetterAlreadyRetried as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )

    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="DLQ entry not found"
        )
    return {"message": "Message requeued", "entry": entry.to_dict()}


@router.delete("/{entry_id}", response_model=dict)
async def delete_entry(entry_id: int, service: DeadLetterService = Depends(get_dead_letter_service)):
    deleted = await service.delete_entry(entry_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="DLQ entry not found"
        )
    return {"message": "DLQ entry deleted"}

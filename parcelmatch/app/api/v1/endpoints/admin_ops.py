"""
Admin Operations API Endpoints.

Inspection and retry of background matching runs that ended up in the dead
letter queue.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from parcelmatch.app.db.session import get_db
from parcelmatch.app.models.dlq import DeadLetterQueue, DLQStatus
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.core.guards import require_role
from parcelmatch.app.core.dependencies import get_task_dispatcher
from parcelmatch.app.core.timeutils import utcnow
from parcelmatch.app.schemas.dlq import DLQItemResponse
from parcelmatch.app.services.matching_tasks import MatchingTaskDispatcher, TASK_HANDLERS

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.get("/dlq", response_model=List[DLQItemResponse])
async def list_dlq_items(
    status_filter: Optional[DLQStatus] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """List failed background matching runs, newest first."""
    query = select(DeadLetterQueue)
    if status_filter is not None:
        query = query.where(DeadLetterQueue.status == status_filter)

    result = await db.execute(
        query.order_by(DeadLetterQueue.created_at.desc(), DeadLetterQueue.id.desc()).limit(limit)
    )
    return [DLQItemResponse.model_validate(item) for item in result.scalars().all()]


@router.post("/dlq/{dlq_id}/retry")
async def retry_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    dispatcher: MatchingTaskDispatcher = Depends(get_task_dispatcher)
):
    """
    Re-dispatch a failed matching run from the Dead Letter Queue.

    The item is marked RETRYING now; the background run marks it PROCESSED
    on success or FAILED again with the new error.
    """
    result = await db.execute(select(DeadLetterQueue).where(DeadLetterQueue.id == dlq_id))
    item = result.scalar_one_or_none()

    if not item:
        raise HTTPException(status_code=404, detail="DLQ item not found")

    if item.task_name not in TASK_HANDLERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Task {item.task_name} has no handler and cannot be retried"
        )

    if item.status == DLQStatus.PROCESSED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="DLQ item was already processed"
        )

    item.status = DLQStatus.RETRYING
    item.retry_count += 1
    item.last_retry_at = utcnow()
    await db.commit()

    dispatcher.submit(item.task_name, item.payload or {}, dlq_id=item.id)

    return {"message": f"Task {item.task_name} re-dispatched", "retry_count": item.retry_count}

"""
Notification Controllers (API Routes)
======================================

FastAPI routes for the notification queue.

Enqueueing only writes the outbox row; delivery happens in the
scheduled drain.
"""

from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.infrastructure import SQLAlchemyCaseRepository
from casetrack.core import CaseNotFoundException, ConflictException
from casetrack.infrastructure.database import get_session
from casetrack.notifications.application import NotificationQueue
from casetrack.notifications.application.dto import (
    NotificationEnqueueRequest, NotificationResponse, NotificationListResponse, NotificationStatusStr
)
from casetrack.notifications.domain import Recipient
from casetrack.notifications.infrastructure import (
    SQLAlchemyNotificationRepository, SQLAlchemyTemplateRepository
)
from casetrack.shared.api.dependencies import get_clock

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ========== Dependencies ==========

async def get_notification_queue(
    session: AsyncSession = Depends(get_session),
    clock=Depends(get_clock)
) -> NotificationQueue:
    """Get notification queue instance."""
    return NotificationQueue(
        SQLAlchemyNotificationRepository(session),
        SQLAlchemyTemplateRepository(session),
        clock=clock
    )


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue a notification",
    description="""
    Put a notification on the dispatch queue.

    Exactly one recipient field must be set: `recipient_user_id`,
    `recipient_role` or `recipient_location`.

    When `dedup_hours` is given and the same notification (case, template,
    recipient, trigger event) is already pending or sent inside that
    window, the request is rejected with **409**.
    """,
    responses={
        404: {"description": "Template or case not found"},
        409: {"description": "Duplicate notification suppressed"},
        422: {"description": "Invalid recipient"}
    }
)
async def enqueue_notification(
    request: NotificationEnqueueRequest,
    session: AsyncSession = Depends(get_session),
    queue: NotificationQueue = Depends(get_notification_queue),
    clock=Depends(get_clock)
):
    if request.case_id is not None:
        if await SQLAlchemyCaseRepository(session).get(request.case_id) is None:
            raise CaseNotFoundException(request.case_id)

    recipient = Recipient(
        user_id=request.recipient_user_id,
        role=request.recipient_role,
        location=request.recipient_location
    )
    dedup_since = clock.now() - timedelta(hours=request.dedup_hours) if request.dedup_hours else None

    row = await queue.enqueue(
        request.case_id,
        request.template_name,
        recipient,
        request.trigger_event,
        request.context,
        dedup_since=dedup_since,
        scheduled_at=request.scheduled_at
    )
    if row is None:
        raise ConflictException(
            "Duplicate notification suppressed",
            {
                "template": request.template_name,
                "recipient": str(recipient),
                "trigger_event": request.trigger_event,
                "dedup_hours": request.dedup_hours
            }
        )
    return NotificationResponse.model_validate(row)


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List queued notifications",
    description="""
    List queue rows, newest first.

    **Query Parameters:**
    - `status`: `pending`, `sent` or `failed`
    - `case_id`: only rows for one case
    - `limit` / `offset`: pagination
    """
)
async def list_notifications(
    status_filter: Optional[NotificationStatusStr] = Query(None, alias="status"),
    case_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    queue: NotificationQueue = Depends(get_notification_queue)
):
    rows = await queue.list_notifications(status=status_filter, case_id=case_id, limit=limit, offset=offset)
    items = [NotificationResponse.model_validate(row) for row in rows]
    return NotificationListResponse(notifications=items, total_count=len(items))


# Export router for inclusion in main app
notifications_router = router

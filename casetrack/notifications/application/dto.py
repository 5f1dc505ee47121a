"""
Notification Application DTOs
==============================

Request and response models for the notification queue API.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


NotificationStatusStr = Literal["pending", "sent", "failed"]


class NotificationEnqueueRequest(BaseModel):
    """Request model for putting a notification on the queue."""
    case_id: Optional[UUID] = Field(None, description="Related case, if any")
    template_name: str = Field(..., min_length=1, description="Template name, e.g. 'SLA Breach Alert'")
    recipient_user_id: Optional[str] = Field(None, max_length=64)
    recipient_role: Optional[str] = Field(None, max_length=64)
    recipient_location: Optional[str] = Field(None, max_length=64)
    trigger_event: str = Field(default="manual", min_length=1, max_length=50)
    context: Dict[str, Any] = Field(default_factory=dict, description="Template placeholder values")
    dedup_hours: Optional[int] = Field(
        None, ge=1, le=720,
        description="Suppress when the same notification was queued within this many hours"
    )
    scheduled_at: Optional[datetime] = Field(None, description="Deliver no earlier than this time")

    @model_validator(mode="after")
    def one_recipient(self) -> "NotificationEnqueueRequest":
        given = [v for v in (self.recipient_user_id, self.recipient_role, self.recipient_location) if v]
        if len(given) != 1:
            raise ValueError("exactly one of recipient_user_id, recipient_role, recipient_location is required")
        return self


class NotificationResponse(BaseModel):
    """Queue row as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    case_id: Optional[UUID] = None
    template_id: int
    recipient_type: str
    recipient_user_id: Optional[str] = None
    recipient_role: Optional[str] = None
    recipient_location: Optional[str] = None
    trigger_event: str
    context_data: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatusStr
    retry_count: int
    max_retries: int
    failure_reason: Optional[str] = None
    scheduled_at: datetime
    created_at: datetime
    sent_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total_count: int

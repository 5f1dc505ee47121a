"""
Notification Infrastructure Models
===================================

SQLAlchemy ORM models for templates and the notification queue.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Boolean, Integer, Text, Uuid, ForeignKey, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from casetrack.config import NotificationStatus, TemplateType
from casetrack.infrastructure.database import Base
from casetrack.infrastructure.database.types import UTCDateTime, utc_now


class NotificationTemplateModel(Base):
    """
    Message template with ``{placeholder}`` fields.

    Maps to the 'notification_templates' table. Seeded from the SLA
    configuration file.
    """
    __tablename__ = "notification_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    template_type: Mapped[str] = mapped_column(String(30), nullable=False, default=TemplateType.GENERAL)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class NotificationQueueModel(Base):
    """
    Durable outbox row.

    Maps to the 'notification_queue' table. Exactly one of the recipient
    columns is set, tagged by recipient_type.
    """
    __tablename__ = "notification_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    case_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("cases.id"), nullable=True)
    template_id: Mapped[int] = mapped_column(Integer, ForeignKey("notification_templates.id"), nullable=False)

    # Recipient
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    recipient_role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    recipient_location: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    trigger_event: Mapped[str] = mapped_column(String(50), nullable=False)
    context_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Delivery tracking
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=NotificationStatus.PENDING)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    template: Mapped[NotificationTemplateModel] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_notification_queue_dedup", "case_id", "template_id", "trigger_event"),
        Index("ix_notification_queue_due", "status", "scheduled_at"),
    )

"""
Notification Infrastructure Repositories
=========================================

SQLAlchemy implementations of the queue and template repositories.
"""

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select, delete, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.infrastructure.repositories import as_uuid
from casetrack.config import NotificationStatus
from casetrack.notifications.application.services import (
    INotificationRepository, ITemplateRepository
)
from casetrack.notifications.domain import Recipient
from casetrack.notifications.infrastructure.models import (
    NotificationQueueModel, NotificationTemplateModel
)

TERMINAL_STATUSES = [NotificationStatus.SENT, NotificationStatus.FAILED]
DEDUP_STATUSES = [NotificationStatus.PENDING, NotificationStatus.SENT]


class SQLAlchemyNotificationRepository(INotificationRepository):
    """SQLAlchemy implementation of the notification queue."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields) -> NotificationQueueModel:
        if fields.get("case_id") is not None:
            fields["case_id"] = as_uuid(fields["case_id"])
        model = NotificationQueueModel(**fields)
        self._session.add(model)
        await self._session.flush()
        return model

    async def save(self, row: NotificationQueueModel) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    @staticmethod
    def _recipient_condition(recipient: Recipient):
        return and_(
            NotificationQueueModel.recipient_type == recipient.recipient_type,
            NotificationQueueModel.recipient_user_id.is_(None) if recipient.user_id is None
            else NotificationQueueModel.recipient_user_id == recipient.user_id,
            NotificationQueueModel.recipient_role.is_(None) if recipient.role is None
            else NotificationQueueModel.recipient_role == recipient.role,
            NotificationQueueModel.recipient_location.is_(None) if recipient.location is None
            else NotificationQueueModel.recipient_location == recipient.location,
        )

    @staticmethod
    def _case_condition(case_id: Any):
        if case_id is None:
            return NotificationQueueModel.case_id.is_(None)
        return NotificationQueueModel.case_id == as_uuid(case_id)

    async def exists_duplicate(
        self,
        case_id: Any,
        template_id: int,
        recipient: Recipient,
        trigger_event: str,
        since: datetime
    ) -> bool:
        stmt = (
            select(NotificationQueueModel.id)
            .where(
                self._case_condition(case_id),
                NotificationQueueModel.template_id == template_id,
                NotificationQueueModel.trigger_event == trigger_event,
                NotificationQueueModel.status.in_(DEDUP_STATUSES),
                NotificationQueueModel.created_at > since,
                self._recipient_condition(recipient),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def exists_for_template_type(self, case_id: Any, template_type: str, since: datetime) -> bool:
        stmt = (
            select(NotificationQueueModel.id)
            .join(NotificationTemplateModel, NotificationQueueModel.template_id == NotificationTemplateModel.id)
            .where(
                self._case_condition(case_id),
                NotificationTemplateModel.template_type == template_type,
                NotificationQueueModel.status != NotificationStatus.FAILED,
                NotificationQueueModel.created_at >= since,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_due(self, now: datetime, limit: int) -> List[NotificationQueueModel]:
        stmt = (
            select(NotificationQueueModel)
            .where(
                NotificationQueueModel.scheduled_at <= now,
                or_(
                    NotificationQueueModel.status == NotificationStatus.PENDING,
                    and_(
                        NotificationQueueModel.status == NotificationStatus.FAILED,
                        NotificationQueueModel.retry_count < NotificationQueueModel.max_retries,
                    ),
                ),
            )
            .order_by(NotificationQueueModel.scheduled_at.asc(), NotificationQueueModel.id.asc())
            .limit(limit)
            # Rows queued earlier in this session still need their template loaded
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list(
        self,
        status: Optional[str],
        case_id: Any,
        limit: int = 100,
        offset: int = 0
    ) -> List[NotificationQueueModel]:
        stmt = select(NotificationQueueModel)
        if status is not None:
            stmt = stmt.where(NotificationQueueModel.status == status)
        if case_id is not None:
            stmt = stmt.where(NotificationQueueModel.case_id == as_uuid(case_id))
        stmt = (
            stmt.order_by(NotificationQueueModel.created_at.desc(), NotificationQueueModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def delete_terminal_before(self, cutoff: datetime) -> int:
        stmt = delete(NotificationQueueModel).where(
            NotificationQueueModel.status.in_(TERMINAL_STATUSES),
            NotificationQueueModel.created_at < cutoff,
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def counts_by_type_and_status(
        self,
        since: datetime,
        until: Optional[datetime] = None
    ) -> List[tuple]:
        stmt = (
            select(
                NotificationTemplateModel.template_type,
                NotificationQueueModel.status,
                func.count(NotificationQueueModel.id),
            )
            .join(NotificationTemplateModel, NotificationQueueModel.template_id == NotificationTemplateModel.id)
            .where(NotificationQueueModel.created_at >= since)
            .group_by(NotificationTemplateModel.template_type, NotificationQueueModel.status)
        )
        if until is not None:
            stmt = stmt.where(NotificationQueueModel.created_at < until)
        result = await self._session.execute(stmt)
        return [tuple(row) for row in result.all()]


class SQLAlchemyTemplateRepository(ITemplateRepository):
    """SQLAlchemy implementation of the template repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_name(self, name: str, active_only: bool = True) -> Optional[NotificationTemplateModel]:
        stmt = select(NotificationTemplateModel).where(NotificationTemplateModel.name == name)
        if active_only:
            stmt = stmt.where(NotificationTemplateModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(self) -> List[NotificationTemplateModel]:
        result = await self._session.execute(
            select(NotificationTemplateModel).order_by(NotificationTemplateModel.name)
        )
        return list(result.scalars().all())

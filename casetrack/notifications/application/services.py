"""
Notification Application Services
==================================

The notification dispatch queue: a durable, deduplicated outbox and the
worker that drains it through a delivery channel.

Producers (SLA monitor, escalation engine, API) only ever insert rows;
delivery happens later in ``NotificationDispatcher.drain``.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from casetrack.config import NotificationStatus, settings
from casetrack.core import DeliveryException, ResourceNotFoundException
from casetrack.notifications.domain import Recipient
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Interfaces (Dependency Inversion) ==========

class IDeliveryChannel(ABC):
    """A transport that delivers one rendered notification."""

    name: str = "channel"

    @abstractmethod
    async def send(self, recipient: Recipient, template: Any, context: Dict[str, Any]) -> bool:
        """
        Deliver one notification.

        Returns:
            True when delivered, False when the channel declined it

        Raises:
            DeliveryException: Transient failure; the row is retried
        """

    async def close(self) -> None:
        """Release transport resources."""


class INotificationRepository(ABC):
    """Interface for queue row access."""

    @abstractmethod
    async def create(self, **fields) -> Any:
        """Insert a queue row."""

    @abstractmethod
    async def exists_duplicate(
        self,
        case_id: Any,
        template_id: int,
        recipient: Recipient,
        trigger_event: str,
        since: datetime
    ) -> bool:
        """A pending or sent row for the same key created strictly after ``since``."""

    @abstractmethod
    async def exists_for_template_type(self, case_id: Any, template_type: str, since: datetime) -> bool:
        """Any non-failed row of a template type for a case created at or after ``since``."""

    @abstractmethod
    async def list_due(self, now: datetime, limit: int) -> List[Any]:
        """Pending rows and retryable failed rows scheduled by ``now``, oldest first."""

    @abstractmethod
    async def save(self, row: Any) -> None:
        """Persist changes to a row."""

    @abstractmethod
    async def commit(self) -> None:
        """Make every saved change durable."""

    @abstractmethod
    async def list(self, status: Optional[str], case_id: Any, limit: int, offset: int) -> List[Any]:
        """Rows for the API, newest first."""

    @abstractmethod
    async def delete_terminal_before(self, cutoff: datetime) -> int:
        """Delete sent/failed rows created before cutoff."""

    @abstractmethod
    async def counts_by_type_and_status(self, since: datetime, until: Optional[datetime]) -> List[tuple]:
        """(template_type, status, count) rows."""


class ITemplateRepository(ABC):
    """Interface for template access."""

    @abstractmethod
    async def get_by_name(self, name: str, active_only: bool = True) -> Optional[Any]:
        """Get template by unique name."""


# ========== Results ==========

@dataclass
class DrainReport:
    attempted: int = 0
    sent: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


# ========== Application Services ==========

class NotificationQueue:
    """
    Producer side of the queue: enqueue with dedup, list, purge, statistics.
    """

    def __init__(
        self,
        notification_repository: INotificationRepository,
        template_repository: ITemplateRepository,
        clock: Optional[Clock] = None,
        max_retries: Optional[int] = None
    ):
        self._notifications = notification_repository
        self._templates = template_repository
        self._clock = clock or SystemClock()
        self._max_retries = max_retries or settings.notification_max_retries

    async def resolve_template(self, template: Union[str, Any]):
        """Accept a template row or a template name."""
        if not isinstance(template, str):
            return template
        row = await self._templates.get_by_name(template)
        if row is None:
            raise ResourceNotFoundException("NotificationTemplate", template)
        return row

    async def enqueue(
        self,
        case_id: Any,
        template: Union[str, Any],
        recipient: Recipient,
        trigger_event: str,
        context: Optional[Dict[str, Any]] = None,
        dedup_since: Optional[datetime] = None,
        scheduled_at: Optional[datetime] = None
    ):
        """
        Insert a pending notification unless a duplicate exists.

        A duplicate is a pending or sent row for the same case, template,
        recipient and trigger event created strictly after ``dedup_since``.
        Without ``dedup_since`` no dedup check is made.

        Returns:
            The new queue row, or None when suppressed as a duplicate
        """
        template_row = await self.resolve_template(template)
        now = self._clock.now()

        if dedup_since is not None and await self._notifications.exists_duplicate(
            case_id, template_row.id, recipient, trigger_event, dedup_since
        ):
            logger.info(
                "Duplicate notification suppressed",
                extra={
                    "case_id": str(case_id) if case_id else None,
                    "template": template_row.name,
                    "recipient": str(recipient),
                    "trigger_event": trigger_event,
                    "dedup_since": dedup_since.isoformat()
                }
            )
            return None

        row = await self._notifications.create(
            case_id=case_id,
            template_id=template_row.id,
            recipient_type=recipient.recipient_type,
            recipient_user_id=recipient.user_id,
            recipient_role=recipient.role,
            recipient_location=recipient.location,
            trigger_event=trigger_event,
            context_data=dict(context or {}),
            status=NotificationStatus.PENDING,
            retry_count=0,
            max_retries=self._max_retries,
            scheduled_at=scheduled_at or now,
            created_at=now
        )

        logger.info(
            "Notification queued",
            extra={
                "notification_id": row.id,
                "case_id": str(case_id) if case_id else None,
                "template": template_row.name,
                "recipient": str(recipient),
                "trigger_event": trigger_event
            }
        )
        return row

    async def warning_sent_recently(self, case_id: Any, template_type: str, since: datetime) -> bool:
        return await self._notifications.exists_for_template_type(case_id, template_type, since)

    async def list_notifications(
        self,
        status: Optional[str] = None,
        case_id: Any = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Any]:
        return await self._notifications.list(status, case_id, limit, offset)

    async def purge(self, retention_days: Optional[int] = None) -> int:
        """
        Delete sent and failed rows older than the retention window.

        Pending rows are never purged.
        """
        days = retention_days or settings.notification_retention_days
        cutoff = self._clock.now() - timedelta(days=days)
        deleted = await self._notifications.delete_terminal_before(cutoff)
        logger.info(
            "Notification retention purge",
            extra={"deleted": deleted, "retention_days": days, "cutoff": cutoff.isoformat()}
        )
        return deleted

    async def statistics(self, since: datetime, until: Optional[datetime] = None) -> Dict[str, Dict[str, int]]:
        """Per template type counts of sent, failed and pending rows."""
        stats: Dict[str, Dict[str, int]] = {}
        for template_type, status, count in await self._notifications.counts_by_type_and_status(since, until):
            bucket = stats.setdefault(
                template_type,
                {NotificationStatus.SENT: 0, NotificationStatus.FAILED: 0, NotificationStatus.PENDING: 0}
            )
            bucket[status] = bucket.get(status, 0) + count
        return stats


class NotificationDispatcher:
    """
    Consumer side of the queue.

    Delivers due rows through the channel. Every send is bounded by a
    timeout, and one row's failure never stops the batch. Each outcome is
    committed on its own, so a crash mid-batch never resends delivered rows.
    """

    def __init__(
        self,
        notification_repository: INotificationRepository,
        channel: IDeliveryChannel,
        clock: Optional[Clock] = None,
        timeout_seconds: Optional[float] = None,
        batch_size: Optional[int] = None
    ):
        self._notifications = notification_repository
        self._channel = channel
        self._clock = clock or SystemClock()
        self._timeout = timeout_seconds or settings.delivery_timeout_seconds
        self._batch_size = batch_size or settings.notification_batch_size

    async def drain(self) -> DrainReport:
        report = DrainReport()
        rows = await self._notifications.list_due(self._clock.now(), self._batch_size)

        for row in rows:
            report.attempted += 1
            if await self._deliver(row):
                report.sent += 1
            else:
                report.failed += 1

        if report.attempted:
            logger.info("Notification queue drained", extra=report.to_dict())
        return report

    async def _deliver(self, row) -> bool:
        recipient = Recipient.from_row(row)
        failure: Optional[str] = None

        try:
            delivered = await asyncio.wait_for(
                self._channel.send(recipient, row.template, row.context_data or {}),
                timeout=self._timeout
            )
            if not delivered:
                failure = f"{self._channel.name} declined delivery"
        except asyncio.TimeoutError:
            failure = f"Delivery timed out after {self._timeout}s"
        except DeliveryException as e:
            failure = e.message
        except Exception as e:
            logger.exception(
                "Unexpected delivery error",
                extra={"notification_id": row.id, "channel": self._channel.name}
            )
            failure = f"{type(e).__name__}: {e}"

        now = self._clock.now()
        row.last_attempt_at = now
        if failure is None:
            row.status = NotificationStatus.SENT
            row.sent_at = now
            row.failure_reason = None
        else:
            row.status = NotificationStatus.FAILED
            row.retry_count += 1
            row.failure_reason = failure[:1000]
            logger.warning(
                "Notification delivery failed",
                extra={
                    "notification_id": row.id,
                    "case_id": str(row.case_id) if row.case_id else None,
                    "recipient": str(recipient),
                    "trigger_event": row.trigger_event,
                    "retry_count": row.retry_count,
                    "max_retries": row.max_retries,
                    "reason": row.failure_reason
                }
            )
        await self._notifications.save(row)
        # A delivered row is durably sent before the next delivery starts
        await self._notifications.commit()
        return failure is None

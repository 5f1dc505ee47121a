"""
Metrics Services
=================

Daily rollup of SLA compliance and notification delivery, stored in the
database and pushed to Grafana when configured.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.infrastructure import CaseModel
from casetrack.config import NotificationStatus
from casetrack.metrics.models import DailySLAMetricsModel, DailyNotificationMetricsModel
from casetrack.notifications.application.services import NotificationQueue
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.grafana import GrafanaOTLPExporter, get_grafana_exporter
from casetrack.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


def day_bounds(day: date):
    """UTC [start, end) of a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class SQLAlchemyMetricsRepository:
    """Aggregation queries and rollup storage."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def case_counts_by_state(self, start: datetime, end: datetime) -> List[tuple]:
        """(state, total, compliant) for cases created in [start, end)."""
        compliant = func.sum(case((CaseModel.is_sla_breached.is_(False), 1), else_=0))
        stmt = (
            select(CaseModel.current_state, func.count(CaseModel.id), compliant)
            .where(CaseModel.created_at >= start, CaseModel.created_at < end)
            .group_by(CaseModel.current_state)
        )
        result = await self._session.execute(stmt)
        return [(state, total, int(ok or 0)) for state, total, ok in result.all()]

    async def replace_day(
        self,
        day: date,
        sla_rows: List[DailySLAMetricsModel],
        notification_rows: List[DailyNotificationMetricsModel]
    ) -> None:
        await self._session.execute(delete(DailySLAMetricsModel).where(DailySLAMetricsModel.metric_date == day))
        await self._session.execute(
            delete(DailyNotificationMetricsModel).where(DailyNotificationMetricsModel.metric_date == day)
        )
        self._session.add_all(sla_rows + notification_rows)
        await self._session.flush()

    async def list_day(self, day: date) -> List[DailySLAMetricsModel]:
        result = await self._session.execute(
            select(DailySLAMetricsModel)
            .where(DailySLAMetricsModel.metric_date == day)
            .order_by(DailySLAMetricsModel.state_name)
        )
        return list(result.scalars().all())


class MetricsService:
    """Builds and stores the daily rollup."""

    def __init__(
        self,
        metrics_repository: SQLAlchemyMetricsRepository,
        queue: NotificationQueue,
        exporter: Optional[GrafanaOTLPExporter] = None,
        clock: Optional[Clock] = None
    ):
        self._metrics = metrics_repository
        self._queue = queue
        self._exporter = exporter or get_grafana_exporter()
        self._clock = clock or SystemClock()

    async def rollup(self, day: Optional[date] = None) -> Dict[str, Any]:
        """
        Compute and store metrics for ``day`` (yesterday by default).

        Rows for the same day are replaced, so reruns are safe.
        """
        day = day or (self._clock.now().date() - timedelta(days=1))
        start, end = day_bounds(day)
        now = self._clock.now()

        with log_latency(logger, "metrics_rollup"):
            state_rows = []
            sla_models = []
            for state, total, compliant in await self._metrics.case_counts_by_state(start, end):
                percentage = round(compliant / total * 100, 2) if total else 100.0
                state_rows.append({
                    "state": state,
                    "total_cases": total,
                    "compliant_cases": compliant,
                    "compliance_percentage": percentage
                })
                sla_models.append(DailySLAMetricsModel(
                    metric_date=day, state_name=state, total_cases=total,
                    compliant_cases=compliant, compliance_percentage=percentage, created_at=now
                ))

            stats = await self._queue.statistics(start, end)
            notification_models = [
                DailyNotificationMetricsModel(
                    metric_date=day,
                    template_type=template_type,
                    notifications_sent=counts.get(NotificationStatus.SENT, 0),
                    notifications_failed=counts.get(NotificationStatus.FAILED, 0),
                    notifications_pending=counts.get(NotificationStatus.PENDING, 0),
                    created_at=now
                )
                for template_type, counts in sorted(stats.items())
            ]
            await self._metrics.replace_day(day, sla_models, notification_models)

        sent = sum(c.get(NotificationStatus.SENT, 0) for c in stats.values())
        failed = sum(c.get(NotificationStatus.FAILED, 0) for c in stats.values())
        exported = False
        if self._exporter.is_enabled():
            exported = await self._exporter.export_sla_metrics(day.isoformat(), state_rows, sent, failed)

        summary = {
            "metric_date": day.isoformat(),
            "states": state_rows,
            "notifications_sent": sent,
            "notifications_failed": failed,
            "exported": exported
        }
        logger.info(
            "Daily metrics rollup stored",
            extra={
                "metric_date": summary["metric_date"],
                "states": len(state_rows),
                "notifications_sent": sent,
                "notifications_failed": failed,
                "exported": exported
            }
        )
        return summary

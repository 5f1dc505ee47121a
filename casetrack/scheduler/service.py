"""
Case Scheduler
===============

Owns the periodic background work:

- sla_sweep: SLA monitor, then escalation engine, in one transaction
- notification_drain: deliver due queue rows
- metrics_rollup: store yesterday's SLA and delivery metrics
- retention_cleanup: purge old notifications and resolved escalations

Constructed once in the application lifespan and stored on ``app.state``.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from casetrack.cases.infrastructure import SQLAlchemyCaseRepository
from casetrack.config import settings
from casetrack.core import ConflictException, ResourceNotFoundException
from casetrack.escalation.repositories import (
    SQLAlchemyEscalationRuleRepository, SQLAlchemyEscalationRepository
)
from casetrack.escalation.services import EscalationEngine
from casetrack.infrastructure.database import get_session_context
from casetrack.metrics.services import MetricsService, SQLAlchemyMetricsRepository
from casetrack.notifications.application import (
    IDeliveryChannel, NotificationQueue, NotificationDispatcher
)
from casetrack.notifications.infrastructure import (
    SQLAlchemyNotificationRepository, SQLAlchemyTemplateRepository
)
from casetrack.scheduler.periodic import PeriodicTask
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.grafana import GrafanaOTLPExporter
from casetrack.shared.infrastructure.logging import get_logger
from casetrack.sla.application import SLAMonitor
from casetrack.sla.infrastructure import SLAConfigManager, ReferenceDataLoader

logger = get_logger(__name__)


class TaskName(str):
    """Names of the scheduled tasks."""
    SLA_SWEEP = "sla_sweep"
    NOTIFICATION_DRAIN = "notification_drain"
    METRICS_ROLLUP = "metrics_rollup"
    RETENTION_CLEANUP = "retention_cleanup"


def default_intervals() -> Dict[str, float]:
    """Task intervals in seconds, from settings."""
    return {
        TaskName.SLA_SWEEP: settings.sla_sweep_interval_minutes * 60,
        TaskName.NOTIFICATION_DRAIN: settings.notification_drain_interval_minutes * 60,
        TaskName.METRICS_ROLLUP: settings.metrics_rollup_interval_hours * 3600,
        TaskName.RETENTION_CLEANUP: settings.retention_cleanup_interval_days * 86400,
    }


class CaseScheduler:
    """
    Arms the periodic tasks on an AsyncIOScheduler.

    Each tick opens its own session; the task's work commits as a unit.
    """

    def __init__(
        self,
        config_manager: SLAConfigManager,
        channel: IDeliveryChannel,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Optional[Clock] = None,
        exporter: Optional[GrafanaOTLPExporter] = None,
        intervals: Optional[Dict[str, float]] = None
    ):
        self._config_manager = config_manager
        self._channel = channel
        self._session_maker = session_maker
        self._clock = clock or SystemClock()
        self._exporter = exporter
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._synced_version = 0

        intervals = {**default_intervals(), **(intervals or {})}
        self._tasks: Dict[str, PeriodicTask] = {
            name: PeriodicTask(name, func, intervals[name], clock=self._clock)
            for name, func in (
                (TaskName.SLA_SWEEP, self.sla_sweep),
                (TaskName.NOTIFICATION_DRAIN, self.notification_drain),
                (TaskName.METRICS_ROLLUP, self.metrics_rollup),
                (TaskName.RETENTION_CLEANUP, self.retention_cleanup),
            )
        }

    # ========== Lifecycle ==========

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    @property
    def tasks(self) -> Dict[str, PeriodicTask]:
        return dict(self._tasks)

    def start(self) -> None:
        """Arm every task. Must be called from the running event loop."""
        if self._scheduler is not None:
            logger.warning("Scheduler already running")
            return

        scheduler = AsyncIOScheduler(timezone="UTC")
        for name, task in self._tasks.items():
            scheduler.add_job(
                task.run,
                "interval",
                seconds=task.interval_seconds,
                id=name,
                name=name,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=60,
                replace_existing=True
            )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            "Scheduler started",
            extra={"tasks": {name: t.interval_seconds for name, t in self._tasks.items()}}
        )

    def stop(self) -> None:
        """Disarm every task (safe to call when never started)."""
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    def status(self) -> Dict[str, Any]:
        runs = [t.last_run for t in self._tasks.values() if t.last_run is not None]
        last_run: Optional[datetime] = max(runs) if runs else None
        return {
            "running": self.is_running,
            "active_task_count": len(self._tasks) if self.is_running else 0,
            "last_run_timestamp": last_run.isoformat() if last_run else None,
            "tasks": {name: task.status() for name, task in self._tasks.items()},
        }

    async def run_task(self, name: str) -> Dict[str, Any]:
        """
        Trigger a task now.

        Raises:
            ResourceNotFoundException: Unknown task name
            ConflictException: The task is already running
        """
        task = self._tasks.get(name)
        if task is None:
            raise ResourceNotFoundException("ScheduledTask", name, {"available": sorted(self._tasks)})

        logger.info("Manual task trigger", extra={"task": name})
        if not await task.run():
            raise ConflictException(f"Task {name} is already running", {"task": name})
        return {"task": name, **task.status(), "result": task.last_result}

    # ========== Tasks ==========

    def _session(self):
        return get_session_context(self._session_maker)

    def _queue(self, session: AsyncSession) -> NotificationQueue:
        return NotificationQueue(
            SQLAlchemyNotificationRepository(session),
            SQLAlchemyTemplateRepository(session),
            clock=self._clock
        )

    async def sync_reference_data(self) -> Dict[str, int]:
        """Write templates and escalation rules from the loaded configuration."""
        version = self._config_manager.version
        async with self._session() as session:
            counts = await ReferenceDataLoader(session, clock=self._clock).sync(self._config_manager.config)
        self._synced_version = version
        return counts

    async def sla_sweep(self) -> Dict[str, Any]:
        """Monitor pass followed by the escalation pass, one transaction."""
        config = self._config_manager.config
        version = self._config_manager.version

        async with self._session() as session:
            if version != self._synced_version:
                await ReferenceDataLoader(session, clock=self._clock).sync(config)

            cases = SQLAlchemyCaseRepository(session)
            templates = SQLAlchemyTemplateRepository(session)
            queue = self._queue(session)

            monitor = SLAMonitor(session, cases, templates, queue, config, clock=self._clock)
            sweep_report = await monitor.sweep()
            await session.flush()

            engine = EscalationEngine(
                session,
                cases,
                SQLAlchemyEscalationRuleRepository(session),
                SQLAlchemyEscalationRepository(session),
                templates,
                queue,
                clock=self._clock
            )
            escalation_report = await engine.evaluate()

        self._synced_version = version
        return {"sla": sweep_report.to_dict(), "escalation": escalation_report.to_dict()}

    async def notification_drain(self) -> Dict[str, Any]:
        async with self._session() as session:
            dispatcher = NotificationDispatcher(
                SQLAlchemyNotificationRepository(session),
                self._channel,
                clock=self._clock
            )
            report = await dispatcher.drain()
        return report.to_dict()

    async def metrics_rollup(self) -> Dict[str, Any]:
        async with self._session() as session:
            service = MetricsService(
                SQLAlchemyMetricsRepository(session),
                self._queue(session),
                exporter=self._exporter,
                clock=self._clock
            )
            return await service.rollup()

    async def retention_cleanup(self) -> Dict[str, Any]:
        async with self._session() as session:
            notifications = await self._queue(session).purge(settings.notification_retention_days)
            engine = EscalationEngine(
                session,
                SQLAlchemyCaseRepository(session),
                SQLAlchemyEscalationRuleRepository(session),
                SQLAlchemyEscalationRepository(session),
                SQLAlchemyTemplateRepository(session),
                self._queue(session),
                clock=self._clock
            )
            escalations = await engine.purge_resolved(settings.escalation_retention_days)
        return {"notifications_deleted": notifications, "escalations_deleted": escalations}

"""
SLA Application Services
=========================

SLA monitor and dashboard.

The monitor is run periodically by the scheduler. For every active case
with a deadline it decides between three outcomes:

- breach: deadline reached and not yet flagged -> flag, notify
- warning: deadline at most ``warning_lookahead_hours`` away -> notify
  unless a warning went out in the last ``warning_dedup_hours``
- steady: nothing to do
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.application.services import ICaseRepository
from casetrack.config import (
    Priority, Role, TemplateName, TemplateType, TriggerEvent, CASE_STATE_ORDER, CaseState
)
from casetrack.notifications.application.services import NotificationQueue, ITemplateRepository
from casetrack.notifications.domain import Recipient
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.logging import get_logger, log_latency
from casetrack.sla.domain import SLACalculator, SLAConfig, SLAStatus, SweepReport

logger = get_logger(__name__)


def case_context(case: Any, now, **extra) -> Dict[str, Any]:
    """Template context shared by every SLA notification."""
    deadline = case.expected_state_completion
    context = {
        "case_id": str(case.id),
        "case_number": case.case_number,
        "project_name": case.project_name,
        "client_id": case.client_id,
        "current_state": case.current_state,
        "priority": case.priority,
        "assigned_to": case.assigned_to,
        "deadline": deadline.isoformat() if deadline else None,
        "evaluated_at": now.isoformat(),
    }
    context.update(extra)
    return context


class SLAMonitor:
    """
    Periodic classification of active cases against their deadlines.

    Breach flags are written through the case repository; notifications
    go into the queue. Each case is evaluated inside its own savepoint so
    one bad case cannot spoil the sweep.
    """

    def __init__(
        self,
        session: AsyncSession,
        case_repository: ICaseRepository,
        template_repository: ITemplateRepository,
        queue: NotificationQueue,
        sla_config: SLAConfig,
        clock: Optional[Clock] = None
    ):
        self._session = session
        self._cases = case_repository
        self._templates = template_repository
        self._queue = queue
        self._config = sla_config
        self._clock = clock or SystemClock()

    async def _load_template(self, name: str):
        template = await self._templates.get_by_name(name)
        if template is None:
            logger.warning(
                "Notification template missing or inactive, notifications skipped",
                extra={"template": name}
            )
        return template

    async def sweep(self) -> SweepReport:
        """
        Evaluate every active case once.

        Returns:
            SweepReport with per-outcome counts
        """
        report = SweepReport()
        now = self._clock.now()

        with log_latency(logger, "sla_sweep"):
            warning_template = await self._load_template(TemplateName.SLA_WARNING)
            breach_template = await self._load_template(TemplateName.SLA_BREACH)
            cases = await self._cases.list_active_with_deadline()

            for case in cases:
                case_number = case.case_number
                report.evaluated += 1
                try:
                    async with self._session.begin_nested():
                        if SLACalculator.is_past_deadline(case.expected_state_completion, now):
                            queued = await self._handle_breach(case, now, breach_template)
                            if queued is not None:
                                report.breached += 1
                                report.notifications_queued += queued
                        elif SLACalculator.is_in_warning_window(
                            case.expected_state_completion, now, self._config.warning_lookahead_hours
                        ):
                            queued = await self._handle_warning(case, now, warning_template)
                            if queued is not None:
                                report.warned += 1
                                report.notifications_queued += queued
                except Exception:
                    report.failed += 1
                    report.failed_cases.append(case_number)
                    logger.exception(
                        "SLA evaluation failed for case, skipped",
                        extra={"case_number": case_number}
                    )

        logger.info("SLA sweep finished", extra=report.to_dict())
        return report

    async def _handle_breach(self, case: Any, now, template) -> Optional[int]:
        """
        Flag and notify a newly breached case.

        Returns:
            Number of notifications queued, or None when the case was
            already flagged
        """
        if case.is_sla_breached:
            return None
        if not await self._cases.flag_breach(case.id, now):
            return None

        hours_overdue = SLACalculator.hours_overdue(case.expected_state_completion, now)
        logger.warning(
            "SLA breach detected",
            extra={
                "case_number": case.case_number,
                "state": case.current_state,
                "priority": case.priority,
                "hours_overdue": hours_overdue,
                "assigned_to": case.assigned_to
            }
        )
        if template is None:
            return 0

        recipients = []
        if case.assigned_to:
            recipients.append((Recipient.user(case.assigned_to), TriggerEvent.SLA_BREACH))
        recipients.append((Recipient.for_role(Role.MANAGER), TriggerEvent.SLA_BREACH_MANAGEMENT))
        if case.priority == Priority.HIGH:
            recipients.append((Recipient.for_role(Role.DIRECTOR), TriggerEvent.CRITICAL_SLA_BREACH))

        context = case_context(case, now, hours_overdue=hours_overdue)
        # Rows created after entering this state form the current breach episode
        return await self._enqueue_all(case, template, recipients, context, case.state_entered_at)

    async def _handle_warning(self, case: Any, now, template) -> Optional[int]:
        """
        Warn about an approaching deadline.

        Returns:
            Number of notifications queued, or None when a warning is
            still fresh
        """
        window_start = now - timedelta(hours=self._config.warning_dedup_hours)
        if await self._queue.warning_sent_recently(case.id, TemplateType.SLA_WARNING, window_start):
            return None
        if template is None:
            return 0

        recipients = []
        if case.assigned_to:
            recipients.append((Recipient.user(case.assigned_to), TriggerEvent.SLA_WARNING))
        if case.priority == Priority.HIGH:
            recipients.append((Recipient.for_role(Role.MANAGER), TriggerEvent.HIGH_PRIORITY_SLA_WARNING))
        if not recipients:
            logger.info(
                "SLA warning has no recipient (unassigned case)",
                extra={"case_number": case.case_number}
            )
            return None

        hours_left = SLACalculator.hours_until_deadline(case.expected_state_completion, now)
        context = case_context(case, now, hours_until_deadline=hours_left)
        return await self._enqueue_all(case, template, recipients, context, window_start)

    async def _enqueue_all(self, case, template, recipients, context, dedup_since) -> int:
        queued = 0
        for recipient, trigger_event in recipients:
            row = await self._queue.enqueue(
                case.id, template, recipient, trigger_event, context, dedup_since=dedup_since
            )
            if row is not None:
                queued += 1
        return queued


class SLADashboardService:
    """Read-only SLA overview across active cases."""

    def __init__(
        self,
        case_repository: ICaseRepository,
        sla_config: SLAConfig,
        clock: Optional[Clock] = None
    ):
        self._cases = case_repository
        self._config = sla_config
        self._clock = clock or SystemClock()

    async def summary(self) -> Dict[str, Any]:
        now = self._clock.now()
        cases = await self._cases.list_active_with_deadline()

        totals = {SLAStatus.ON_TRACK: 0, SLAStatus.WARNING: 0, SLAStatus.BREACHED: 0}
        by_state: Dict[str, Dict[str, int]] = {
            state: dict.fromkeys(totals, 0) for state in CASE_STATE_ORDER if state != CaseState.CLOSED
        }
        breached_cases: List[Dict[str, Any]] = []

        for case in cases:
            status = SLACalculator.classify(
                case.expected_state_completion, now, case.is_sla_breached,
                self._config.warning_lookahead_hours
            )
            totals[status] += 1
            by_state.setdefault(case.current_state, dict.fromkeys(totals, 0))[status] += 1
            if status == SLAStatus.BREACHED:
                breached_cases.append({
                    "id": str(case.id),
                    "case_number": case.case_number,
                    "current_state": case.current_state,
                    "priority": case.priority,
                    "assigned_to": case.assigned_to,
                    "hours_overdue": SLACalculator.hours_overdue(case.expected_state_completion, now),
                })

        total = len(cases)
        return {
            "total_active": total,
            "on_track": totals[SLAStatus.ON_TRACK],
            "warning": totals[SLAStatus.WARNING],
            "breached": totals[SLAStatus.BREACHED],
            "breach_rate": round(totals[SLAStatus.BREACHED] / total * 100, 2) if total else 0.0,
            "by_state": by_state,
            "breached_cases": sorted(breached_cases, key=lambda c: -c["hours_overdue"]),
            "generated_at": now,
        }

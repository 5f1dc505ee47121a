"""
Escalation Services
====================

Rule-driven automatic escalation of breached cases, plus manual
escalation requested by a user.

The engine runs after the SLA monitor in the same sweep, so it always
sees the breach flags the monitor has just written.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.application.services import ICaseRepository
from casetrack.cases.domain.value_objects import Actor
from casetrack.config import CaseStatus, TemplateName, TriggerEvent, settings
from casetrack.core import CaseClosedException, CaseNotFoundException, ValidationException
from casetrack.escalation.domain import (
    TriggeredBy, ImpactLevel, ESCALATION_REASON_SLA_BREACH,
    rule_matches, cooldown_start, client_impact_for
)
from casetrack.notifications.application.services import NotificationQueue, ITemplateRepository
from casetrack.notifications.domain import Recipient
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.logging import get_logger, log_latency
from casetrack.sla.application.services import case_context
from casetrack.sla.domain import SLACalculator

logger = get_logger(__name__)


# ========== Interfaces (Dependency Inversion) ==========

class IEscalationRuleRepository(ABC):

    @abstractmethod
    async def list(self, active_only: bool = True) -> List[Any]:
        """Rules ordered by name."""


class IEscalationRepository(ABC):

    @abstractmethod
    async def create(self, **fields) -> Any:
        """Insert an escalation row."""

    @abstractmethod
    async def exists_since(self, case_id: Any, rule_id: int, since: datetime) -> bool:
        """An escalation for (case, rule) triggered at or after ``since``."""

    @abstractmethod
    async def count_for(self, case_id: Any, rule_id: int) -> int:
        """Number of escalations ever recorded for (case, rule)."""

    @abstractmethod
    async def list_for_case(self, case_id: Any) -> List[Any]:
        """Escalations of a case, oldest first."""

    @abstractmethod
    async def resolve_stale(self, now: datetime) -> int:
        """
        Resolve open escalations that no longer apply.

        Rule-driven rows resolve once the case is no longer breached. Every
        row resolves once the case stops being active.
        """

    @abstractmethod
    async def delete_resolved_before(self, cutoff: datetime) -> int:
        """Delete escalations resolved before cutoff."""


# ========== Results ==========

@dataclass
class EscalationReport:
    evaluated: int = 0
    escalations_created: int = 0
    notifications_queued: int = 0
    resolved: int = 0
    failed: int = 0
    failed_cases: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ========== Application Service ==========

class EscalationEngine:
    """
    Creates escalations from the rule table and notifies the target roles.

    Invariant: at most one escalation per (case, rule) inside the rule's
    ``escalate_after_hours`` window. Every matching rule fires on its own.
    """

    def __init__(
        self,
        session: AsyncSession,
        case_repository: ICaseRepository,
        rule_repository: IEscalationRuleRepository,
        escalation_repository: IEscalationRepository,
        template_repository: ITemplateRepository,
        queue: NotificationQueue,
        clock: Optional[Clock] = None
    ):
        self._session = session
        self._cases = case_repository
        self._rules = rule_repository
        self._escalations = escalation_repository
        self._templates = template_repository
        self._queue = queue
        self._clock = clock or SystemClock()

    async def evaluate(self) -> EscalationReport:
        """
        Evaluate every active breached case against every active rule.

        Returns:
            EscalationReport with counts
        """
        report = EscalationReport()
        now = self._clock.now()

        with log_latency(logger, "escalation_pass"):
            report.resolved = await self._escalations.resolve_stale(now)

            rules = await self._rules.list(active_only=True)
            cases = await self._cases.list_breached_active()
            template = await self._templates.get_by_name(TemplateName.ESCALATION)
            if template is None and rules and cases:
                logger.warning(
                    "Escalation template missing or inactive, escalations recorded without notice",
                    extra={"template": TemplateName.ESCALATION}
                )

            for case in cases:
                case_number = case.case_number
                report.evaluated += 1
                try:
                    async with self._session.begin_nested():
                        created, queued = await self._escalate_case(case, rules, template, now)
                    report.escalations_created += created
                    report.notifications_queued += queued
                except Exception:
                    report.failed += 1
                    report.failed_cases.append(case_number)
                    logger.exception(
                        "Escalation failed for case, skipped",
                        extra={"case_number": case_number}
                    )

        logger.info("Escalation pass finished", extra=report.to_dict())
        return report

    async def _escalate_case(self, case: Any, rules: List[Any], template, now: datetime):
        if case.expected_state_completion is None:
            return 0, 0
        hours_overdue = SLACalculator.hours_overdue(case.expected_state_completion, now)
        created = queued = 0

        for rule in rules:
            if not rule_matches(rule, case, hours_overdue):
                continue
            if await self._escalations.exists_since(case.id, rule.id, cooldown_start(rule, now)):
                continue

            level = await self._escalations.count_for(case.id, rule.id) + 1
            escalation = await self._escalations.create(
                case_id=case.id,
                rule_id=rule.id,
                escalation_level=level,
                triggered_by=TriggeredBy.AUTOMATIC,
                escalated_from_user=case.assigned_to,
                escalated_to_role=rule.escalate_to_role,
                client_impact_level=client_impact_for(case.priority),
                hours_overdue=hours_overdue,
                reason=ESCALATION_REASON_SLA_BREACH,
                triggered_at=now
            )
            created += 1
            logger.warning(
                "Case escalated",
                extra={
                    "case_number": case.case_number,
                    "rule": rule.name,
                    "escalation_level": level,
                    "escalated_to_role": rule.escalate_to_role,
                    "hours_overdue": hours_overdue
                }
            )

            if template is not None:
                context = case_context(
                    case, now,
                    hours_overdue=hours_overdue,
                    escalation_id=escalation.id,
                    escalation_level=level,
                    escalation_reason=ESCALATION_REASON_SLA_BREACH,
                    escalated_from=case.assigned_to or "unassigned",
                    rule_name=rule.name
                )
                row = await self._queue.enqueue(
                    case.id, template, Recipient.for_role(rule.escalate_to_role),
                    TriggerEvent.AUTOMATIC_ESCALATION, context
                )
                if row is not None:
                    queued += 1

        return created, queued

    async def escalate_manually(
        self,
        case_id: Any,
        role: str,
        reason: str,
        actor: Actor
    ):
        """
        Escalate a case to a role on a user's request.

        Raises:
            CaseNotFoundException: Unknown case
            CaseClosedException: Case is not active
            ValidationException: Blank role or reason
        """
        role = (role or "").strip()
        reason = (reason or "").strip()
        if not role or not reason:
            raise ValidationException("role and reason are required", {"role": role, "reason": reason})

        case = await self._cases.get(case_id)
        if case is None:
            raise CaseNotFoundException(case_id)
        if case.status != CaseStatus.ACTIVE:
            raise CaseClosedException(case.case_number, case.current_state, case.status)

        now = self._clock.now()
        hours_overdue = (
            SLACalculator.hours_overdue(case.expected_state_completion, now)
            if case.expected_state_completion else 0
        )
        escalation = await self._escalations.create(
            case_id=case.id,
            rule_id=None,
            escalation_level=1,
            triggered_by=TriggeredBy.MANUAL,
            escalated_from_user=case.assigned_to,
            escalated_to_role=role,
            client_impact_level=ImpactLevel.MEDIUM,
            hours_overdue=hours_overdue,
            reason=reason,
            created_by=actor.id,
            triggered_at=now
        )

        context = case_context(
            case, now,
            hours_overdue=hours_overdue,
            escalation_id=escalation.id,
            escalation_level=1,
            escalation_reason=reason,
            escalated_from=case.assigned_to or actor.id,
            escalated_by=actor.id
        )
        await self._queue.enqueue(
            case.id, TemplateName.ESCALATION, Recipient.for_role(role),
            TriggerEvent.MANUAL_ESCALATION, context
        )

        logger.info(
            "Case escalated manually",
            extra={"case_number": case.case_number, "escalated_to_role": role, "actor": actor.id}
        )
        return escalation

    async def list_rules(self, active_only: bool = True) -> List[Any]:
        return await self._rules.list(active_only=active_only)

    async def list_escalations(self, case_id: Any) -> List[Any]:
        if await self._cases.get(case_id) is None:
            raise CaseNotFoundException(case_id)
        return await self._escalations.list_for_case(case_id)

    async def purge_resolved(self, retention_days: Optional[int] = None) -> int:
        """Delete escalations resolved longer ago than the retention window."""
        days = retention_days or settings.escalation_retention_days
        cutoff = self._clock.now() - timedelta(days=days)
        deleted = await self._escalations.delete_resolved_before(cutoff)
        logger.info(
            "Escalation retention purge",
            extra={"deleted": deleted, "retention_days": days, "cutoff": cutoff.isoformat()}
        )
        return deleted

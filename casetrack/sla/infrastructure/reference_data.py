"""
SLA Reference Data
===================

Synchronises notification templates and escalation rules from the SLA
configuration into the database, keyed by name.
"""

from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.escalation.models import EscalationRuleModel
from casetrack.notifications.infrastructure.models import NotificationTemplateModel
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.logging import get_logger
from casetrack.sla.domain import SLAConfig

logger = get_logger(__name__)

TEMPLATE_FIELDS = ("template_type", "subject", "body", "is_active")
RULE_FIELDS = (
    "state_name", "priority_level", "hours_overdue",
    "escalate_to_role", "escalate_after_hours", "is_active",
)


class ReferenceDataLoader:
    """
    Upserts templates and rules by name.

    Rules missing from the configuration are deactivated. Templates
    missing from it are left alone since they may have been created
    outside the file.
    """

    def __init__(self, session: AsyncSession, clock: Optional[Clock] = None):
        self._session = session
        self._clock = clock or SystemClock()

    async def sync(self, config: SLAConfig) -> Dict[str, int]:
        now = self._clock.now()
        counts = {"templates_created": 0, "templates_updated": 0,
                  "rules_created": 0, "rules_updated": 0, "rules_deactivated": 0}

        result = await self._session.execute(select(NotificationTemplateModel))
        templates = {t.name: t for t in result.scalars().all()}
        for template in config.templates:
            data = template.model_dump(include=set(TEMPLATE_FIELDS))
            existing = templates.get(template.name)
            if existing is None:
                self._session.add(NotificationTemplateModel(
                    name=template.name, created_at=now, updated_at=now, **data
                ))
                counts["templates_created"] += 1
            elif self._apply(existing, data, now):
                counts["templates_updated"] += 1

        result = await self._session.execute(select(EscalationRuleModel))
        rules = {r.name: r for r in result.scalars().all()}
        configured = set()
        for rule in config.escalation_rules:
            configured.add(rule.name)
            data = rule.model_dump(include=set(RULE_FIELDS))
            existing = rules.get(rule.name)
            if existing is None:
                self._session.add(EscalationRuleModel(
                    name=rule.name, created_at=now, updated_at=now, **data
                ))
                counts["rules_created"] += 1
            elif self._apply(existing, data, now):
                counts["rules_updated"] += 1

        for name, existing in rules.items():
            if name not in configured and existing.is_active:
                existing.is_active = False
                existing.updated_at = now
                counts["rules_deactivated"] += 1

        await self._session.flush()
        logger.info("SLA reference data synchronised", extra=counts)
        return counts

    @staticmethod
    def _apply(row, data: dict, now) -> bool:
        changed = False
        for key, value in data.items():
            if getattr(row, key) != value:
                setattr(row, key, value)
                changed = True
        if changed:
            row.updated_at = now
        return changed

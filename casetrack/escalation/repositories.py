"""
Escalation Repositories
========================

SQLAlchemy implementations of the escalation repository interfaces.
"""

from datetime import datetime
from typing import Any, List

from sqlalchemy import select, delete, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.infrastructure import CaseModel, as_uuid
from casetrack.config import CaseStatus
from casetrack.escalation.models import EscalationRuleModel, CaseEscalationModel
from casetrack.escalation.services import IEscalationRuleRepository, IEscalationRepository


class SQLAlchemyEscalationRuleRepository(IEscalationRuleRepository):
    """Read access to the rule table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list(self, active_only: bool = True) -> List[EscalationRuleModel]:
        stmt = select(EscalationRuleModel)
        if active_only:
            stmt = stmt.where(EscalationRuleModel.is_active.is_(True))
        result = await self._session.execute(stmt.order_by(EscalationRuleModel.name))
        return list(result.scalars().all())


class SQLAlchemyEscalationRepository(IEscalationRepository):
    """SQLAlchemy implementation of case escalations."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields) -> CaseEscalationModel:
        fields["case_id"] = as_uuid(fields["case_id"])
        model = CaseEscalationModel(**fields)
        self._session.add(model)
        await self._session.flush()
        return model

    async def exists_since(self, case_id: Any, rule_id: int, since: datetime) -> bool:
        stmt = (
            select(CaseEscalationModel.id)
            .where(
                CaseEscalationModel.case_id == as_uuid(case_id),
                CaseEscalationModel.rule_id == rule_id,
                CaseEscalationModel.triggered_at >= since,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def count_for(self, case_id: Any, rule_id: int) -> int:
        stmt = select(func.count(CaseEscalationModel.id)).where(
            CaseEscalationModel.case_id == as_uuid(case_id),
            CaseEscalationModel.rule_id == rule_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def list_for_case(self, case_id: Any) -> List[CaseEscalationModel]:
        stmt = (
            select(CaseEscalationModel)
            .where(CaseEscalationModel.case_id == as_uuid(case_id))
            .order_by(CaseEscalationModel.triggered_at.asc(), CaseEscalationModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def resolve_stale(self, now: datetime) -> int:
        stmt = (
            select(CaseEscalationModel)
            .join(CaseModel, CaseEscalationModel.case_id == CaseModel.id)
            .where(
                CaseEscalationModel.resolved_at.is_(None),
                or_(
                    CaseModel.status != CaseStatus.ACTIVE,
                    # Manual escalations stay open while the case is active
                    and_(
                        CaseEscalationModel.rule_id.is_not(None),
                        CaseModel.is_sla_breached.is_(False),
                    ),
                ),
            )
        )
        result = await self._session.execute(stmt)
        stale = list(result.scalars().all())
        for escalation in stale:
            escalation.resolved_at = now
        if stale:
            await self._session.flush()
        return len(stale)

    async def delete_resolved_before(self, cutoff: datetime) -> int:
        stmt = delete(CaseEscalationModel).where(
            CaseEscalationModel.resolved_at.is_not(None),
            CaseEscalationModel.resolved_at < cutoff,
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

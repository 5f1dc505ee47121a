"""
Case Infrastructure Repositories
=================================

Concrete implementations of the case repository interfaces using
SQLAlchemy.
"""

from datetime import datetime, timedelta
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.application.services import (
    ICaseRepository, IHistoryRepository, IDocumentRepository
)
from casetrack.cases.domain import CaseFilter, CaseQuery, HistoryOwner
from casetrack.cases.infrastructure.models import (
    CaseModel, CaseDocumentModel, CaseStateTransitionModel, REFERENCE_OWNERS
)
from casetrack.config import CaseStatus


def as_uuid(value: Any) -> Optional[UUID]:
    """Parse an id from a path or payload; None when it is not a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class SQLAlchemyCaseRepository(ICaseRepository):
    """
    SQLAlchemy implementation of the case repository.

    Row locks use SELECT ... FOR UPDATE; dialects without it (SQLite)
    ignore the clause and rely on database-level write serialisation.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, case_id: Any, for_update: bool = False) -> Optional[CaseModel]:
        case_uuid = as_uuid(case_id)
        if case_uuid is None:
            return None

        stmt = select(CaseModel).where(CaseModel.id == case_uuid)
        if for_update:
            # Re-read the locked row; flush first so no pending change is lost
            await self._session.flush()
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **fields) -> CaseModel:
        model = CaseModel(**fields)
        self._session.add(model)
        await self._session.flush()
        return model

    def _conditions(self, case_filter: CaseFilter, now: datetime) -> list:
        """Fixed conditions per query variant, then optional equality filters."""
        conditions = []
        if case_filter.query == CaseQuery.ACTIVE:
            conditions.append(CaseModel.status == CaseStatus.ACTIVE)
        elif case_filter.query == CaseQuery.BREACHED:
            conditions += [
                CaseModel.status == CaseStatus.ACTIVE,
                CaseModel.is_sla_breached.is_(True),
            ]
        elif case_filter.query == CaseQuery.DUE_SOON:
            conditions += [
                CaseModel.status == CaseStatus.ACTIVE,
                CaseModel.is_sla_breached.is_(False),
                CaseModel.expected_state_completion > now,
                CaseModel.expected_state_completion <= now + timedelta(hours=case_filter.due_within_hours),
            ]

        if case_filter.state is not None:
            conditions.append(CaseModel.current_state == case_filter.state)
        if case_filter.priority is not None:
            conditions.append(CaseModel.priority == case_filter.priority)
        if case_filter.assigned_to is not None:
            conditions.append(CaseModel.assigned_to == case_filter.assigned_to)
        if case_filter.client_id is not None:
            conditions.append(CaseModel.client_id == case_filter.client_id)
        return conditions

    async def list(self, case_filter: CaseFilter, now: datetime) -> List[CaseModel]:
        stmt = select(CaseModel).where(*self._conditions(case_filter, now))

        if case_filter.query == CaseQuery.DUE_SOON:
            stmt = stmt.order_by(CaseModel.expected_state_completion.asc())
        else:
            stmt = stmt.order_by(CaseModel.created_at.desc(), CaseModel.case_number.desc())
        stmt = stmt.limit(case_filter.limit).offset(case_filter.offset)

        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_active_with_deadline(self) -> List[CaseModel]:
        stmt = (
            select(CaseModel)
            .where(
                CaseModel.status == CaseStatus.ACTIVE,
                CaseModel.expected_state_completion.is_not(None),
            )
            .order_by(CaseModel.expected_state_completion.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_breached_active(self) -> List[CaseModel]:
        stmt = (
            select(CaseModel)
            .where(
                CaseModel.status == CaseStatus.ACTIVE,
                CaseModel.is_sla_breached.is_(True),
                CaseModel.expected_state_completion.is_not(None),
            )
            .order_by(CaseModel.expected_state_completion.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def flag_breach(self, case_id: Any, now: datetime) -> bool:
        """
        Edge-triggered breach flag, set under the case row lock.

        Returns False when the case is gone, no longer active, or already
        flagged, so repeated sweeps flip it at most once per state.
        """
        case = await self.get(case_id, for_update=True)
        if case is None or case.status != CaseStatus.ACTIVE or case.is_sla_breached:
            return False

        case.is_sla_breached = True
        case.updated_at = now
        await self._session.flush()
        return True


class SQLAlchemyHistoryRepository(IHistoryRepository):
    """
    SQLAlchemy implementation of the append-only status history.

    Entries are never updated or deleted.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, owner: HistoryOwner, case_id: Any, **fields) -> CaseStateTransitionModel:
        model = CaseStateTransitionModel(
            reference_type=owner.reference_type,
            reference_id=owner.reference_id,
            case_id=as_uuid(case_id),
            **fields
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def list_for_owner(self, owner: HistoryOwner) -> List[CaseStateTransitionModel]:
        stmt = (
            select(CaseStateTransitionModel)
            .where(
                CaseStateTransitionModel.reference_type == owner.reference_type,
                CaseStateTransitionModel.reference_id == owner.reference_id,
            )
            .order_by(CaseStateTransitionModel.created_at.asc(), CaseStateTransitionModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_owner(self, owner: HistoryOwner) -> Optional[Any]:
        owner_id = as_uuid(owner.reference_id)
        if owner_id is None:
            return None

        model = REFERENCE_OWNERS[owner.reference_type]
        stmt = select(model).where(model.id == owner_id)
        if model is CaseDocumentModel:
            stmt = stmt.where(CaseDocumentModel.reference_type == owner.reference_type)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class SQLAlchemyDocumentRepository(IDocumentRepository):
    """SQLAlchemy implementation of the case document repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields) -> CaseDocumentModel:
        model = CaseDocumentModel(**fields)
        self._session.add(model)
        await self._session.flush()
        return model

    async def list_for_case(self, case_id: Any) -> List[CaseDocumentModel]:
        stmt = (
            select(CaseDocumentModel)
            .where(CaseDocumentModel.case_id == as_uuid(case_id))
            .order_by(CaseDocumentModel.created_at.asc(), CaseDocumentModel.document_number.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

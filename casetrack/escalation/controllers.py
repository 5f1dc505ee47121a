"""
Escalation Controllers (API Routes)
====================================

FastAPI routes for escalation rules and case escalations.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.domain.value_objects import Actor
from casetrack.cases.infrastructure import SQLAlchemyCaseRepository
from casetrack.escalation.dto import (
    ManualEscalationRequest, EscalationResponse, EscalationListResponse,
    EscalationRuleResponse, EscalationRuleListResponse
)
from casetrack.escalation.repositories import (
    SQLAlchemyEscalationRuleRepository, SQLAlchemyEscalationRepository
)
from casetrack.escalation.services import EscalationEngine
from casetrack.infrastructure.database import get_session
from casetrack.notifications.application import NotificationQueue
from casetrack.notifications.infrastructure import (
    SQLAlchemyNotificationRepository, SQLAlchemyTemplateRepository
)
from casetrack.shared.api.dependencies import get_actor, get_clock

router = APIRouter(prefix="/escalation", tags=["Escalation"])
case_router = APIRouter(prefix="/cases", tags=["Escalation"])


# ========== Dependencies ==========

async def get_escalation_engine(
    session: AsyncSession = Depends(get_session),
    clock=Depends(get_clock)
) -> EscalationEngine:
    """Get escalation engine bound to the request session."""
    templates = SQLAlchemyTemplateRepository(session)
    queue = NotificationQueue(SQLAlchemyNotificationRepository(session), templates, clock=clock)
    return EscalationEngine(
        session,
        SQLAlchemyCaseRepository(session),
        SQLAlchemyEscalationRuleRepository(session),
        SQLAlchemyEscalationRepository(session),
        templates,
        queue,
        clock=clock
    )


# ========== Route Handlers ==========

@router.get(
    "/rules",
    response_model=EscalationRuleListResponse,
    summary="List escalation rules",
    description="""
    Escalation rules as synchronised from the SLA configuration file.

    A rule fires for an active breached case when its `state_name` and
    `priority_level` match (null matches any) and the case is at least
    `hours_overdue` hours late. The same rule fires again for the same case
    only after `escalate_after_hours`.
    """
)
async def list_rules(
    active_only: bool = Query(True, description="Hide deactivated rules"),
    engine: EscalationEngine = Depends(get_escalation_engine)
):
    rules = await engine.list_rules(active_only=active_only)
    items = [EscalationRuleResponse.model_validate(rule) for rule in rules]
    return EscalationRuleListResponse(rules=items, total_count=len(items))


@case_router.get(
    "/{case_id}/escalations",
    response_model=EscalationListResponse,
    summary="List escalations of a case",
    responses={404: {"description": "Case not found"}}
)
async def list_case_escalations(
    case_id: str,
    engine: EscalationEngine = Depends(get_escalation_engine)
):
    escalations = await engine.list_escalations(case_id)
    items = [EscalationResponse.model_validate(e) for e in escalations]
    return EscalationListResponse(escalations=items, total_count=len(items))


@case_router.post(
    "/{case_id}/escalations",
    response_model=EscalationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Escalate a case manually",
    description="""
    Record a manual escalation (level 1, no rule) and queue an
    "Escalation Notice" for the given role.
    """,
    responses={
        404: {"description": "Case or escalation template not found"},
        409: {"description": "Case is closed or cancelled"}
    }
)
async def escalate_case(
    case_id: str,
    request: ManualEscalationRequest,
    actor: Actor = Depends(get_actor),
    engine: EscalationEngine = Depends(get_escalation_engine)
):
    escalation = await engine.escalate_manually(case_id, request.role, request.reason, actor)
    return EscalationResponse.model_validate(escalation)


# Export routers for inclusion in main app
escalation_router = router
case_escalation_router = case_router

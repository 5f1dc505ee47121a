"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA visibility.

Controllers are thin - they delegate to application services.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.infrastructure import SQLAlchemyCaseRepository
from casetrack.infrastructure.database import get_session
from casetrack.shared.api.dependencies import get_clock, get_sla_config
from casetrack.sla.application import SLADashboardService, DashboardResponse, SLAConfigResponse

router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


DASHBOARD_RESPONSE_EXAMPLE = {
    "total_active": 12,
    "on_track": 8,
    "warning": 3,
    "breached": 1,
    "breach_rate": 8.33,
    "by_state": {
        "enquiry": {"on_track": 2, "warning": 1, "breached": 0},
        "estimation": {"on_track": 1, "warning": 0, "breached": 1}
    },
    "breached_cases": [
        {
            "id": "123e4567-e89b-12d3-a456-426614174000",
            "case_number": "VESPL/C/2526/007",
            "current_state": "estimation",
            "priority": "high",
            "assigned_to": "u-42",
            "hours_overdue": 3
        }
    ],
    "generated_at": "2025-06-01T10:00:00Z"
}


# ========== Dependencies ==========

async def get_dashboard_service(
    session: AsyncSession = Depends(get_session),
    sla_config=Depends(get_sla_config),
    clock=Depends(get_clock)
) -> SLADashboardService:
    return SLADashboardService(SQLAlchemyCaseRepository(session), sla_config, clock=clock)


# ========== Route Handlers ==========

@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Get SLA dashboard",
    description="""
    Counts of active cases per SLA status, overall and per lifecycle state.

    **SLA Statuses:**
    - `breached`: deadline reached or breach already flagged
    - `warning`: deadline at most `warning_lookahead_hours` away
    - `on_track`: everything else
    """,
    responses={
        200: {
            "description": "Dashboard summary",
            "content": {"application/json": {"example": DASHBOARD_RESPONSE_EXAMPLE}}
        }
    }
)
async def get_dashboard(service: SLADashboardService = Depends(get_dashboard_service)):
    return DashboardResponse(**await service.summary())


@router.get(
    "/config",
    response_model=SLAConfigResponse,
    summary="Get loaded SLA configuration",
    description="Configuration currently in effect; `version` increases on every hot reload."
)
async def get_config(request: Request):
    manager = request.app.state.sla_config_manager
    config = manager.config
    return SLAConfigResponse(
        version=manager.version,
        state_sla_hours=config.state_sla_hours,
        warning_lookahead_hours=config.warning_lookahead_hours,
        warning_dedup_hours=config.warning_dedup_hours,
        templates=[t.name for t in config.templates],
        escalation_rules=[r.name for r in config.escalation_rules]
    )


# Export router for inclusion in main app
sla_router = router

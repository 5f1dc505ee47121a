"""
Case Controllers (API Routes)
==============================

FastAPI routes for the case lifecycle.

Controllers are thin - they delegate to CaseService. Every write runs in
the request session, which commits when the handler returns.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.application import (
    CaseService,
    CaseCreateRequest, TransitionRequest, HistoryNoteRequest,
    DocumentRegisterRequest, CancelRequest, AssignRequest,
    SLAViewResponse, CaseResponse, CaseDetailResponse, CaseListResponse,
    HistoryEntryResponse, DocumentResponse
)
from casetrack.cases.application.dto import CaseQueryStr
from casetrack.cases.domain import Actor, CaseFilter, CaseStateMachine, HistoryOwner
from casetrack.cases.infrastructure import (
    SQLAlchemyCaseRepository, SQLAlchemyHistoryRepository, SQLAlchemyDocumentRepository
)
from casetrack.core import ResourceNotFoundException, ValidationException
from casetrack.infrastructure.database import get_session
from casetrack.shared.api.dependencies import (
    get_actor, get_clock, get_sequence_generator, get_sla_config
)
from casetrack.sla.domain import build_sla_view

router = APIRouter(prefix="/cases", tags=["Cases"])


CASE_DETAIL_EXAMPLE = {
    "id": "123e4567-e89b-12d3-a456-426614174000",
    "case_number": "VESPL/C/2526/001",
    "current_state": "estimation",
    "status": "active",
    "priority": "high",
    "client_id": "CL-100",
    "project_name": "Conveyor retrofit",
    "description": None,
    "assigned_to": "u-42",
    "created_by": "u-7",
    "state_entered_at": "2025-06-01T08:00:00Z",
    "expected_state_completion": "2025-06-03T08:00:00Z",
    "is_sla_breached": False,
    "created_at": "2025-05-31T09:00:00Z",
    "updated_at": "2025-06-01T08:00:00Z",
    "sla": {
        "status": "on_track",
        "deadline": "2025-06-03T08:00:00Z",
        "hours_until_deadline": 46,
        "hours_overdue": 0,
        "is_sla_breached": False
    },
    "allowed_transitions": ["quotation"]
}


# ========== Dependencies ==========

async def get_case_service(
    session: AsyncSession = Depends(get_session),
    sequence_generator=Depends(get_sequence_generator),
    sla_config=Depends(get_sla_config),
    clock=Depends(get_clock)
) -> CaseService:
    """Get case service bound to the request session."""
    return CaseService(
        SQLAlchemyCaseRepository(session),
        SQLAlchemyHistoryRepository(session),
        SQLAlchemyDocumentRepository(session),
        sequence_generator,
        sla_config,
        clock=clock,
        session=session
    )


def _detail(case, sla_config, clock) -> CaseDetailResponse:
    sla = build_sla_view(
        case.expected_state_completion, clock.now(), case.is_sla_breached,
        sla_config.warning_lookahead_hours
    )
    allowed = (
        [] if CaseStateMachine.is_terminal(case.current_state, case.status)
        else CaseStateMachine.allowed_transitions(case.current_state)
    )
    return CaseDetailResponse(
        **CaseResponse.model_validate(case).model_dump(),
        sla=SLAViewResponse(**vars(sla)),
        allowed_transitions=allowed
    )


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=CaseDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a case",
    description="""
    Open a case from an enquiry.

    Issues the case number (`VESPL/C/<fy>/<nnn>`) and the enquiry number
    (`VESPL/EQ/<fy>/<nnn>`), starts the case in `enquiry` and sets its first
    deadline.
    """
)
async def open_case(
    request: CaseCreateRequest,
    actor: Actor = Depends(get_actor),
    service: CaseService = Depends(get_case_service),
    sla_config=Depends(get_sla_config),
    clock=Depends(get_clock)
):
    case = await service.open_case(
        actor,
        client_id=request.client_id,
        project_name=request.project_name,
        priority=request.priority,
        assigned_to=request.assigned_to,
        description=request.description,
        note=request.note
    )
    return _detail(case, sla_config, clock)


@router.get(
    "",
    response_model=CaseListResponse,
    summary="List cases",
    description="""
    List cases using one of the fixed query variants.

    **Query variants (`query`):**
    - `all`: every case, newest first
    - `active`: active cases
    - `breached`: active cases with a flagged SLA breach
    - `due_soon`: active, not breached, deadline within `due_within_hours`

    Optional equality filters: `state`, `priority`, `assigned_to`, `client_id`.
    """
)
async def list_cases(
    query: CaseQueryStr = Query("all"),
    state: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    due_within_hours: int = Query(4, ge=1, le=720),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: CaseService = Depends(get_case_service)
):
    case_filter = CaseFilter(
        query=query,
        state=state,
        priority=priority,
        assigned_to=assigned_to,
        client_id=client_id,
        due_within_hours=due_within_hours,
        limit=limit,
        offset=offset
    )
    cases = await service.list_cases(case_filter)
    return CaseListResponse(cases=[CaseResponse.model_validate(c) for c in cases], count=len(cases))


@router.get(
    "/{case_id}",
    response_model=CaseDetailResponse,
    summary="Get case with SLA view",
    responses={
        200: {"content": {"application/json": {"example": CASE_DETAIL_EXAMPLE}}},
        404: {"description": "Case not found"}
    }
)
async def get_case(
    case_id: str,
    service: CaseService = Depends(get_case_service),
    sla_config=Depends(get_sla_config),
    clock=Depends(get_clock)
):
    case = await service.get_case(case_id)
    return _detail(case, sla_config, clock)


@router.post(
    "/{case_id}/transitions",
    response_model=HistoryEntryResponse,
    summary="Move a case to the next state",
    description="""
    Allowed moves:

    `enquiry -> estimation -> quotation -> sales_order -> manufacturing -> delivery -> closed`,
    plus `quotation -> estimation` for a rejected quotation.

    Entering a state resets the breach flag and sets a new deadline.
    Entering `closed` completes the case.
    """,
    responses={
        404: {"description": "Case not found"},
        409: {"description": "Transition not allowed or case closed"}
    }
)
async def transition_case(
    case_id: str,
    request: TransitionRequest,
    actor: Actor = Depends(get_actor),
    service: CaseService = Depends(get_case_service)
):
    entry = await service.transition(case_id, request.to_state, actor, request.note)
    return HistoryEntryResponse.model_validate(entry)


@router.post(
    "/{case_id}/history",
    response_model=HistoryEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a status note",
    description="""
    Append a free-form status entry (e.g. "submitted for approval")
    without changing the case state. Set `reference_type` and
    `reference_id` to attach it to a registered document of the case.
    """
)
async def record_history(
    case_id: str,
    request: HistoryNoteRequest,
    actor: Actor = Depends(get_actor),
    service: CaseService = Depends(get_case_service)
):
    document = None
    if request.reference_type is not None or request.reference_id is not None:
        if not (request.reference_type and request.reference_id):
            raise ValidationException(
                "reference_type and reference_id must be given together",
                {"reference_type": request.reference_type, "reference_id": request.reference_id}
            )
        document = HistoryOwner(request.reference_type, request.reference_id)

    entry = await service.record_history(
        case_id, request.status_label, request.note, actor, document=document
    )
    return HistoryEntryResponse.model_validate(entry)


@router.get(
    "/{case_id}/history",
    response_model=List[HistoryEntryResponse],
    summary="Get case history",
    description="Case-owned history entries, oldest first."
)
async def get_history(
    case_id: str,
    service: CaseService = Depends(get_case_service)
):
    entries = await service.get_history(case_id)
    return [HistoryEntryResponse.model_validate(e) for e in entries]


@router.post(
    "/{case_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a document",
    description="Issue the next number for the document kind and attach the document to the case."
)
async def register_document(
    case_id: str,
    request: DocumentRegisterRequest,
    actor: Actor = Depends(get_actor),
    service: CaseService = Depends(get_case_service)
):
    document = await service.register_document(case_id, request.reference_type, actor, request.note)
    return DocumentResponse.model_validate(document)


@router.get(
    "/{case_id}/documents",
    response_model=List[DocumentResponse],
    summary="List documents of a case"
)
async def list_documents(
    case_id: str,
    service: CaseService = Depends(get_case_service)
):
    documents = await service.list_documents(case_id)
    return [DocumentResponse.model_validate(d) for d in documents]


@router.get(
    "/{case_id}/documents/{document_id}/history",
    response_model=List[HistoryEntryResponse],
    summary="Get document history"
)
async def get_document_history(
    case_id: str,
    document_id: str,
    service: CaseService = Depends(get_case_service)
):
    documents = await service.list_documents(case_id)
    document = next((d for d in documents if str(d.id) == document_id), None)
    if document is None:
        raise ResourceNotFoundException("CaseDocument", document_id, {"case_id": case_id})

    entries = await service.get_document_history(HistoryOwner(document.reference_type, str(document.id)))
    return [HistoryEntryResponse.model_validate(e) for e in entries]


@router.post(
    "/{case_id}/cancel",
    response_model=CaseResponse,
    summary="Cancel a case"
)
async def cancel_case(
    case_id: str,
    request: CancelRequest,
    actor: Actor = Depends(get_actor),
    service: CaseService = Depends(get_case_service)
):
    case = await service.cancel_case(case_id, actor, request.note)
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_id}/assign",
    response_model=CaseResponse,
    summary="Reassign a case"
)
async def assign_case(
    case_id: str,
    request: AssignRequest,
    actor: Actor = Depends(get_actor),
    service: CaseService = Depends(get_case_service)
):
    case = await service.assign_case(case_id, request.assigned_to, actor, request.note)
    return CaseResponse.model_validate(case)


# Export router for inclusion in main app
cases_router = router

"""
Case Application Layer
=======================

Application services, repository interfaces and DTOs for the case module.
"""

from casetrack.cases.application.services import (
    ICaseRepository,
    IHistoryRepository,
    IDocumentRepository,
    CaseService,
)
from casetrack.cases.application.dto import (
    CaseCreateRequest,
    TransitionRequest,
    HistoryNoteRequest,
    DocumentRegisterRequest,
    CancelRequest,
    AssignRequest,
    SLAViewResponse,
    CaseResponse,
    CaseDetailResponse,
    CaseListResponse,
    HistoryEntryResponse,
    DocumentResponse,
)

__all__ = [
    "ICaseRepository",
    "IHistoryRepository",
    "IDocumentRepository",
    "CaseService",
    "CaseCreateRequest",
    "TransitionRequest",
    "HistoryNoteRequest",
    "DocumentRegisterRequest",
    "CancelRequest",
    "AssignRequest",
    "SLAViewResponse",
    "CaseResponse",
    "CaseDetailResponse",
    "CaseListResponse",
    "HistoryEntryResponse",
    "DocumentResponse",
]

"""
Case Application DTOs
======================

Data Transfer Objects for the case API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from casetrack.sla.domain.value_objects import CaseStateStr, PriorityStr


# ========== Type Aliases for Literals ==========
CaseStatusStr = Literal["active", "completed", "cancelled"]
DocumentKindStr = Literal[
    "enquiry", "estimation", "quotation", "sales_order", "purchase_order", "work_order"
]
ReferenceTypeStr = Literal[
    "case", "enquiry", "estimation", "quotation", "sales_order", "purchase_order", "work_order"
]
CaseQueryStr = Literal["all", "active", "breached", "due_soon"]
SLAStatusStr = Literal["on_track", "warning", "breached", "no_deadline"]


# ========== Request DTOs ==========

class CaseCreateRequest(BaseModel):
    """Request model for opening a case from an enquiry."""
    client_id: str = Field(..., min_length=1, max_length=64, description="Client identifier")
    project_name: str = Field(..., min_length=1, max_length=255, description="Project name")
    priority: PriorityStr = Field(default="medium", description="Case priority")
    assigned_to: Optional[str] = Field(None, max_length=64, description="Assignee user id")
    description: Optional[str] = Field(None, description="Enquiry details")
    note: Optional[str] = Field(None, description="Note for the initial history entry")

    @field_validator("client_id", "project_name")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class TransitionRequest(BaseModel):
    """Request model for a state transition."""
    to_state: CaseStateStr = Field(..., description="Target lifecycle state")
    note: Optional[str] = Field(None, description="Reason or comment")


class HistoryNoteRequest(BaseModel):
    """Request model for a free-form status entry."""
    status_label: str = Field(..., min_length=1, max_length=255, description="Sub-state label")
    note: Optional[str] = Field(None, description="Comment")
    reference_type: Optional[ReferenceTypeStr] = Field(
        None, description="Owner kind when the entry belongs to a document"
    )
    reference_id: Optional[str] = Field(None, description="Owner id when the entry belongs to a document")


class DocumentRegisterRequest(BaseModel):
    """Request model for registering a numbered document on a case."""
    reference_type: DocumentKindStr = Field(..., description="Document kind")
    note: Optional[str] = None


class CancelRequest(BaseModel):
    note: Optional[str] = Field(None, description="Cancellation reason")


class AssignRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1, max_length=64, description="New assignee user id")
    note: Optional[str] = None


# ========== Response DTOs ==========

class SLAViewResponse(BaseModel):
    """SLA position of a case."""
    status: SLAStatusStr
    deadline: Optional[datetime] = None
    hours_until_deadline: Optional[int] = None
    hours_overdue: int = 0
    is_sla_breached: bool = False


class CaseResponse(BaseModel):
    """Response model for a case."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_number: str
    current_state: CaseStateStr
    status: CaseStatusStr
    priority: PriorityStr
    client_id: str
    project_name: str
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: str
    state_entered_at: datetime
    expected_state_completion: Optional[datetime] = None
    is_sla_breached: bool
    created_at: datetime
    updated_at: datetime


class CaseDetailResponse(CaseResponse):
    """Case with its SLA view and allowed next states."""
    sla: SLAViewResponse
    allowed_transitions: List[CaseStateStr] = Field(default_factory=list)


class CaseListResponse(BaseModel):
    cases: List[CaseResponse]
    count: int


class HistoryEntryResponse(BaseModel):
    """Response model for a status history entry."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference_type: ReferenceTypeStr
    reference_id: str
    case_id: UUID
    from_state: Optional[CaseStateStr] = None
    to_state: CaseStateStr
    status_label: str
    note: Optional[str] = None
    actor: str
    created_at: datetime


class DocumentResponse(BaseModel):
    """Response model for a registered document."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    reference_type: DocumentKindStr
    document_number: str
    created_by: str
    created_at: datetime

"""
Escalation DTOs
================

Request and response models for the escalation API.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ManualEscalationRequest(BaseModel):
    """Request model for escalating a case by hand."""
    role: str = Field(..., min_length=1, max_length=64, description="Role that receives the escalation")
    reason: str = Field(..., min_length=1, description="Why the case is escalated")


class EscalationRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    state_name: Optional[str] = None
    priority_level: Optional[str] = None
    hours_overdue: Optional[int] = None
    escalate_to_role: str
    escalate_after_hours: int
    is_active: bool


class EscalationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    case_id: UUID
    rule_id: Optional[int] = None
    escalation_level: int
    triggered_by: str
    escalated_from_user: Optional[str] = None
    escalated_to_role: str
    client_impact_level: str
    hours_overdue: int
    reason: Optional[str] = None
    created_by: Optional[str] = None
    triggered_at: datetime
    resolved_at: Optional[datetime] = None


class EscalationRuleListResponse(BaseModel):
    rules: List[EscalationRuleResponse]
    total_count: int


class EscalationListResponse(BaseModel):
    escalations: List[EscalationResponse]
    total_count: int

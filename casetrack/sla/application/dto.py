"""
SLA Application DTOs
=====================

Response models for the SLA dashboard.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class BreachedCaseSummary(BaseModel):
    id: str
    case_number: str
    current_state: str
    priority: str
    assigned_to: Optional[str] = None
    hours_overdue: int


class DashboardResponse(BaseModel):
    """SLA overview across all active cases with a deadline."""
    total_active: int = Field(..., description="Active cases with a deadline")
    on_track: int
    warning: int
    breached: int
    breach_rate: float = Field(..., description="Breached share of active cases, percent")
    by_state: Dict[str, Dict[str, int]] = Field(
        ..., description="Per lifecycle state: on_track / warning / breached counts"
    )
    breached_cases: List[BreachedCaseSummary] = Field(
        default_factory=list, description="Breached cases, most overdue first"
    )
    generated_at: datetime


class SLAConfigResponse(BaseModel):
    """Currently loaded SLA configuration."""
    version: int
    state_sla_hours: Dict[str, int]
    warning_lookahead_hours: int
    warning_dedup_hours: int
    templates: List[str]
    escalation_rules: List[str]

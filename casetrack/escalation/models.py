"""
Escalation Infrastructure Models
=================================

SQLAlchemy ORM models for escalation rules and case escalations.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Boolean, Integer, Text, Uuid, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.infrastructure.database import Base
from casetrack.infrastructure.database.types import UTCDateTime, utc_now
from casetrack.escalation.domain import TriggeredBy, ImpactLevel


class EscalationRuleModel(Base):
    """
    Automatic escalation rule.

    Maps to the 'escalation_rules' table. Seeded from the SLA
    configuration; rules dropped from the file are deactivated, not deleted.
    """
    __tablename__ = "escalation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    # Filters (null matches any)
    state_name: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    priority_level: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    hours_overdue: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    escalate_to_role: Mapped[str] = mapped_column(String(64), nullable=False)
    escalate_after_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class CaseEscalationModel(Base):
    """
    One escalation of a case, automatic (rule) or manual (no rule).

    Maps to the 'case_escalations' table.
    """
    __tablename__ = "case_escalations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    case_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("cases.id"), nullable=False)
    rule_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("escalation_rules.id"), nullable=True)

    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    triggered_by: Mapped[str] = mapped_column(String(20), nullable=False, default=TriggeredBy.AUTOMATIC)
    escalated_from_user: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    escalated_to_role: Mapped[str] = mapped_column(String(64), nullable=False)
    client_impact_level: Mapped[str] = mapped_column(String(10), nullable=False, default=ImpactLevel.MEDIUM)
    hours_overdue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    triggered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_case_escalations_case_rule", "case_id", "rule_id", "triggered_at"),
        Index("ix_case_escalations_resolved", "resolved_at"),
    )

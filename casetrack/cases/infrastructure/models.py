"""
Case Infrastructure Models
===========================

SQLAlchemy ORM models for the case module.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, Boolean, Integer, Text, Uuid, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from casetrack.config import CaseState, CaseStatus, Priority, ReferenceType, VALID_REFERENCE_TYPES
from casetrack.infrastructure.database import Base
from casetrack.infrastructure.database.types import UTCDateTime, utc_now


class CaseModel(Base):
    """
    A business case moving through the lifecycle.

    Maps to the 'cases' table. Rows are never deleted; cases end as
    completed (closed) or cancelled.
    """
    __tablename__ = "cases"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    case_number: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)

    current_state: Mapped[str] = mapped_column(String(30), nullable=False, default=CaseState.ENQUIRY)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=CaseStatus.ACTIVE, index=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=Priority.MEDIUM)

    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)

    # SLA tracking
    state_entered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    expected_state_completion: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)
    is_sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class CaseDocumentModel(Base):
    """
    A numbered document registered against a case (enquiry, quotation, ...).

    Maps to the 'case_documents' table.
    """
    __tablename__ = "case_documents"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    case_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("cases.id"), nullable=False, index=True)
    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class CaseStateTransitionModel(Base):
    """
    Append-only status history entry.

    Maps to the 'case_state_transitions' table. The owner is the pair
    (reference_type, reference_id); see REFERENCE_OWNERS for which table
    each tag points at.
    """
    __tablename__ = "case_state_transitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(64), nullable=False)
    case_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("cases.id"), nullable=False, index=True)

    from_state: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_state: Mapped[str] = mapped_column(String(30), nullable=False)
    status_label: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_case_state_transitions_owner", "reference_type", "reference_id"),
    )


# Owning table per history owner tag
REFERENCE_OWNERS = {
    reference_type: CaseDocumentModel
    for reference_type in VALID_REFERENCE_TYPES
    if reference_type != ReferenceType.CASE
}
REFERENCE_OWNERS[ReferenceType.CASE] = CaseModel

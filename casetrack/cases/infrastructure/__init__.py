"""
Case Infrastructure Layer
==========================

ORM models and SQLAlchemy repositories for cases, documents and the
status history.
"""

from casetrack.cases.infrastructure.models import (
    CaseModel,
    CaseDocumentModel,
    CaseStateTransitionModel,
    REFERENCE_OWNERS,
)
from casetrack.cases.infrastructure.repositories import (
    SQLAlchemyCaseRepository,
    SQLAlchemyHistoryRepository,
    SQLAlchemyDocumentRepository,
    as_uuid,
)

__all__ = [
    "CaseModel",
    "CaseDocumentModel",
    "CaseStateTransitionModel",
    "REFERENCE_OWNERS",
    "SQLAlchemyCaseRepository",
    "SQLAlchemyHistoryRepository",
    "SQLAlchemyDocumentRepository",
    "as_uuid",
]

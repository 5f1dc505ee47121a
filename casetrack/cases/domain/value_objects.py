"""
Case Value Objects
===================

Immutable value objects for the case domain.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from casetrack.config import (
    ReferenceType, VALID_REFERENCE_TYPES, VALID_PRIORITIES, CASE_STATE_ORDER
)
from casetrack.core import ValidationException


@dataclass(frozen=True)
class Actor:
    """The user performing an operation, as supplied by the auth layer."""
    id: str
    roles: Tuple[str, ...] = ()

    def has_role(self, role: str) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class HistoryOwner:
    """
    Owner of a status history entry.

    A tagged reference: ``reference_type`` says which kind of record owns
    the entry and ``reference_id`` identifies it. For ``case`` the id is the
    case id; for document kinds it is the registered document id.
    """
    reference_type: str
    reference_id: str

    def __post_init__(self):
        if self.reference_type not in VALID_REFERENCE_TYPES:
            raise ValidationException(
                f"Unknown history owner type: {self.reference_type}",
                {"reference_type": self.reference_type, "allowed": VALID_REFERENCE_TYPES}
            )
        if not self.reference_id:
            raise ValidationException("History owner id is required")

    @classmethod
    def for_case(cls, case_id) -> "HistoryOwner":
        return cls(ReferenceType.CASE, str(case_id))

    @property
    def is_case(self) -> bool:
        return self.reference_type == ReferenceType.CASE


class CaseQuery(str):
    """Named listing variants; each maps to a fixed parameterised query."""
    ALL = "all"
    ACTIVE = "active"
    BREACHED = "breached"
    DUE_SOON = "due_soon"


VALID_CASE_QUERIES = [CaseQuery.ALL, CaseQuery.ACTIVE, CaseQuery.BREACHED, CaseQuery.DUE_SOON]


@dataclass
class CaseFilter:
    """Typed filter for case listings."""
    query: str = CaseQuery.ALL
    state: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    client_id: Optional[str] = None
    due_within_hours: int = 4
    limit: int = 100
    offset: int = 0

    def __post_init__(self):
        errors = {}
        if self.query not in VALID_CASE_QUERIES:
            errors["query"] = f"must be one of {VALID_CASE_QUERIES}"
        if self.state is not None and self.state not in CASE_STATE_ORDER:
            errors["state"] = f"must be one of {CASE_STATE_ORDER}"
        if self.priority is not None and self.priority not in VALID_PRIORITIES:
            errors["priority"] = f"must be one of {VALID_PRIORITIES}"
        if self.due_within_hours < 1:
            errors["due_within_hours"] = "must be at least 1"
        if not 1 <= self.limit <= 1000:
            errors["limit"] = "must be between 1 and 1000"
        if self.offset < 0:
            errors["offset"] = "must not be negative"
        if errors:
            raise ValidationException("Invalid case filter", errors)

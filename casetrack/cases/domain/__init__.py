"""
Case Domain Layer
==================

Pure Python domain logic for case lifecycle tracking.

Contains:
- Value objects: Actor, HistoryOwner, CaseFilter, CaseQuery
- State machine: transition graph and deadline rules
"""

from casetrack.cases.domain.value_objects import (
    Actor,
    HistoryOwner,
    CaseQuery,
    CaseFilter,
    VALID_CASE_QUERIES,
)
from casetrack.cases.domain.state_machine import TRANSITIONS, CaseStateMachine

__all__ = [
    "Actor",
    "HistoryOwner",
    "CaseQuery",
    "CaseFilter",
    "VALID_CASE_QUERIES",
    "TRANSITIONS",
    "CaseStateMachine",
]

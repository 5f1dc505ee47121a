"""
Case State Machine
===================

The lifecycle graph of a case and the rules for moving along it.

    enquiry -> estimation -> quotation -> sales_order
            -> manufacturing -> delivery -> closed

plus one rework edge: a rejected quotation goes back to estimation.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from casetrack.config import CaseState, CaseStatus, CASE_STATE_ORDER
from casetrack.core import (
    ValidationException,
    InvalidTransitionException,
    CaseClosedException,
)


TRANSITIONS: Dict[str, tuple] = {
    CaseState.ENQUIRY: (CaseState.ESTIMATION,),
    CaseState.ESTIMATION: (CaseState.QUOTATION,),
    CaseState.QUOTATION: (CaseState.SALES_ORDER, CaseState.ESTIMATION),
    CaseState.SALES_ORDER: (CaseState.MANUFACTURING,),
    CaseState.MANUFACTURING: (CaseState.DELIVERY,),
    CaseState.DELIVERY: (CaseState.CLOSED,),
    CaseState.CLOSED: (),
}


class CaseStateMachine:
    """
    Pure functions over the transition graph.

    Stateless; callers pass the current case fields in.
    """

    @staticmethod
    def allowed_transitions(state: str) -> List[str]:
        return list(TRANSITIONS.get(state, ()))

    @staticmethod
    def is_terminal(state: str, status: str) -> bool:
        return status != CaseStatus.ACTIVE or state == CaseState.CLOSED

    @staticmethod
    def check_transition(
        case_number: str,
        current_state: str,
        status: str,
        to_state: str
    ) -> None:
        """
        Validate a requested state change.

        Raises:
            CaseClosedException: Case is closed, completed or cancelled
            ValidationException: Target is not a lifecycle state
            InvalidTransitionException: Edge not in the graph
        """
        if CaseStateMachine.is_terminal(current_state, status):
            raise CaseClosedException(case_number, current_state, status)

        if to_state not in CASE_STATE_ORDER:
            raise ValidationException(
                f"Unknown case state: {to_state}",
                {"to_state": to_state, "allowed": CASE_STATE_ORDER}
            )

        allowed = CaseStateMachine.allowed_transitions(current_state)
        if to_state not in allowed:
            raise InvalidTransitionException(current_state, to_state, allowed)

    @staticmethod
    def deadline_for(
        state: str,
        entered_at: datetime,
        state_sla_hours: Dict[str, int]
    ) -> Optional[datetime]:
        """
        Deadline for completing ``state`` when entered at ``entered_at``.

        Closed cases have no deadline.
        """
        if state == CaseState.CLOSED:
            return None
        return entered_at + timedelta(hours=state_sla_hours[state])

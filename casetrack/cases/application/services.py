"""
Case Application Services
==========================

Application services orchestrate the case lifecycle: opening cases,
moving them along the transition graph, and keeping the status history.

Every write to case fields goes through this module (or the case
repository's breach flag), inside the caller's transaction, with the case
row locked.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from casetrack.cases.domain import Actor, HistoryOwner, CaseFilter, CaseStateMachine
from casetrack.config import (
    CaseState, CaseStatus, DocumentType, ReferenceType, VALID_REFERENCE_TYPES
)
from casetrack.core import (
    CaseNotFoundException,
    CaseClosedException,
    ResourceNotFoundException,
    ValidationException,
)
from casetrack.sequences import SequenceGenerator
from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.logging import get_logger
from casetrack.sla.domain import SLAConfig

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ICaseRepository(ABC):
    """Interface for case data access."""

    @abstractmethod
    async def get(self, case_id: Any, for_update: bool = False) -> Optional[Any]:
        """Get case by id, optionally locking the row."""

    @abstractmethod
    async def create(self, **fields) -> Any:
        """Insert a new case."""

    @abstractmethod
    async def list(self, case_filter: CaseFilter, now: datetime) -> List[Any]:
        """List cases for one of the fixed query variants."""

    @abstractmethod
    async def list_active_with_deadline(self) -> List[Any]:
        """Active cases that have a current-state deadline."""

    @abstractmethod
    async def list_breached_active(self) -> List[Any]:
        """Active cases whose breach flag is set."""

    @abstractmethod
    async def flag_breach(self, case_id: Any, now: datetime) -> bool:
        """Set is_sla_breached; False if it was already set or the case is gone."""


class IHistoryRepository(ABC):
    """Interface for status history access (append-only)."""

    @abstractmethod
    async def append(self, owner: HistoryOwner, case_id: Any, **fields) -> Any:
        """Append one history entry."""

    @abstractmethod
    async def list_for_owner(self, owner: HistoryOwner) -> List[Any]:
        """Entries of one owner, oldest first."""

    @abstractmethod
    async def find_owner(self, owner: HistoryOwner) -> Optional[Any]:
        """Load the record an owner reference points at."""


class IDocumentRepository(ABC):
    """Interface for case document access."""

    @abstractmethod
    async def create(self, **fields) -> Any:
        """Insert a new document."""

    @abstractmethod
    async def list_for_case(self, case_id: Any) -> List[Any]:
        """Documents registered against a case, oldest first."""


# ========== Application Services ==========

class CaseService:
    """
    Case store and state machine.

    Coordinates the transition graph, SLA deadlines, document numbering
    and the status history.
    """

    def __init__(
        self,
        case_repository: ICaseRepository,
        history_repository: IHistoryRepository,
        document_repository: IDocumentRepository,
        sequence_generator: SequenceGenerator,
        sla_config: SLAConfig,
        clock: Optional[Clock] = None,
        session: Optional[AsyncSession] = None
    ):
        self._cases = case_repository
        self._history = history_repository
        self._documents = document_repository
        self._sequences = sequence_generator
        self._sla_config = sla_config
        self._clock = clock or SystemClock()
        # Numbers are issued inside the caller's transaction when given
        self._session = session

    async def _require_case(self, case_id: Any, for_update: bool = False):
        case = await self._cases.get(case_id, for_update=for_update)
        if case is None:
            raise CaseNotFoundException(case_id)
        return case

    async def open_case(
        self,
        actor: Actor,
        client_id: str,
        project_name: str,
        priority: str,
        assigned_to: Optional[str] = None,
        description: Optional[str] = None,
        note: Optional[str] = None
    ):
        """
        Open a case in ``enquiry`` and register its enquiry document.

        Returns:
            The new case record
        """
        now = self._clock.now()
        case_number = await self._sequences.next_document_number(
            DocumentType.CASE, session=self._session, on=now.date()
        )
        enquiry_number = await self._sequences.next_document_number(
            DocumentType.ENQUIRY, session=self._session, on=now.date()
        )

        case = await self._cases.create(
            case_number=case_number,
            current_state=CaseState.ENQUIRY,
            status=CaseStatus.ACTIVE,
            priority=priority,
            client_id=client_id,
            project_name=project_name,
            description=description,
            assigned_to=assigned_to,
            created_by=actor.id,
            state_entered_at=now,
            expected_state_completion=CaseStateMachine.deadline_for(
                CaseState.ENQUIRY, now, self._sla_config.state_sla_hours
            ),
            is_sla_breached=False,
            created_at=now,
            updated_at=now
        )
        enquiry = await self._documents.create(
            case_id=case.id,
            reference_type=ReferenceType.ENQUIRY,
            document_number=enquiry_number,
            created_by=actor.id,
            created_at=now
        )

        await self._history.append(
            HistoryOwner.for_case(case.id),
            case.id,
            from_state=None,
            to_state=CaseState.ENQUIRY,
            status_label="Case created",
            note=note,
            actor=actor.id,
            created_at=now
        )
        await self._history.append(
            HistoryOwner(ReferenceType.ENQUIRY, str(enquiry.id)),
            case.id,
            from_state=None,
            to_state=CaseState.ENQUIRY,
            status_label=f"Enquiry {enquiry_number} registered",
            note=None,
            actor=actor.id,
            created_at=now
        )

        logger.info(
            "Case opened",
            extra={
                "case_number": case_number,
                "enquiry_number": enquiry_number,
                "priority": priority,
                "assigned_to": assigned_to,
                "actor_id": actor.id
            }
        )
        return case

    async def register_document(
        self,
        case_id: Any,
        reference_type: str,
        actor: Actor,
        note: Optional[str] = None
    ):
        """
        Issue a document number for an active case and record the document.

        Raises:
            ValidationException: Unknown or non-document reference type
            CaseNotFoundException: Unknown case
            CaseClosedException: Case is no longer active
        """
        if reference_type not in VALID_REFERENCE_TYPES or reference_type == ReferenceType.CASE:
            raise ValidationException(
                f"Unknown document kind: {reference_type}",
                {"reference_type": reference_type}
            )

        case = await self._require_case(case_id, for_update=True)
        if CaseStateMachine.is_terminal(case.current_state, case.status):
            raise CaseClosedException(case.case_number, case.current_state, case.status)

        now = self._clock.now()
        number = await self._sequences.next_document_number(
            reference_type, session=self._session, on=now.date()
        )
        document = await self._documents.create(
            case_id=case.id,
            reference_type=reference_type,
            document_number=number,
            created_by=actor.id,
            created_at=now
        )
        await self._history.append(
            HistoryOwner(reference_type, str(document.id)),
            case.id,
            from_state=case.current_state,
            to_state=case.current_state,
            status_label=f"{reference_type.replace('_', ' ').title()} {number} registered",
            note=note,
            actor=actor.id,
            created_at=now
        )

        logger.info(
            "Document registered",
            extra={
                "case_number": case.case_number,
                "reference_type": reference_type,
                "document_number": number
            }
        )
        return document

    async def transition(
        self,
        case_id: Any,
        to_state: str,
        actor: Actor,
        note: Optional[str] = None
    ):
        """
        Move a case to ``to_state``.

        Resets the breach flag, restarts the state clock and computes the
        new deadline. Entering ``closed`` completes the case.

        Raises:
            CaseNotFoundException: Unknown case
            CaseClosedException: Case is closed, completed or cancelled
            InvalidTransitionException: Edge not in the graph

        Returns:
            The appended history entry
        """
        case = await self._require_case(case_id, for_update=True)
        CaseStateMachine.check_transition(
            case.case_number, case.current_state, case.status, to_state
        )

        now = self._clock.now()
        from_state = case.current_state

        case.current_state = to_state
        case.state_entered_at = now
        case.expected_state_completion = CaseStateMachine.deadline_for(
            to_state, now, self._sla_config.state_sla_hours
        )
        case.is_sla_breached = False
        case.updated_at = now
        if to_state == CaseState.CLOSED:
            case.status = CaseStatus.COMPLETED

        entry = await self._history.append(
            HistoryOwner.for_case(case.id),
            case.id,
            from_state=from_state,
            to_state=to_state,
            status_label=f"Moved to {to_state.replace('_', ' ')}",
            note=note,
            actor=actor.id,
            created_at=now
        )

        logger.info(
            "Case transitioned",
            extra={
                "case_number": case.case_number,
                "from_state": from_state,
                "to_state": to_state,
                "deadline": case.expected_state_completion.isoformat() if case.expected_state_completion else None,
                "actor_id": actor.id
            }
        )
        return entry

    async def record_history(
        self,
        case_id: Any,
        status_label: str,
        note: Optional[str],
        actor: Actor,
        document: Optional[HistoryOwner] = None
    ):
        """
        Append a free-form status entry without changing the case state.

        ``document`` attaches the entry to a registered document of the case
        instead of the case itself.

        Raises:
            ValidationException: Empty status label
            CaseNotFoundException: Unknown case
            ResourceNotFoundException: Document missing or belongs to another case
        """
        if not status_label or not status_label.strip():
            raise ValidationException("status_label is required")

        case = await self._require_case(case_id)
        owner = document or HistoryOwner.for_case(case.id)

        if owner.is_case:
            if owner.reference_id != str(case.id):
                raise ValidationException(
                    "Case owner does not match the case",
                    {"case_id": str(case.id), "reference_id": owner.reference_id}
                )
        else:
            record = await self._history.find_owner(owner)
            if (
                record is None
                or record.case_id != case.id
                or record.reference_type != owner.reference_type
            ):
                raise ResourceNotFoundException(
                    owner.reference_type, owner.reference_id, {"case_id": str(case.id)}
                )

        return await self._history.append(
            owner,
            case.id,
            from_state=case.current_state,
            to_state=case.current_state,
            status_label=status_label.strip(),
            note=note,
            actor=actor.id,
            created_at=self._clock.now()
        )

    async def get_history(self, case_id: Any) -> List[Any]:
        """Case-owned history entries, oldest first."""
        case = await self._require_case(case_id)
        return await self._history.list_for_owner(HistoryOwner.for_case(case.id))

    async def get_document_history(self, owner: HistoryOwner) -> List[Any]:
        """History entries of any owner, oldest first."""
        if await self._history.find_owner(owner) is None:
            raise ResourceNotFoundException(owner.reference_type, owner.reference_id)
        return await self._history.list_for_owner(owner)

    async def cancel_case(self, case_id: Any, actor: Actor, note: Optional[str] = None):
        """
        Cancel an active case. Its deadline stops being monitored.

        Raises:
            CaseNotFoundException, CaseClosedException
        """
        case = await self._require_case(case_id, for_update=True)
        if CaseStateMachine.is_terminal(case.current_state, case.status):
            raise CaseClosedException(case.case_number, case.current_state, case.status)

        now = self._clock.now()
        case.status = CaseStatus.CANCELLED
        case.updated_at = now
        await self._history.append(
            HistoryOwner.for_case(case.id),
            case.id,
            from_state=case.current_state,
            to_state=case.current_state,
            status_label="Case cancelled",
            note=note,
            actor=actor.id,
            created_at=now
        )

        logger.info(
            "Case cancelled",
            extra={"case_number": case.case_number, "state": case.current_state, "actor_id": actor.id}
        )
        return case

    async def assign_case(
        self,
        case_id: Any,
        assignee: str,
        actor: Actor,
        note: Optional[str] = None
    ):
        """
        Reassign an active case.

        Raises:
            ValidationException, CaseNotFoundException, CaseClosedException
        """
        if not assignee or not assignee.strip():
            raise ValidationException("assigned_to is required")

        case = await self._require_case(case_id, for_update=True)
        if CaseStateMachine.is_terminal(case.current_state, case.status):
            raise CaseClosedException(case.case_number, case.current_state, case.status)

        now = self._clock.now()
        previous = case.assigned_to
        case.assigned_to = assignee.strip()
        case.updated_at = now
        await self._history.append(
            HistoryOwner.for_case(case.id),
            case.id,
            from_state=case.current_state,
            to_state=case.current_state,
            status_label=f"Reassigned from {previous or 'unassigned'} to {case.assigned_to}",
            note=note,
            actor=actor.id,
            created_at=now
        )

        logger.info(
            "Case reassigned",
            extra={"case_number": case.case_number, "from_user": previous, "to_user": case.assigned_to}
        )
        return case

    async def get_case(self, case_id: Any):
        return await self._require_case(case_id)

    async def list_documents(self, case_id: Any) -> List[Any]:
        case = await self._require_case(case_id)
        return await self._documents.list_for_case(case.id)

    async def list_cases(self, case_filter: CaseFilter) -> List[Any]:
        return await self._cases.list(case_filter, self._clock.now())

"""
Tests for the case store and state machine.
"""
from datetime import timedelta

import pytest

from casetrack.cases.domain import CaseFilter, CaseQuery, CaseStateMachine, HistoryOwner
from casetrack.core import (
    CaseClosedException,
    CaseNotFoundException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from tests.conftest import NOW


FORWARD_PATH = ["estimation", "quotation", "sales_order", "manufacturing", "delivery", "closed"]


# =============================================================================
# Opening cases
# =============================================================================

async def test_open_case_starts_in_enquiry_with_deadline(open_case, case_service):
    case = await open_case()

    assert case.case_number == "VESPL/C/2526/001"
    assert case.current_state == "enquiry"
    assert case.status == "active"
    assert case.state_entered_at == NOW
    assert case.expected_state_completion == NOW + timedelta(hours=24)
    assert case.is_sla_breached is False

    documents = await case_service.list_documents(case.id)
    assert [d.document_number for d in documents] == ["VESPL/EQ/2526/001"]

    history = await case_service.get_history(case.id)
    assert len(history) == 1
    assert history[0].from_state is None
    assert history[0].to_state == "enquiry"


async def test_second_case_takes_next_numbers(open_case, case_service):
    await open_case()
    case = await open_case(client_id="client-002")

    documents = await case_service.list_documents(case.id)
    assert case.case_number == "VESPL/C/2526/002"
    assert documents[0].document_number == "VESPL/EQ/2526/002"


# =============================================================================
# Transitions
# =============================================================================

async def test_forward_path_to_closed_completes_case(open_case, case_service, actor, clock):
    case = await open_case()

    for to_state in FORWARD_PATH:
        clock.advance(hours=1)
        entry = await case_service.transition(case.id, to_state, actor)
        assert entry.to_state == to_state

    case = await case_service.get_case(case.id)
    assert case.current_state == "closed"
    assert case.status == "completed"
    assert case.expected_state_completion is None
    assert CaseStateMachine.allowed_transitions("closed") == []


async def test_transition_resets_clock_deadline_and_breach_flag(open_case, case_service, actor, clock, session):
    case = await open_case()
    case.is_sla_breached = True
    await session.flush()

    clock.advance(hours=30)
    await case_service.transition(case.id, "estimation", actor, note="Specs received")

    case = await case_service.get_case(case.id)
    assert case.state_entered_at == clock.now()
    assert case.expected_state_completion == clock.now() + timedelta(hours=48)
    assert case.is_sla_breached is False


async def test_quotation_may_return_to_estimation(open_case, case_service, actor):
    case = await open_case()
    await case_service.transition(case.id, "estimation", actor)
    await case_service.transition(case.id, "quotation", actor)

    entry = await case_service.transition(case.id, "estimation", actor, note="Quotation rejected")

    assert entry.from_state == "quotation"
    assert entry.to_state == "estimation"


@pytest.mark.parametrize("to_state", ["quotation", "closed", "enquiry", "delivery"])
async def test_edges_outside_graph_are_rejected(open_case, case_service, actor, to_state):
    """A rejected transition leaves state and history unchanged."""
    case = await open_case()

    with pytest.raises(InvalidTransitionException) as exc_info:
        await case_service.transition(case.id, to_state, actor)

    assert exc_info.value.allowed == ["estimation"]
    case = await case_service.get_case(case.id)
    assert case.current_state == "enquiry"
    assert len(await case_service.get_history(case.id)) == 1


async def test_unknown_state_is_a_validation_error(open_case, case_service, actor):
    case = await open_case()

    with pytest.raises(ValidationException):
        await case_service.transition(case.id, "archived", actor)


async def test_transition_of_unknown_case(case_service, actor):
    with pytest.raises(CaseNotFoundException):
        await case_service.transition("4b8f1c3e-0000-4000-8000-000000000000", "estimation", actor)


async def test_closed_case_cannot_move(open_case, case_service, actor):
    case = await open_case()
    for to_state in FORWARD_PATH:
        await case_service.transition(case.id, to_state, actor)

    with pytest.raises(CaseClosedException):
        await case_service.transition(case.id, "estimation", actor)


# =============================================================================
# History and documents
# =============================================================================

async def test_record_history_keeps_state(open_case, case_service, actor):
    case = await open_case()

    entry = await case_service.record_history(case.id, "Awaiting drawings", "Client to send CAD", actor)

    assert entry.from_state == entry.to_state == "enquiry"
    assert entry.reference_type == "case"
    history = await case_service.get_history(case.id)
    assert [h.status_label for h in history] == ["Case created", "Awaiting drawings"]


async def test_record_history_on_document(open_case, case_service, actor):
    case = await open_case()
    await case_service.transition(case.id, "estimation", actor)
    document = await case_service.register_document(case.id, "estimation", actor)
    owner = HistoryOwner("estimation", str(document.id))

    await case_service.record_history(case.id, "Costing reviewed", None, actor, document=owner)

    entries = await case_service.get_document_history(owner)
    assert [e.status_label for e in entries] == [
        "Estimation VESPL/ES/2526/001 registered",
        "Costing reviewed",
    ]
    assert all(e.reference_id == str(document.id) for e in entries)


async def test_record_history_rejects_document_of_other_case(open_case, case_service, actor):
    first = await open_case()
    second = await open_case(client_id="client-002")
    document = await case_service.register_document(first.id, "quotation", actor)

    with pytest.raises(ResourceNotFoundException):
        await case_service.record_history(
            second.id, "Misfiled", None, actor,
            document=HistoryOwner("quotation", str(document.id))
        )


async def test_blank_status_label_is_rejected(open_case, case_service, actor):
    case = await open_case()

    with pytest.raises(ValidationException):
        await case_service.record_history(case.id, "   ", None, actor)


async def test_history_owner_rejects_unknown_type():
    with pytest.raises(ValidationException):
        HistoryOwner("brochure", "1")


# =============================================================================
# Cancel, assign, list
# =============================================================================

async def test_cancelled_case_rejects_further_changes(open_case, case_service, actor):
    case = await open_case()

    await case_service.cancel_case(case.id, actor, note="Client withdrew")

    with pytest.raises(CaseClosedException):
        await case_service.transition(case.id, "estimation", actor)
    with pytest.raises(CaseClosedException):
        await case_service.register_document(case.id, "quotation", actor)
    with pytest.raises(CaseClosedException):
        await case_service.cancel_case(case.id, actor)


async def test_assign_case_records_handover(open_case, case_service, actor):
    case = await open_case(assigned_to=None)

    case = await case_service.assign_case(case.id, "user-eng-9", actor)

    assert case.assigned_to == "user-eng-9"
    history = await case_service.get_history(case.id)
    assert history[-1].status_label == "Reassigned from unassigned to user-eng-9"


async def test_list_query_variants(open_case, case_service, actor, clock, session):
    due_soon = await open_case(client_id="client-a")
    breached = await open_case(client_id="client-b")
    cancelled = await open_case(client_id="client-c")

    due_soon.expected_state_completion = NOW + timedelta(hours=2)
    breached.is_sla_breached = True
    await session.flush()
    await case_service.cancel_case(cancelled.id, actor)

    all_cases = await case_service.list_cases(CaseFilter())
    active = await case_service.list_cases(CaseFilter(query=CaseQuery.ACTIVE))
    breached_only = await case_service.list_cases(CaseFilter(query=CaseQuery.BREACHED))
    due = await case_service.list_cases(CaseFilter(query=CaseQuery.DUE_SOON, due_within_hours=4))

    assert len(all_cases) == 3
    assert {c.client_id for c in active} == {"client-a", "client-b"}
    assert [c.client_id for c in breached_only] == ["client-b"]
    assert [c.client_id for c in due] == ["client-a"]


def test_case_filter_rejects_bad_values():
    with pytest.raises(ValidationException):
        CaseFilter(query="everything")
    with pytest.raises(ValidationException):
        CaseFilter(limit=0)

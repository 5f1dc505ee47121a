"""
Tests for automatic and manual escalation.
"""
from types import SimpleNamespace

import pytest

from casetrack.cases.infrastructure import SQLAlchemyCaseRepository
from casetrack.core import CaseClosedException, ValidationException
from casetrack.escalation.domain import rule_matches
from casetrack.escalation.repositories import (
    SQLAlchemyEscalationRuleRepository,
    SQLAlchemyEscalationRepository,
)
from casetrack.escalation.services import EscalationEngine
from casetrack.notifications.infrastructure import SQLAlchemyTemplateRepository
from casetrack.sla.application import SLAMonitor


@pytest.fixture
def monitor(session, queue, sla_config, clock) -> SLAMonitor:
    return SLAMonitor(
        session,
        SQLAlchemyCaseRepository(session),
        SQLAlchemyTemplateRepository(session),
        queue,
        sla_config,
        clock=clock,
    )


@pytest.fixture
def escalation_engine(session, queue, clock) -> EscalationEngine:
    return EscalationEngine(
        session,
        SQLAlchemyCaseRepository(session),
        SQLAlchemyEscalationRuleRepository(session),
        SQLAlchemyEscalationRepository(session),
        SQLAlchemyTemplateRepository(session),
        queue,
        clock=clock,
    )


@pytest.fixture
def sweep(monitor, escalation_engine, session):
    """One scheduler pass: monitor then escalation engine."""

    async def _sweep():
        sla_report = await monitor.sweep()
        await session.flush()
        return sla_report, await escalation_engine.evaluate()

    return _sweep


@pytest.fixture
async def overdue_case(open_case, case_service, actor, clock):
    """High priority case in estimation, three hours past its deadline."""
    case = await open_case(priority="high")
    await case_service.transition(case.id, "estimation", actor)
    clock.advance(hours=48 + 3)
    return case


# =============================================================================
# Automatic escalation
# =============================================================================

async def test_high_priority_breach_notifies_everyone_and_escalates_once(overdue_case, sweep, escalation_engine, queue):
    sla_report, escalation_report = await sweep()

    rows = await queue.list_notifications(case_id=overdue_case.id)
    breach_rows = sorted(
        (r.recipient_user_id or r.recipient_role, r.trigger_event)
        for r in rows if r.trigger_event != "automatic_escalation"
    )
    assert sla_report.breached == 1
    assert breach_rows == [
        ("director", "critical_sla_breach"),
        ("manager", "sla_breach_management"),
        ("user-eng-7", "sla_breach"),
    ]

    escalations = await escalation_engine.list_escalations(overdue_case.id)
    assert escalation_report.escalations_created == 1
    assert len(escalations) == 1
    escalation = escalations[0]
    assert escalation.escalated_to_role == "manager"
    assert escalation.escalation_level == 1
    assert escalation.triggered_by == "automatic"
    assert escalation.hours_overdue == 3
    assert escalation.client_impact_level == "high"
    assert escalation.escalated_from_user == "user-eng-7"

    notices = [r for r in rows if r.trigger_event == "automatic_escalation"]
    assert len(notices) == 1
    assert notices[0].recipient_role == "manager"
    assert notices[0].context_data["escalation_level"] == 1


async def test_rule_does_not_refire_inside_cooldown(overdue_case, sweep, escalation_engine, clock):
    await sweep()

    clock.advance(minutes=15)
    _, second = await sweep()
    clock.advance(hours=2)
    _, third = await sweep()

    assert second.escalations_created == 0
    assert third.escalations_created == 0
    assert len(await escalation_engine.list_escalations(overdue_case.id)) == 1


async def test_rule_with_higher_threshold_fires_later(overdue_case, sweep, escalation_engine, clock):
    await sweep()

    clock.advance(hours=5)
    _, report = await sweep()

    escalations = await escalation_engine.list_escalations(overdue_case.id)
    assert report.escalations_created == 1
    assert [e.escalated_to_role for e in escalations] == ["manager", "director"]
    assert escalations[1].hours_overdue == 8


async def test_level_increases_when_rule_fires_again(overdue_case, sweep, escalation_engine, clock):
    await sweep()

    clock.advance(hours=24, minutes=1)
    await sweep()

    manager_levels = [
        e.escalation_level
        for e in await escalation_engine.list_escalations(overdue_case.id)
        if e.escalated_to_role == "manager"
    ]
    assert manager_levels == [1, 2]


async def test_priority_filter_excludes_other_cases(open_case, sweep, escalation_engine, clock):
    case = await open_case(priority="medium")
    clock.advance(hours=24 + 10)

    await sweep()

    escalations = await escalation_engine.list_escalations(case.id)
    assert [e.escalated_to_role for e in escalations] == ["manager"]
    assert escalations[0].client_impact_level == "medium"


async def test_moving_on_resolves_open_escalations(overdue_case, sweep, escalation_engine, case_service, actor):
    await sweep()

    await case_service.transition(overdue_case.id, "quotation", actor)
    _, report = await sweep()

    escalations = await escalation_engine.list_escalations(overdue_case.id)
    assert report.resolved == 1
    assert report.evaluated == 0
    assert escalations[0].resolved_at is not None


async def test_resolved_escalations_are_purged_after_retention(overdue_case, sweep, escalation_engine, case_service, actor, clock):
    await sweep()
    await case_service.cancel_case(overdue_case.id, actor)
    await sweep()

    clock.advance(days=89)
    assert await escalation_engine.purge_resolved(90) == 0
    clock.advance(days=2)
    assert await escalation_engine.purge_resolved(90) == 1
    assert await escalation_engine.list_escalations(overdue_case.id) == []


def test_rule_matching_filters():
    rule = SimpleNamespace(is_active=True, state_name="quotation", priority_level=None, hours_overdue=4)
    case = SimpleNamespace(current_state="quotation", priority="low")

    assert rule_matches(rule, case, 4)
    assert not rule_matches(rule, case, 3)
    assert not rule_matches(rule, SimpleNamespace(current_state="estimation", priority="low"), 10)
    rule.is_active = False
    assert not rule_matches(rule, case, 10)


# =============================================================================
# Manual escalation
# =============================================================================

async def test_manual_escalation(open_case, escalation_engine, queue, actor):
    case = await open_case()

    escalation = await escalation_engine.escalate_manually(case.id, "director", "Client complaint", actor)

    assert escalation.triggered_by == "manual"
    assert escalation.escalation_level == 1
    assert escalation.rule_id is None
    assert escalation.created_by == actor.id
    assert escalation.reason == "Client complaint"

    rows = await queue.list_notifications(case_id=case.id)
    assert [(r.recipient_role, r.trigger_event) for r in rows] == [("director", "manual_escalation")]
    assert rows[0].context_data["escalation_reason"] == "Client complaint"


async def test_manual_escalation_requires_reason(open_case, escalation_engine, actor):
    case = await open_case()

    with pytest.raises(ValidationException):
        await escalation_engine.escalate_manually(case.id, "director", "  ", actor)


async def test_manual_escalation_of_cancelled_case(open_case, escalation_engine, case_service, actor):
    case = await open_case()
    await case_service.cancel_case(case.id, actor)

    with pytest.raises(CaseClosedException):
        await escalation_engine.escalate_manually(case.id, "director", "Too late", actor)


async def test_manual_escalation_stays_open_while_case_is_active(open_case, sweep, escalation_engine, case_service, actor):
    case = await open_case()
    escalation = await escalation_engine.escalate_manually(case.id, "director", "Client complaint", actor)

    _, report = await sweep()

    assert report.resolved == 0
    assert escalation.resolved_at is None

    await case_service.cancel_case(case.id, actor)
    _, report = await sweep()

    assert report.resolved == 1
    assert escalation.resolved_at is not None

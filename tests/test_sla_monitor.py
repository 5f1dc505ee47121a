"""
Tests for the SLA monitor: warnings, breach flags and their notifications.
"""
from datetime import timedelta

import pytest

from casetrack.cases.infrastructure import SQLAlchemyCaseRepository
from casetrack.notifications.infrastructure import SQLAlchemyTemplateRepository
from casetrack.sla.application import SLAMonitor, SLADashboardService
from casetrack.sla.domain import SLACalculator, SLAStatus
from tests.conftest import NOW


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


def _recipients(rows):
    return sorted((r.recipient_user_id or r.recipient_role, r.trigger_event) for r in rows)


# =============================================================================
# Calculator
# =============================================================================

@pytest.mark.parametrize(
    "left, expected",
    [
        (timedelta(hours=4), True),
        (timedelta(hours=3, minutes=1), True),
        (timedelta(minutes=1), True),
        (timedelta(hours=4, minutes=1), False),
        (timedelta(0), False),
        (timedelta(hours=-1), False),
    ],
)
def test_warning_window_is_zero_to_four_hours(left, expected):
    assert SLACalculator.is_in_warning_window(NOW + left, NOW, 4) is expected


def test_deadline_instant_counts_as_breached():
    assert SLACalculator.is_past_deadline(NOW, NOW)
    assert SLACalculator.classify(NOW, NOW, False, 4) == SLAStatus.BREACHED
    assert SLACalculator.hours_overdue(NOW - timedelta(hours=3, minutes=59), NOW) == 3


# =============================================================================
# Warnings
# =============================================================================

async def test_no_warning_outside_window(open_case, monitor, queue, clock):
    case = await open_case()
    clock.advance(hours=19, minutes=59)

    report = await monitor.sweep()

    assert report.evaluated == 1
    assert report.warned == 0
    assert await queue.list_notifications(case_id=case.id) == []


async def test_warning_goes_to_assignee(open_case, monitor, queue, clock):
    case = await open_case()
    clock.advance(hours=20)

    report = await monitor.sweep()

    rows = await queue.list_notifications(case_id=case.id)
    assert report.warned == 1
    assert _recipients(rows) == [("user-eng-7", "sla_warning")]
    assert rows[0].context_data["hours_until_deadline"] == 4
    assert rows[0].context_data["case_number"] == case.case_number


async def test_high_priority_warning_also_goes_to_manager(open_case, monitor, queue, clock):
    case = await open_case(priority="high")
    clock.advance(hours=21)

    await monitor.sweep()

    rows = await queue.list_notifications(case_id=case.id)
    assert _recipients(rows) == [("manager", "high_priority_sla_warning"), ("user-eng-7", "sla_warning")]


async def test_warning_not_repeated_within_two_hours(open_case, monitor, queue, clock):
    case = await open_case()
    clock.advance(hours=20)
    await monitor.sweep()

    clock.advance(hours=1)
    second = await monitor.sweep()
    clock.advance(hours=1)
    third = await monitor.sweep()

    assert second.warned == 0
    assert third.warned == 0
    assert len(await queue.list_notifications(case_id=case.id)) == 1


async def test_warning_repeats_after_dedup_window(open_case, monitor, queue, clock):
    case = await open_case()
    clock.advance(hours=20)
    await monitor.sweep()

    clock.advance(hours=2, minutes=30)
    report = await monitor.sweep()

    assert report.warned == 1
    assert len(await queue.list_notifications(case_id=case.id)) == 2


async def test_unassigned_case_gets_no_warning(open_case, monitor, queue, clock):
    case = await open_case(assigned_to=None)
    clock.advance(hours=22)

    report = await monitor.sweep()

    assert report.warned == 0
    assert await queue.list_notifications(case_id=case.id) == []


# =============================================================================
# Breaches
# =============================================================================

async def test_breach_flags_case_and_notifies(open_case, monitor, queue, clock):
    case = await open_case()
    clock.advance(hours=25)

    report = await monitor.sweep()

    assert report.breached == 1
    assert case.is_sla_breached is True
    rows = await queue.list_notifications(case_id=case.id)
    assert _recipients(rows) == [("manager", "sla_breach_management"), ("user-eng-7", "sla_breach")]
    assert rows[0].context_data["hours_overdue"] == 1


async def test_breach_is_flagged_once_across_sweeps(open_case, monitor, queue, clock):
    case = await open_case()
    clock.advance(hours=24)
    first = await monitor.sweep()

    clock.advance(minutes=15)
    second = await monitor.sweep()
    clock.advance(hours=6)
    third = await monitor.sweep()

    assert first.breached == 1
    assert second.breached == 0
    assert third.breached == 0
    assert len(await queue.list_notifications(case_id=case.id)) == 2


async def test_unassigned_breach_notifies_management_only(open_case, monitor, queue, clock):
    case = await open_case(assigned_to=None, priority="high")
    clock.advance(hours=30)

    await monitor.sweep()

    rows = await queue.list_notifications(case_id=case.id)
    assert _recipients(rows) == [("director", "critical_sla_breach"), ("manager", "sla_breach_management")]


async def test_inactive_cases_are_not_evaluated(open_case, case_service, monitor, actor, clock):
    case = await open_case()
    await case_service.cancel_case(case.id, actor)
    clock.advance(hours=48)

    report = await monitor.sweep()

    assert report.evaluated == 0
    assert case.is_sla_breached is False


async def test_new_state_gets_new_breach_episode(open_case, case_service, monitor, queue, actor, clock):
    case = await open_case()
    clock.advance(hours=25)
    await monitor.sweep()

    await case_service.transition(case.id, "estimation", actor)
    assert case.is_sla_breached is False
    clock.advance(hours=49)
    report = await monitor.sweep()

    assert report.breached == 1
    assert len(await queue.list_notifications(case_id=case.id)) == 4


# =============================================================================
# Dashboard
# =============================================================================

async def test_dashboard_counts(open_case, monitor, session, sla_config, clock):
    await open_case(client_id="on-track")
    soon = await open_case(client_id="soon")
    late = await open_case(client_id="late")
    soon.expected_state_completion = NOW + timedelta(hours=3)
    late.expected_state_completion = NOW - timedelta(hours=5)
    await session.flush()

    summary = await SLADashboardService(SQLAlchemyCaseRepository(session), sla_config, clock).summary()

    assert summary["total_active"] == 3
    assert (summary["on_track"], summary["warning"], summary["breached"]) == (1, 1, 1)
    assert summary["breach_rate"] == pytest.approx(33.33)
    assert summary["by_state"]["enquiry"] == {"on_track": 1, "warning": 1, "breached": 1}
    assert summary["breached_cases"][0]["case_number"] == late.case_number
    assert summary["breached_cases"][0]["hours_overdue"] == 5

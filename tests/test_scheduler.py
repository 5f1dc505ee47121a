"""
Tests for the periodic task primitive and the case scheduler.
"""
import asyncio

import pytest

from casetrack.cases.application import CaseService
from casetrack.cases.infrastructure import (
    SQLAlchemyCaseRepository,
    SQLAlchemyHistoryRepository,
    SQLAlchemyDocumentRepository,
)
from casetrack.core import ConflictException, ResourceNotFoundException
from casetrack.infrastructure.database import get_session_context
from casetrack.scheduler import CaseScheduler, PeriodicTask, TaskName


@pytest.fixture
def scheduler(config_manager, recording_channel, session_maker, clock):
    scheduler = CaseScheduler(
        config_manager,
        recording_channel,
        session_maker=session_maker,
        clock=clock,
        intervals={name: 3600 for name in (
            TaskName.SLA_SWEEP, TaskName.NOTIFICATION_DRAIN,
            TaskName.METRICS_ROLLUP, TaskName.RETENTION_CLEANUP,
        )},
    )
    yield scheduler
    scheduler.stop()


# =============================================================================
# PeriodicTask
# =============================================================================

async def test_task_never_overlaps_itself(clock):
    release = asyncio.Event()
    calls = []

    async def work():
        calls.append(1)
        await release.wait()
        return "done"

    task = PeriodicTask("slow", work, 60, clock=clock)
    first = asyncio.create_task(task.run())
    await asyncio.sleep(0)

    assert task.is_running
    assert await task.run() is False

    release.set()
    assert await first is True
    assert calls == [1]
    assert task.skipped_count == 1
    assert task.last_result == "done"


async def test_task_error_is_recorded_not_raised(clock):
    async def broken():
        raise RuntimeError("database unreachable")

    task = PeriodicTask("broken", broken, 60, clock=clock)

    assert await task.run() is True
    assert await task.run() is True

    status = task.status()
    assert status["run_count"] == 2
    assert status["failure_count"] == 2
    assert status["last_error"] == "RuntimeError: database unreachable"
    assert status["last_run"] == clock.now().isoformat()


async def test_success_clears_last_error(clock):
    outcomes = [RuntimeError("first"), None]

    async def flaky():
        outcome = outcomes.pop(0)
        if outcome:
            raise outcome

    task = PeriodicTask("flaky", flaky, 60, clock=clock)
    await task.run()
    await task.run()

    assert task.last_error is None
    assert task.failure_count == 1


# =============================================================================
# CaseScheduler
# =============================================================================

async def test_status_before_and_after_start(scheduler):
    status = scheduler.status()
    assert status["running"] is False
    assert status["active_task_count"] == 0
    assert status["last_run_timestamp"] is None
    assert set(status["tasks"]) == {"sla_sweep", "notification_drain", "metrics_rollup", "retention_cleanup"}

    scheduler.start()
    assert scheduler.status()["running"] is True
    assert scheduler.status()["active_task_count"] == 4

    scheduler.stop()
    assert scheduler.is_running is False


def test_stop_without_start_is_harmless(scheduler):
    scheduler.stop()
    scheduler.stop()

    assert scheduler.is_running is False


async def test_unknown_task_is_not_found(scheduler):
    with pytest.raises(ResourceNotFoundException):
        await scheduler.run_task("reindex")


async def test_manual_trigger_while_running_conflicts(monkeypatch, config_manager, recording_channel, session_maker, clock):
    release = asyncio.Event()

    async def hold(self):
        await release.wait()
        return {}

    monkeypatch.setattr(CaseScheduler, "retention_cleanup", hold)
    scheduler = CaseScheduler(config_manager, recording_channel, session_maker=session_maker, clock=clock)
    running = asyncio.create_task(scheduler.run_task(TaskName.RETENTION_CLEANUP))
    await asyncio.sleep(0)

    with pytest.raises(ConflictException):
        await scheduler.run_task(TaskName.RETENTION_CLEANUP)

    release.set()
    result = await running
    assert result["result"] == {}
    assert result["skipped_count"] == 1


async def test_full_cycle(scheduler, session_maker, sequence_generator, sla_config, recording_channel, actor, clock):
    """Breach sweep, delivery, rollup and cleanup against one database."""
    async with get_session_context(session_maker) as session:
        service = CaseService(
            SQLAlchemyCaseRepository(session),
            SQLAlchemyHistoryRepository(session),
            SQLAlchemyDocumentRepository(session),
            sequence_generator,
            sla_config,
            clock=clock,
            session=session,
        )
        case = await service.open_case(
            actor, client_id="client-001", project_name="Press line", priority="high", assigned_to="user-eng-7"
        )

    clock.advance(hours=25)
    sweep = await scheduler.run_task(TaskName.SLA_SWEEP)

    assert sweep["last_error"] is None
    assert sweep["result"]["sla"]["breached"] == 1
    assert sweep["result"]["sla"]["notifications_queued"] == 3
    assert sweep["result"]["escalation"]["escalations_created"] == 1
    assert sweep["result"]["escalation"]["notifications_queued"] == 1

    repeat = await scheduler.run_task(TaskName.SLA_SWEEP)
    assert repeat["result"]["sla"]["breached"] == 0
    assert repeat["result"]["escalation"]["escalations_created"] == 0

    drain = await scheduler.run_task(TaskName.NOTIFICATION_DRAIN)
    assert drain["result"] == {"attempted": 4, "sent": 4, "failed": 0}
    assert {item["context"]["case_number"] for item in recording_channel.sent} == {case.case_number}

    rollup = await scheduler.run_task(TaskName.METRICS_ROLLUP)
    assert rollup["result"]["metric_date"] == "2025-06-01"
    assert rollup["result"]["states"] == [
        {"state": "enquiry", "total_cases": 1, "compliant_cases": 0, "compliance_percentage": 0.0}
    ]

    cleanup = await scheduler.run_task(TaskName.RETENTION_CLEANUP)
    assert cleanup["result"] == {"notifications_deleted": 0, "escalations_deleted": 0}

    assert scheduler.status()["last_run_timestamp"] == clock.now().isoformat()

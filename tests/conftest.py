"""
Test configuration and fixtures.

Provides:
- File-backed SQLite database (aiosqlite), fresh per test
- Frozen clock so deadlines are deterministic
- Seeded templates and escalation rules
- Case service and delivery channel doubles
- HTTPX AsyncClient against a fresh app
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
import yaml
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine

from casetrack.cases.application import CaseService
from casetrack.cases.domain import Actor
from casetrack.cases.infrastructure import (
    SQLAlchemyCaseRepository,
    SQLAlchemyHistoryRepository,
    SQLAlchemyDocumentRepository,
)
from casetrack.core import DeliveryException
from casetrack.infrastructure.database import (
    build_session_maker,
    create_tables,
    enable_sqlite_savepoints,
    get_session,
    get_session_context,
)
from casetrack.notifications.application import IDeliveryChannel, NotificationQueue
from casetrack.notifications.infrastructure import (
    SQLAlchemyNotificationRepository,
    SQLAlchemyTemplateRepository,
)
from casetrack.sequences import SequenceGenerator
from casetrack.shared.infrastructure.clock import FrozenClock
from casetrack.sla.domain import SLAConfig, EscalationRuleConfig
from casetrack.sla.infrastructure import SLAConfigManager, ReferenceDataLoader


# Fiscal year 2025-26
NOW = datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database file with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'casetrack.db'}")
    enable_sqlite_savepoints(engine)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def sla_config() -> SLAConfig:
    """Default durations and templates plus two escalation rules."""
    return SLAConfig(
        escalation_rules=[
            EscalationRuleConfig(
                name="Breach to manager",
                hours_overdue=0,
                escalate_to_role="manager",
                escalate_after_hours=24,
            ),
            EscalationRuleConfig(
                name="High priority to director",
                priority_level="high",
                hours_overdue=8,
                escalate_to_role="director",
                escalate_after_hours=12,
            ),
        ]
    )


@pytest.fixture
async def reference_data(session_maker, sla_config, clock) -> Dict[str, int]:
    """Templates and rules committed before the test starts."""
    async with get_session_context(session_maker) as session:
        return await ReferenceDataLoader(session, clock=clock).sync(sla_config)


@pytest.fixture
async def session(session_maker, reference_data):
    """
    Session shared by the services under test.

    Left uncommitted; the database file is discarded after the test.
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def actor() -> Actor:
    return Actor(id="user-sales-1", roles=("sales",))


@pytest.fixture
def sequence_generator(session_maker, clock) -> SequenceGenerator:
    return SequenceGenerator(session_maker, clock=clock)


@pytest.fixture
def case_service(session, sequence_generator, sla_config, clock) -> CaseService:
    return CaseService(
        SQLAlchemyCaseRepository(session),
        SQLAlchemyHistoryRepository(session),
        SQLAlchemyDocumentRepository(session),
        sequence_generator,
        sla_config,
        clock=clock,
        session=session,
    )


@pytest.fixture
def queue(session, clock) -> NotificationQueue:
    return NotificationQueue(
        SQLAlchemyNotificationRepository(session),
        SQLAlchemyTemplateRepository(session),
        clock=clock,
        max_retries=3,
    )


@pytest.fixture
def open_case(case_service, actor):
    """Factory opening a case with sensible defaults."""

    async def _open(**overrides):
        fields = {
            "client_id": "client-001",
            "project_name": "Conveyor retrofit",
            "priority": "medium",
            "assigned_to": "user-eng-7",
        }
        fields.update(overrides)
        return await case_service.open_case(actor, **fields)

    return _open


# =============================================================================
# Delivery Channel Doubles
# =============================================================================

class RecordingChannel(IDeliveryChannel):
    """Accepts everything and remembers what it was given."""

    name = "recording"

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, recipient, template, context) -> bool:
        self.sent.append({"recipient": recipient, "template": template.name, "context": context})
        return True


class FailingChannel(IDeliveryChannel):
    """Every send fails with a retryable error."""

    name = "failing"

    async def send(self, recipient, template, context) -> bool:
        raise DeliveryException(self.name, "upstream unavailable")


class HangingChannel(IDeliveryChannel):
    """Never answers within any reasonable timeout."""

    name = "hanging"

    async def send(self, recipient, template, context) -> bool:
        await asyncio.sleep(30)
        return True


@pytest.fixture
def recording_channel() -> RecordingChannel:
    return RecordingChannel()


# =============================================================================
# API Fixtures
# =============================================================================

@pytest.fixture
def config_manager(tmp_path, sla_config) -> SLAConfigManager:
    """Config manager loaded from a YAML file written from sla_config."""
    path = tmp_path / "sla_config.yaml"
    path.write_text(yaml.safe_dump(sla_config.model_dump(mode="json"), sort_keys=False))
    manager = SLAConfigManager()
    manager.load(path)
    return manager


@pytest.fixture
async def client(session_maker, reference_data, config_manager, clock, recording_channel):
    """
    AsyncClient against a fresh app.

    ASGITransport does not run the lifespan, so app.state is wired here
    and request sessions come from the test database.
    """
    from casetrack.main import create_app
    from casetrack.scheduler import CaseScheduler

    app = create_app()
    app.state.clock = clock
    app.state.sla_config_manager = config_manager
    app.state.delivery_channel = recording_channel
    app.state.sequence_generator = SequenceGenerator(session_maker, clock=clock)
    app.state.scheduler = CaseScheduler(
        config_manager, recording_channel, session_maker=session_maker, clock=clock
    )

    async def _get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.state.scheduler.stop()

"""
casetrack - Main Application
=============================

Case lifecycle and SLA escalation service.

Modules:
- Cases: lifecycle state machine, status history, documents
- SLA: deadline sweep, warnings and breach flags
- Escalation: rule-driven and manual escalation
- Notifications: durable dispatch queue
- Sequences: document numbering
- Scheduler: periodic background tasks

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Value objects and business rules
- Infrastructure: Database, Slack, Grafana, YAML config
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from casetrack.config import settings
from casetrack.core import ApplicationException

# Infrastructure
from casetrack.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)

# Module services
from casetrack.notifications.infrastructure import build_delivery_channel
from casetrack.scheduler import CaseScheduler
from casetrack.sequences import SequenceGenerator
from casetrack.sla.infrastructure import SLAConfigManager

# Module Routers
from casetrack.cases.interfaces import cases_router
from casetrack.escalation.controllers import escalation_router, case_escalation_router
from casetrack.notifications.interfaces import notifications_router
from casetrack.scheduler.controllers import scheduler_router
from casetrack.sequences.controllers import router as sequences_router
from casetrack.sla.interfaces import sla_router

# Middleware and logging
from casetrack.shared.api import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler
)
from casetrack.shared.infrastructure import setup_logging, get_logger, SystemClock

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA configuration and watch it for changes
    4. Build delivery channel, sequence generator and scheduler
    5. Synchronise templates and escalation rules, arm the scheduler

    SHUTDOWN:
    1. Stop scheduler
    2. Stop config watcher
    3. Close delivery channel
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting casetrack", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()
    # Development convenience; production schemas are migrated
    await create_tables()

    logger.info("Loading SLA configuration")
    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)
    config_manager.start_watching()

    clock = SystemClock()
    channel = build_delivery_channel()
    scheduler = CaseScheduler(config_manager, channel, session_maker=get_session_maker(), clock=clock)
    await scheduler.sync_reference_data()

    app.state.clock = clock
    app.state.sla_config_manager = config_manager
    app.state.delivery_channel = channel
    app.state.sequence_generator = SequenceGenerator(get_session_maker(), clock=clock)
    app.state.scheduler = scheduler

    if settings.scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Scheduler disabled by configuration")

    logger.info("casetrack started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down casetrack")

    scheduler.stop()
    config_manager.stop_watching()
    await channel.close()
    await close_database()

    logger.info("casetrack shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routers."""
    app = FastAPI(
        title="casetrack API",
        description="""
    ## Case Lifecycle & SLA Escalation Engine

    Tracks business cases from enquiry to delivery, enforces per-state
    deadlines and escalates missed ones.

    ---

    ### Lifecycle

    `enquiry -> estimation -> quotation -> sales_order -> manufacturing -> delivery -> closed`

    A rejected quotation may go back to `estimation`. Every move and every
    status note is kept in an append-only history.

    ### SLA

    - **Warning**: deadline at most 4 hours away (repeated at most every 2 hours)
    - **Breach**: deadline reached; flagged once per state, notifies assignee,
      manager and (high priority) director
    - **Escalation**: rules from `sla_config.yaml`, with a per-rule cooldown

    ### Document numbers

    `VESPL/<CODE>/<FY>/<NNN>`, e.g. `VESPL/EQ/2526/001`, fiscal year April-March.

    ### Actor

    Write endpoints read the acting user from `X-Actor-Id` (and optional
    comma separated `X-Actor-Roles`).
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(cases_router)
    app.include_router(case_escalation_router)
    app.include_router(escalation_router)
    app.include_router(sla_router)
    app.include_router(notifications_router)
    app.include_router(sequences_router)
    app.include_router(scheduler_router)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/", root, methods=["GET"], tags=["Root"])
    return app


# === Health Check Endpoint ===

async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports SLA configuration version, scheduler state and delivery channel.
    """
    state = request.app.state
    config_manager = getattr(state, "sla_config_manager", None)
    scheduler = getattr(state, "scheduler", None)
    channel = getattr(state, "delivery_channel", None)

    checks = {
        "sla_config": f"loaded (v{config_manager.version})" if config_manager else "not_loaded",
        "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "delivery_channel": channel.name if channel else "not_configured",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "cases": "/cases",
            "sla": "/sla",
            "escalation": "/escalation",
            "notifications": "/notifications",
            "sequences": "/sequences",
            "scheduler": "/scheduler"
        }
    }


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "casetrack.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )

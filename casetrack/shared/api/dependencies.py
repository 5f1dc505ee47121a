"""
Shared API Dependencies
========================

FastAPI dependencies for objects wired once in the application lifespan
and stored on ``app.state``, plus the request actor.
"""

from typing import Optional

from fastapi import Header, Request

from casetrack.core import ValidationException
from casetrack.cases.domain.value_objects import Actor


async def get_actor(
    x_actor_id: Optional[str] = Header(default=None, description="Acting user id"),
    x_actor_roles: Optional[str] = Header(default=None, description="Comma separated roles"),
) -> Actor:
    """Actor identity supplied by the upstream auth layer."""
    if not x_actor_id or not x_actor_id.strip():
        raise ValidationException(
            "X-Actor-Id header is required for this operation",
            {"header": "X-Actor-Id"}
        )
    roles = tuple(r.strip() for r in (x_actor_roles or "").split(",") if r.strip())
    return Actor(id=x_actor_id.strip(), roles=roles)


def get_clock(request: Request):
    return request.app.state.clock


def get_sequence_generator(request: Request):
    return request.app.state.sequence_generator


def get_sla_config(request: Request):
    """Current SLA configuration (hot-reloaded)."""
    return request.app.state.sla_config_manager.config


def get_scheduler(request: Request):
    return request.app.state.scheduler

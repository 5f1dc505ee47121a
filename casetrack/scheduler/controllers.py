"""
Scheduler Controllers (API Routes)
===================================

Status of the periodic tasks and manual triggers.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from casetrack.shared.api.dependencies import get_scheduler

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


class TaskStatusResponse(BaseModel):
    interval_seconds: float
    running: bool
    last_run: Optional[str] = None
    last_duration_ms: Optional[int] = None
    last_error: Optional[str] = None
    run_count: int
    failure_count: int
    skipped_count: int


class SchedulerStatusResponse(BaseModel):
    running: bool = Field(..., description="Whether periodic ticks are armed")
    active_task_count: int
    last_run_timestamp: Optional[str] = None
    tasks: Dict[str, TaskStatusResponse]


class TaskRunResponse(TaskStatusResponse):
    task: str
    result: Any = None


@router.get(
    "/status",
    response_model=SchedulerStatusResponse,
    summary="Scheduler status"
)
async def scheduler_status(scheduler=Depends(get_scheduler)):
    return scheduler.status()


@router.post(
    "/tasks/{name}/run",
    response_model=TaskRunResponse,
    summary="Run a task now",
    description="""
    Trigger a scheduled task immediately.

    **Tasks**: `sla_sweep`, `notification_drain`, `metrics_rollup`, `retention_cleanup`

    Returns **409** when the task is already running. A task error is
    reported in `last_error`, not as an HTTP error.
    """,
    responses={
        404: {"description": "Unknown task"},
        409: {"description": "Task already running"}
    }
)
async def run_task(name: str, scheduler=Depends(get_scheduler)):
    return await scheduler.run_task(name)


# Export router for inclusion in main app
scheduler_router = router

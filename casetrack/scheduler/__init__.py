"""
Scheduler Module
=================

Non-overlapping periodic tasks: SLA sweep, notification drain, metrics
rollup and retention cleanup.
"""

from casetrack.scheduler.periodic import PeriodicTask
from casetrack.scheduler.service import CaseScheduler, TaskName, default_intervals

__all__ = ["PeriodicTask", "CaseScheduler", "TaskName", "default_intervals"]

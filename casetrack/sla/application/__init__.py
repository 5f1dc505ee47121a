"""
SLA Application Layer
======================

Use cases for SLA monitoring:
- SLAMonitor: periodic warning / breach sweep
- SLADashboardService: read-only overview
"""

from casetrack.sla.application.services import SLAMonitor, SLADashboardService, case_context
from casetrack.sla.application.dto import DashboardResponse, BreachedCaseSummary, SLAConfigResponse

__all__ = [
    "SLAMonitor",
    "SLADashboardService",
    "case_context",
    "DashboardResponse",
    "BreachedCaseSummary",
    "SLAConfigResponse",
]

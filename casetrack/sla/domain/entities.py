"""
SLA Domain Entities
====================

Results produced by SLA evaluation.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional


@dataclass
class CaseSLAView:
    """SLA position of one case at a point in time."""
    status: str
    deadline: Optional[datetime]
    hours_until_deadline: Optional[int]
    hours_overdue: int
    is_sla_breached: bool


@dataclass
class SweepReport:
    """
    Outcome of one SLA sweep.

    Counts are per case, except notifications_queued which counts rows.
    """
    evaluated: int = 0
    warned: int = 0
    breached: int = 0
    notifications_queued: int = 0
    failed: int = 0
    failed_cases: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

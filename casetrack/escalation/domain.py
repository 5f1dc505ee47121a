"""
Escalation Domain
==================

Rule matching and escalation attributes. Pure functions, no I/O.
"""

from datetime import datetime, timedelta
from typing import Any

from casetrack.config import Priority


class TriggeredBy(str):
    """Origin of an escalation."""
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class ImpactLevel(str):
    """Client impact recorded on an escalation."""
    HIGH = "high"
    MEDIUM = "medium"


ESCALATION_REASON_SLA_BREACH = "SLA Breach"


def rule_matches(rule: Any, case: Any, hours_overdue: int) -> bool:
    """
    A rule applies when its state and priority filters match (null is a
    wildcard) and the case is at least ``rule.hours_overdue`` hours late.
    """
    if not rule.is_active:
        return False
    if rule.state_name is not None and rule.state_name != case.current_state:
        return False
    if rule.priority_level is not None and rule.priority_level != case.priority:
        return False
    return hours_overdue >= (rule.hours_overdue or 0)


def cooldown_start(rule: Any, now: datetime) -> datetime:
    """Escalations of the same rule triggered at or after this instant block a new one."""
    return now - timedelta(hours=rule.escalate_after_hours)


def client_impact_for(priority: str) -> str:
    return ImpactLevel.HIGH if priority == Priority.HIGH else ImpactLevel.MEDIUM

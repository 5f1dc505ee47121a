"""
Escalation Module
==================

Automatic escalation of breached cases from a rule table, with a
per-(case, rule) cooldown, and manual escalation on request.
"""

from casetrack.escalation.domain import TriggeredBy, ImpactLevel, rule_matches
from casetrack.escalation.services import EscalationEngine, EscalationReport

__all__ = [
    "TriggeredBy",
    "ImpactLevel",
    "rule_matches",
    "EscalationEngine",
    "EscalationReport",
]

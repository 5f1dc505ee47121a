"""
SLA Domain Layer
=================

Pure Python domain logic for SLA monitoring.

Contains:
- SLACalculator: deadline arithmetic
- SLAConfig: YAML-backed configuration (templates, rules, state durations)
- Result entities: CaseSLAView, SweepReport
"""

from casetrack.sla.domain.value_objects import (
    SLAStatus,
    SLACalculator,
    SLAConfig,
    TemplateConfig,
    EscalationRuleConfig,
    DEFAULT_STATE_SLA_HOURS,
    default_templates,
    build_sla_view,
)
from casetrack.sla.domain.entities import CaseSLAView, SweepReport

__all__ = [
    "SLAStatus",
    "SLACalculator",
    "SLAConfig",
    "TemplateConfig",
    "EscalationRuleConfig",
    "DEFAULT_STATE_SLA_HOURS",
    "default_templates",
    "build_sla_view",
    "CaseSLAView",
    "SweepReport",
]

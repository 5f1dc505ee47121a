"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from casetrack.config import CaseState, TemplateName, TemplateType, CASE_STATE_ORDER
from casetrack.sla.domain.entities import CaseSLAView


# ========== Type Aliases for Literals ==========
CaseStateStr = Literal[
    "enquiry", "estimation", "quotation", "sales_order", "manufacturing", "delivery", "closed"
]
PriorityStr = Literal["high", "medium", "low"]
TemplateTypeStr = Literal["sla_warning", "sla_breach", "escalation", "general"]


class SLAStatus(str):
    """Where a case stands against its current-state deadline."""
    ON_TRACK = "on_track"
    WARNING = "warning"
    BREACHED = "breached"
    NO_DEADLINE = "no_deadline"


ONE_HOUR = timedelta(hours=1)


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Hour counts are whole numbers chosen so that comparing them with a
    whole-hour threshold gives the same answer as comparing exact
    durations: time left rounds up, time overdue rounds down.
    """

    @staticmethod
    def hours_until_deadline(deadline: datetime, now: datetime) -> int:
        """
        Whole hours left, rounded up. 0 or negative once the deadline passes.

        Example:
            3h01m left -> 4, exactly 4h left -> 4, 4h01m left -> 5
        """
        return math.ceil((deadline - now) / ONE_HOUR)

    @staticmethod
    def hours_overdue(deadline: datetime, now: datetime) -> int:
        """Whole hours past the deadline, rounded down; 0 if not past."""
        return max(0, math.floor((now - deadline) / ONE_HOUR))

    @staticmethod
    def is_past_deadline(deadline: Optional[datetime], now: datetime) -> bool:
        """The deadline instant itself counts as missed."""
        return deadline is not None and now >= deadline

    @staticmethod
    def is_in_warning_window(deadline: Optional[datetime], now: datetime, lookahead_hours: int) -> bool:
        if deadline is None:
            return False
        hours_left = SLACalculator.hours_until_deadline(deadline, now)
        return 0 < hours_left <= lookahead_hours

    @staticmethod
    def classify(
        deadline: Optional[datetime],
        now: datetime,
        is_breached: bool,
        lookahead_hours: int
    ) -> str:
        """SLA status used by the dashboard and the case detail view."""
        if deadline is None:
            return SLAStatus.NO_DEADLINE
        if is_breached or SLACalculator.is_past_deadline(deadline, now):
            return SLAStatus.BREACHED
        if SLACalculator.is_in_warning_window(deadline, now, lookahead_hours):
            return SLAStatus.WARNING
        return SLAStatus.ON_TRACK


# Hours allowed per lifecycle state
DEFAULT_STATE_SLA_HOURS: Dict[str, int] = {
    CaseState.ENQUIRY: 24,
    CaseState.ESTIMATION: 48,
    CaseState.QUOTATION: 48,
    CaseState.SALES_ORDER: 24,
    CaseState.MANUFACTURING: 168,
    CaseState.DELIVERY: 72,
}


class TemplateConfig(BaseModel):
    """A notification template as declared in the SLA configuration."""
    name: str = Field(..., min_length=1, description="Unique template name")
    template_type: TemplateTypeStr = Field(..., description="Template category")
    subject: str = Field(..., min_length=1, description="Subject with {placeholders}")
    body: str = Field(..., min_length=1, description="Body with {placeholders}")
    is_active: bool = Field(default=True)


class EscalationRuleConfig(BaseModel):
    """An escalation rule as declared in the SLA configuration."""
    name: str = Field(..., min_length=1, description="Unique rule name")
    state_name: Optional[CaseStateStr] = Field(None, description="Only cases in this state (any if null)")
    priority_level: Optional[PriorityStr] = Field(None, description="Only cases of this priority (any if null)")
    hours_overdue: Optional[int] = Field(None, ge=0, description="Minimum whole hours overdue (0 if null)")
    escalate_to_role: str = Field(..., min_length=1, description="Role that receives the escalation")
    escalate_after_hours: int = Field(default=24, ge=1, description="Cooldown before the rule may fire again")
    is_active: bool = Field(default=True)


def default_templates() -> List[TemplateConfig]:
    return [
        TemplateConfig(
            name=TemplateName.SLA_WARNING,
            template_type=TemplateType.SLA_WARNING,
            subject="SLA warning: {case_number} due in {hours_until_deadline}h",
            body=(
                "Case {case_number} ({project_name}) is in {current_state} and must move on "
                "within {hours_until_deadline} hour(s), by {deadline}. Priority: {priority}."
            ),
        ),
        TemplateConfig(
            name=TemplateName.SLA_BREACH,
            template_type=TemplateType.SLA_BREACH,
            subject="SLA breached: {case_number}",
            body=(
                "Case {case_number} ({project_name}) missed its {current_state} deadline "
                "of {deadline} and is {hours_overdue} hour(s) overdue. Priority: {priority}."
            ),
        ),
        TemplateConfig(
            name=TemplateName.ESCALATION,
            template_type=TemplateType.ESCALATION,
            subject="Escalation L{escalation_level}: {case_number}",
            body=(
                "Case {case_number} has been escalated: {escalation_reason}. "
                "It is {hours_overdue} hour(s) overdue in {current_state}. "
                "Escalated from: {escalated_from}."
            ),
        ),
    ]


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from YAML.

    Deadline for a state = time the state was entered + state_sla_hours[state]

    This is a value object - immutable and defined by its attributes.
    """
    state_sla_hours: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_STATE_SLA_HOURS),
        description="Hours allowed per lifecycle state"
    )
    warning_lookahead_hours: int = Field(
        default=4,
        ge=1,
        description="Warn when the deadline is at most this many hours away"
    )
    warning_dedup_hours: int = Field(
        default=2,
        ge=1,
        description="Do not repeat a warning for a case within this many hours"
    )
    templates: List[TemplateConfig] = Field(
        default_factory=default_templates,
        description="Notification templates"
    )
    escalation_rules: List[EscalationRuleConfig] = Field(
        default_factory=list,
        description="Automatic escalation rules"
    )

    @field_validator("state_sla_hours")
    @classmethod
    def validate_state_sla_hours(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Every open state needs a positive duration; missing ones use defaults."""
        for state, hours in v.items():
            if state not in CASE_STATE_ORDER or state == CaseState.CLOSED:
                raise ValueError(f"state_sla_hours has unknown or terminal state '{state}'")
            if hours < 1:
                raise ValueError(f"state_sla_hours['{state}'] must be at least 1")

        for state, hours in DEFAULT_STATE_SLA_HOURS.items():
            v.setdefault(state, hours)
        return v

    @field_validator("templates")
    @classmethod
    def validate_templates(cls, v: List[TemplateConfig]) -> List[TemplateConfig]:
        names = [t.name for t in v]
        if len(names) != len(set(names)):
            raise ValueError("template names must be unique")
        return v

    @field_validator("escalation_rules")
    @classmethod
    def validate_rules(cls, v: List[EscalationRuleConfig]) -> List[EscalationRuleConfig]:
        names = [r.name for r in v]
        if len(names) != len(set(names)):
            raise ValueError("escalation rule names must be unique")
        return v

    def hours_for(self, state: str) -> int:
        return self.state_sla_hours[state]

    def get_template(self, name: str) -> Optional[TemplateConfig]:
        for template in self.templates:
            if template.name == name:
                return template
        return None


def build_sla_view(
    deadline: Optional[datetime],
    now: datetime,
    is_breached: bool,
    lookahead_hours: int
) -> CaseSLAView:
    """CaseSLAView for one case."""
    return CaseSLAView(
        status=SLACalculator.classify(deadline, now, is_breached, lookahead_hours),
        deadline=deadline,
        hours_until_deadline=SLACalculator.hours_until_deadline(deadline, now) if deadline else None,
        hours_overdue=SLACalculator.hours_overdue(deadline, now) if deadline else 0,
        is_sla_breached=is_breached,
    )

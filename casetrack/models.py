"""
ORM model registry.

Importing this module registers every table on ``Base.metadata``.
"""

from casetrack.sequences.models import DocumentSequenceModel
from casetrack.cases.infrastructure.models import (
    CaseModel, CaseDocumentModel, CaseStateTransitionModel
)
from casetrack.notifications.infrastructure.models import (
    NotificationTemplateModel, NotificationQueueModel
)
from casetrack.escalation.models import EscalationRuleModel, CaseEscalationModel
from casetrack.metrics.models import DailySLAMetricsModel, DailyNotificationMetricsModel

__all__ = [
    "DocumentSequenceModel",
    "CaseModel",
    "CaseDocumentModel",
    "CaseStateTransitionModel",
    "NotificationTemplateModel",
    "NotificationQueueModel",
    "EscalationRuleModel",
    "CaseEscalationModel",
    "DailySLAMetricsModel",
    "DailyNotificationMetricsModel",
]

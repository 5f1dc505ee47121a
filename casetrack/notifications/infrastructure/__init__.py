"""
Notification Infrastructure Layer
==================================

ORM models, repositories and delivery channels.
"""

from casetrack.notifications.infrastructure.models import (
    NotificationTemplateModel,
    NotificationQueueModel,
)
from casetrack.notifications.infrastructure.repositories import (
    SQLAlchemyNotificationRepository,
    SQLAlchemyTemplateRepository,
)
from casetrack.notifications.infrastructure.external import (
    CircuitBreaker,
    SlackDeliveryChannel,
    LogDeliveryChannel,
    build_delivery_channel,
)

__all__ = [
    "NotificationTemplateModel",
    "NotificationQueueModel",
    "SQLAlchemyNotificationRepository",
    "SQLAlchemyTemplateRepository",
    "CircuitBreaker",
    "SlackDeliveryChannel",
    "LogDeliveryChannel",
    "build_delivery_channel",
]

"""
Notification Application Layer
===============================

Queue producer and consumer services, repository and channel interfaces.
"""

from casetrack.notifications.application.services import (
    IDeliveryChannel,
    INotificationRepository,
    ITemplateRepository,
    DrainReport,
    NotificationQueue,
    NotificationDispatcher,
)

__all__ = [
    "IDeliveryChannel",
    "INotificationRepository",
    "ITemplateRepository",
    "DrainReport",
    "NotificationQueue",
    "NotificationDispatcher",
]

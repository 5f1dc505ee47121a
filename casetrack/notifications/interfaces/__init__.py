"""
Notification Interfaces Layer
==============================

FastAPI routes for the notification queue.
"""

from casetrack.notifications.interfaces.controllers import notifications_router

__all__ = ["notifications_router"]

"""
Notification Domain Layer
==========================

Recipients and template rendering.
"""

from casetrack.notifications.domain.value_objects import Recipient, RenderedMessage, render

__all__ = ["Recipient", "RenderedMessage", "render"]

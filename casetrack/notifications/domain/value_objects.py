"""
Notification Domain
====================

Recipients and template rendering.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from casetrack.config import RecipientType
from casetrack.core import ValidationException


@dataclass(frozen=True)
class Recipient:
    """
    Who a notification goes to: exactly one of a user, a role or a location.
    """
    user_id: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None

    def __post_init__(self):
        provided = [v for v in (self.user_id, self.role, self.location) if v]
        if len(provided) != 1:
            raise ValidationException(
                "Exactly one of user_id, role or location must be given",
                {"user_id": self.user_id, "role": self.role, "location": self.location}
            )

    @classmethod
    def user(cls, user_id: str) -> "Recipient":
        return cls(user_id=user_id)

    @classmethod
    def for_role(cls, role: str) -> "Recipient":
        return cls(role=role)

    @classmethod
    def from_row(cls, row: Any) -> "Recipient":
        return cls(
            user_id=row.recipient_user_id,
            role=row.recipient_role,
            location=row.recipient_location,
        )

    @property
    def recipient_type(self) -> str:
        if self.user_id:
            return RecipientType.USER
        if self.role:
            return RecipientType.ROLE
        return RecipientType.LOCATION

    @property
    def value(self) -> str:
        return self.user_id or self.role or self.location

    def __str__(self) -> str:
        return f"{self.recipient_type}:{self.value}"


class _KeepMissing(dict):
    """format_map mapping that leaves unknown placeholders in place."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render(text: str, context: Dict[str, Any]) -> str:
    """
    Fill ``{placeholder}`` fields from context.

    Unknown placeholders are kept verbatim; a malformed template is
    returned unchanged rather than failing delivery.
    """
    try:
        return text.format_map(_KeepMissing(context))
    except (ValueError, IndexError, AttributeError):
        return text


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str

    @classmethod
    def from_template(cls, template: Any, context: Dict[str, Any]) -> "RenderedMessage":
        return cls(subject=render(template.subject, context), body=render(template.body, context))

"""
Core Exceptions
================

Error taxonomy shared by every bounded context.

Exceptions carry a human readable ``message`` and a ``details`` dict so the
API layer can render them consistently and the scheduler can log them with
full context.
"""

from typing import Optional, Any, List


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    status_code = 400


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Bad input shape, rejected before any write."""

    status_code = 422


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class CaseNotFoundException(ResourceNotFoundException):
    """Unknown case id."""

    def __init__(self, case_id: Any):
        super().__init__("Case", str(case_id), {"case_id": str(case_id)})


class InvalidTransitionException(DomainException):
    """A state change that the transition graph does not allow."""

    status_code = 409

    def __init__(
        self,
        from_state: Optional[str],
        to_state: str,
        allowed: Optional[List[str]] = None,
        message: Optional[str] = None
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = list(allowed or [])
        if message is None:
            message = (
                f"Invalid state transition from {from_state} to {to_state}. "
                f"Valid transitions from {from_state}: {', '.join(self.allowed) or 'none'}"
            )
        super().__init__(
            message,
            {"from_state": from_state, "to_state": to_state, "allowed": self.allowed}
        )


class CaseClosedException(InvalidTransitionException):
    """The case is terminal (closed, completed or cancelled)."""

    def __init__(self, case_number: str, current_state: str, status: str):
        self.case_number = case_number
        super().__init__(
            current_state,
            current_state,
            message=f"Case {case_number} is {status} in state {current_state} and cannot change"
        )
        self.details.update({"case_number": case_number, "status": status})


class ConflictException(ApplicationException):
    """Duplicate dedup key or a lost race on a unique resource."""

    status_code = 409


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class DeliveryException(ExternalServiceException):
    """Transient, retryable failure of a delivery channel."""

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        super().__init__(channel, message, details)


class InternalException(ApplicationException):
    """Anything that is not one of the categories above."""

"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from casetrack.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    CaseNotFoundException,
    InvalidTransitionException,
    CaseClosedException,
    ConflictException,
    ConfigurationException,
    ExternalServiceException,
    DeliveryException,
    InternalException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "CaseNotFoundException",
    "InvalidTransitionException",
    "CaseClosedException",
    "ConflictException",
    "ConfigurationException",
    "ExternalServiceException",
    "DeliveryException",
    "InternalException",
]

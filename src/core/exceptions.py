"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

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


class UnroutableDestinationException(ResourceNotFoundException):
    """Inbound message addressed to a number no organisation has configured."""

    def __init__(self, to_number: str):
        super().__init__("Destination", details={"to": to_number})
        self.message = "Destination not configured"
        self.args = (self.message,)


class ConflictException(ApplicationException):
    """Exception when a write collides with existing state."""


class GoneException(ApplicationException):
    """Exception when a resource existed but is no longer usable."""


class AuthenticationException(ApplicationException):
    """Exception when the caller is not identified."""


class PermissionDeniedException(ApplicationException):
    """Exception when the caller lacks the required role."""


class RateLimitExceededException(ApplicationException):
    """Exception when a caller sends too many requests."""

    def __init__(self, key: str, retry_after: int, details: Optional[dict] = None):
        self.key = key
        self.retry_after = retry_after
        super().__init__("Too many requests", details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class TelephonyException(ExternalServiceException):
    """Exception for Twilio API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Twilio", message, details)

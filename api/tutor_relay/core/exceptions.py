"""
Custom exception hierarchy for the Student Tutor Relay API.

These exceptions are raised at the HTTP boundary; the workflow itself uses the
domain exceptions in ``tutor_relay.models.question``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseAppException(HTTPException):
    """Base exception for all application errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__


# Authentication Exceptions


class InvalidSignatureError(BaseAppException):
    """Raised when a Slack request fails signature verification."""

    def __init__(self, detail: str = "Invalid request signature"):
        super().__init__(
            detail, status.HTTP_401_UNAUTHORIZED, error_code="INVALID_SIGNATURE"
        )


class AdminAuthenticationRequiredError(BaseAppException):
    """Raised when an admin route is called without an API key."""

    def __init__(self, detail: str = "Admin authentication required"):
        super().__init__(
            detail, status.HTTP_401_UNAUTHORIZED, error_code="AUTHENTICATION_REQUIRED"
        )


class InvalidAPIKeyError(BaseAppException):
    """Raised when the provided admin API key does not match."""

    def __init__(self, detail: str = "Invalid admin credentials"):
        super().__init__(detail, status.HTTP_403_FORBIDDEN, error_code="INVALID_API_KEY")


class AdminAccessNotConfiguredError(BaseAppException):
    """Raised when admin routes are called but ADMIN_API_KEY is unset."""

    def __init__(self, detail: str = "Admin access not configured"):
        super().__init__(
            detail,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="ADMIN_NOT_CONFIGURED",
        )


# Payload Exceptions


class InvalidInteractionPayloadError(BaseAppException):
    """Raised when an interaction request body cannot be decoded."""

    def __init__(self, detail: str = "Interaction payload could not be parsed"):
        super().__init__(
            detail, status.HTTP_400_BAD_REQUEST, error_code="INVALID_PAYLOAD"
        )


# Service Exceptions


class ServiceUnavailableError(BaseAppException):
    """Raised when a request arrives before the workflow services are ready."""

    def __init__(self, service: str):
        super().__init__(
            f"{service} is not initialized",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="SERVICE_UNAVAILABLE",
        )


class ArchiveUnavailableError(BaseAppException):
    """Raised when the training-data archive cannot be read."""

    def __init__(self, detail: str = "Archive could not be read"):
        super().__init__(
            detail, status.HTTP_502_BAD_GATEWAY, error_code="ARCHIVE_UNAVAILABLE"
        )

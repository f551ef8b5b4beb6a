"""
Error handlers for the Student Tutor Relay API.

Every error is returned in one JSON envelope:

    {"error": {"code": ..., "message": ..., "status_code": ...}}

A Slack callback rejected here never reaches the workflow, so failed
requests under ``/slack`` are also recorded in the dead-letter log.
Unauthenticated requests are the exception: they are not Slack's.
"""

import logging
from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from tutor_relay.core.exceptions import BaseAppException
from tutor_relay.services.tutoring.dead_letter import DeadLetterLog, DeadLetterReason
from tutor_relay.utils.logging import redact_secrets

logger = logging.getLogger(__name__)

SLACK_CALLBACK_PREFIX = "/slack"


def error_response(status_code: int, code: str, message: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "status_code": status_code,
            }
        },
    )


def _dead_letter_for(request: Request) -> Optional[DeadLetterLog]:
    if not request.url.path.startswith(SLACK_CALLBACK_PREFIX):
        return None
    return getattr(request.app.state, "dead_letter", None)


async def base_exception_handler(
    request: Request, exc: BaseAppException
) -> JSONResponse:
    """Handle application exceptions.

    Args:
        request: The incoming request that caused the exception
        exc: The application exception that was raised

    Returns:
        JSON response in the error envelope
    """
    message = redact_secrets(str(exc.detail))
    logger.error(
        f"Application error: {exc.error_code} - {message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    dead_letter = _dead_letter_for(request)
    if dead_letter is not None and exc.status_code != status.HTTP_401_UNAUTHORIZED:
        dead_letter.record(
            DeadLetterReason.CALLBACK_REJECTED,
            path=request.url.path,
            error_code=exc.error_code,
            status_code=exc.status_code,
            error=message,
        )

    return error_response(exc.status_code, exc.error_code, exc.detail)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors without leaking internal details."""
    message = redact_secrets(str(exc))
    logger.error(
        f"Unhandled exception: {message}",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
    )

    dead_letter = _dead_letter_for(request)
    if dead_letter is not None:
        dead_letter.record(
            DeadLetterReason.CALLBACK_FAILED,
            path=request.url.path,
            exception_type=type(exc).__name__,
            error=message,
        )

    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred",
    )

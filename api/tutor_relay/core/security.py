"""
Request authentication for the Student Tutor Relay API.

Slack requests are authenticated with Slack's request signing; admin routes
with a shared API key.
"""

import logging
import secrets

from fastapi import Depends, Request
from slack_sdk.signature import SignatureVerifier

from tutor_relay.core.config import Settings, get_settings
from tutor_relay.core.exceptions import (
    AdminAccessNotConfiguredError,
    AdminAuthenticationRequiredError,
    InvalidAPIKeyError,
    InvalidSignatureError,
)

# Minimum length for secure API keys
MIN_API_KEY_LENGTH = 24

logger = logging.getLogger(__name__)


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def verify_slack_signature(request: Request, body: bytes, settings: Settings) -> None:
    """Check the Slack signing headers against the raw request body.

    Verification is skipped when SLACK_SIGNING_SECRET is not configured.

    Raises:
        InvalidSignatureError: If the signature or timestamp is invalid
    """
    if not settings.SLACK_SIGNING_SECRET:
        return

    verifier = SignatureVerifier(signing_secret=settings.SLACK_SIGNING_SECRET)
    timestamp = request.headers.get("X-Slack-Request-Timestamp", "")
    signature = request.headers.get("X-Slack-Signature", "")
    if not verifier.is_valid(body=body, timestamp=timestamp, signature=signature):
        logger.warning(f"Rejected Slack request from {_client_host(request)}")
        raise InvalidSignatureError()


def verify_admin_access(
    request: Request, settings: Settings = Depends(get_settings)
) -> bool:
    """Verify that the request carries the admin API key.

    The key is read from the ``X-API-KEY`` header or a Bearer token.

    Raises:
        AdminAccessNotConfiguredError: ADMIN_API_KEY is not set
        AdminAuthenticationRequiredError: No key was provided
        InvalidAPIKeyError: The key does not match
    """
    admin_api_key = settings.ADMIN_API_KEY
    if not admin_api_key:
        logger.warning("Admin access attempted but ADMIN_API_KEY is not configured")
        raise AdminAccessNotConfiguredError()

    authorization = request.headers.get("Authorization", "")
    provided_key = request.headers.get("X-API-KEY") or (
        authorization[len("Bearer ") :] if authorization.startswith("Bearer ") else None
    )
    if not provided_key:
        logger.warning(f"Missing admin authentication from {_client_host(request)}")
        raise AdminAuthenticationRequiredError()

    if not secrets.compare_digest(provided_key, admin_api_key):
        logger.warning(f"Invalid admin credentials from {_client_host(request)}")
        raise InvalidAPIKeyError()

    if len(admin_api_key) < MIN_API_KEY_LENGTH:
        logger.warning(
            f"ADMIN_API_KEY is configured with insecure length: {len(admin_api_key)} (min: {MIN_API_KEY_LENGTH})"
        )
    return True

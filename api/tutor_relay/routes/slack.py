"""
Slack callback routes.

Slack expects an answer within three seconds, so interactions are
acknowledged immediately and processed as background tasks.
"""

import json
import logging
from typing import Any, Dict
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from tutor_relay.core.config import Settings, get_settings
from tutor_relay.core.exceptions import (
    InvalidInteractionPayloadError,
    ServiceUnavailableError,
)
from tutor_relay.core.security import verify_slack_signature
from tutor_relay.services.tutoring.orchestrator import TutorOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slack", tags=["Slack"])


def get_orchestrator(request: Request) -> TutorOrchestrator:
    """Get the orchestrator built during application startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise ServiceUnavailableError("Tutor orchestrator")
    return orchestrator


def _load_json_object(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise InvalidInteractionPayloadError("Payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise InvalidInteractionPayloadError("Payload must be a JSON object")
    return data


def decode_interaction_body(body: bytes, content_type: str) -> Dict[str, Any]:
    """Decode an interaction request.

    Slack sends ``application/x-www-form-urlencoded`` with the JSON in a
    ``payload`` field; a raw JSON body is accepted as well.

    Raises:
        InvalidInteractionPayloadError: If no JSON object can be extracted
    """
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidInteractionPayloadError("Body is not UTF-8") from e

    if "application/x-www-form-urlencoded" in content_type:
        payload = parse_qs(text).get("payload")
        if not payload:
            raise InvalidInteractionPayloadError("Missing payload field")
        return _load_json_object(payload[0])
    return _load_json_object(text)


@router.post("/interactions")
async def slack_interactions(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
):
    """Receive button clicks and modal submissions from the review channel."""
    body = await request.body()
    verify_slack_signature(request, body, settings)
    payload = decode_interaction_body(body, request.headers.get("content-type", ""))
    orchestrator = get_orchestrator(request)

    logger.info(
        "Slack interaction received",
        extra={"interaction_type": payload.get("type")},
    )
    background_tasks.add_task(orchestrator.handle_review_interaction, payload)
    return Response(status_code=200)


@router.post("/events")
async def slack_events(request: Request, settings: Settings = Depends(get_settings)):
    """Answer the Events API URL verification handshake; ack everything else."""
    body = await request.body()
    verify_slack_signature(request, body, settings)
    payload = decode_interaction_body(body, "application/json")

    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge", "")}

    logger.debug(f"Ignoring Slack event of type {payload.get('type')}")
    return Response(status_code=200)

"""Typed views of Slack interaction payloads.

Slack posts two payload shapes to the interactions endpoint that matter here:
``block_actions`` (a button on a review card was clicked) and
``view_submission`` (the edit modal was submitted). Fields the workflow does
not read are ignored.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ValidationError

from tutor_relay.channels.review.blocks import (
    EDIT_INPUT_ACTION_ID,
    EDIT_INPUT_BLOCK_ID,
    decode_review_context,
)
from tutor_relay.models.question import PendingReviewContext, ReviewMessageRef


class SlackUser(BaseModel):
    id: str
    username: Optional[str] = None
    name: Optional[str] = None


class SlackChannel(BaseModel):
    id: str
    name: Optional[str] = None


class SlackMessage(BaseModel):
    ts: str


class BlockAction(BaseModel):
    action_id: str
    value: Optional[str] = None
    block_id: Optional[str] = None


class BlockActionsPayload(BaseModel):
    type: Literal["block_actions"]
    user: SlackUser
    actions: List[BlockAction]
    trigger_id: Optional[str] = None
    channel: Optional[SlackChannel] = None
    message: Optional[SlackMessage] = None

    @property
    def action(self) -> Optional[BlockAction]:
        return self.actions[0] if self.actions else None

    @property
    def message_ref(self) -> Optional[ReviewMessageRef]:
        if self.channel is None or self.message is None:
            return None
        return ReviewMessageRef(channel_id=self.channel.id, ts=self.message.ts)


class SubmittedView(BaseModel):
    callback_id: Optional[str] = None
    private_metadata: str = ""
    state: Dict[str, Any] = {}


class ViewSubmissionPayload(BaseModel):
    type: Literal["view_submission"]
    user: SlackUser
    view: SubmittedView

    def review_context(self) -> PendingReviewContext:
        """Decode the context the edit modal was opened with.

        Raises:
            ValueError: If the private metadata is missing or malformed
        """
        try:
            return decode_review_context(self.view.private_metadata)
        except ValidationError as e:
            raise ValueError(f"Edit form metadata is incomplete: {e}") from e

    def submitted_text(self) -> Optional[str]:
        """Text typed into the edit modal, or None when absent."""
        values = self.view.state.get("values", {})
        field = values.get(EDIT_INPUT_BLOCK_ID, {}).get(EDIT_INPUT_ACTION_ID, {})
        value = field.get("value") if isinstance(field, dict) else None
        return value if isinstance(value, str) else None


InteractionPayload = Union[BlockActionsPayload, ViewSubmissionPayload]


def parse_interaction_payload(payload: Dict[str, Any]) -> Optional[InteractionPayload]:
    """Parse a raw interaction payload.

    Returns:
        The typed payload, or None for shapes the workflow does not handle

    Raises:
        pydantic.ValidationError: If a known shape is missing required fields
    """
    payload_type = payload.get("type")
    if payload_type == "block_actions":
        return BlockActionsPayload.model_validate(payload)
    if payload_type == "view_submission":
        return ViewSubmissionPayload.model_validate(payload)
    return None

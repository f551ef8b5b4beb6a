"""Slack review channel.

Posts review cards for teachers, rewrites them in place once approved and
opens the edit modal. The adapter keeps no workflow state: everything needed
to resume after a click travels inside the Slack payloads themselves.
"""

import logging
from typing import Any, Optional

from slack_sdk.web.async_client import AsyncWebClient

from tutor_relay.channels.review.blocks import (
    build_approved_card_blocks,
    build_edit_modal_view,
    build_review_card_blocks,
    build_review_card_fallback_text,
)
from tutor_relay.core.config import Settings
from tutor_relay.models.question import (
    PendingReviewContext,
    ReviewChannelError,
    ReviewMessageRef,
)

logger = logging.getLogger(__name__)


class SlackReviewChannel:
    """Review-channel adapter backed by the Slack Web API.

    Args:
        settings: Settings providing SLACK_BOT_TOKEN and SLACK_CHANNEL_ID
        client: Optional pre-built AsyncWebClient
    """

    def __init__(self, settings: Settings, client: Optional[Any] = None) -> None:
        self.channel_id = settings.SLACK_CHANNEL_ID
        self.client = client or AsyncWebClient(token=settings.SLACK_BOT_TOKEN)

    async def post_review_card(
        self,
        question: str,
        answer: str,
        record_id: str,
        requester_name: str,
        from_image: bool = False,
    ) -> ReviewMessageRef:
        """Post a question/answer pair with Approve and Edit buttons.

        Returns:
            Reference to the posted message for later in-place updates

        Raises:
            ReviewChannelError: If Slack rejects the message
        """
        try:
            response = await self.client.chat_postMessage(
                channel=self.channel_id,
                blocks=build_review_card_blocks(
                    question=question,
                    answer=answer,
                    record_id=str(record_id),
                    requester_name=requester_name,
                    from_image=from_image,
                ),
                text=build_review_card_fallback_text(requester_name, question),
            )
        except Exception as e:
            logger.error(f"Error sending message to Slack: {e}")
            raise ReviewChannelError(f"Failed to send message to Slack: {e}") from e

        return ReviewMessageRef(
            channel_id=str(response.get("channel") or self.channel_id),
            ts=str(response.get("ts") or ""),
        )

    async def update_review_card(
        self, message_ref: ReviewMessageRef, final_answer: str
    ) -> None:
        """Replace the card with the final answer and an approval marker.

        Raises:
            ReviewChannelError: If Slack rejects the update
        """
        try:
            await self.client.chat_update(
                channel=message_ref.channel_id or self.channel_id,
                ts=message_ref.ts,
                text=final_answer,
                blocks=build_approved_card_blocks(final_answer),
            )
        except Exception as e:
            logger.error(f"Error updating Slack message: {e}")
            raise ReviewChannelError(f"Failed to update Slack message: {e}") from e

    async def open_edit_form(
        self,
        trigger_id: str,
        record_id: str,
        channel_id: str,
        message_ts: str,
        question: str,
        current_answer: str,
    ) -> None:
        """Open the edit modal pre-filled with the current answer.

        Raises:
            ReviewChannelError: If Slack refuses to open the modal
        """
        context = PendingReviewContext(
            record_id=str(record_id), channel_id=channel_id, message_ts=message_ts
        )
        try:
            await self.client.views_open(
                trigger_id=trigger_id,
                view=build_edit_modal_view(context, question, current_answer),
            )
        except Exception as e:
            logger.error(f"Error opening edit modal: {e}")
            raise ReviewChannelError(f"Failed to open edit modal: {e}") from e

"""Slack Block Kit payloads for the review card and the edit modal."""

import json
from typing import Any, Dict, List

from tutor_relay.models.question import PendingReviewContext, ReviewAction

APPROVAL_BLOCK_ID = "approval_buttons"
EDIT_MODAL_CALLBACK_ID = "edit_response_modal"
EDIT_INPUT_BLOCK_ID = "edited_response"
EDIT_INPUT_ACTION_ID = "response_text"
APPROVED_MARKER = ":white_check_mark: Approved and sent to student"

# Slack limit for section text and plain_text_input values
SLACK_TEXT_LIMIT = 3000


def _truncate(text: str, limit: int = SLACK_TEXT_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return f"{text[: limit - 3]}..."


def _chunks(text: str, limit: int = SLACK_TEXT_LIMIT) -> List[str]:
    return [text[i : i + limit] for i in range(0, len(text), limit)] or [""]


def _bold_rich_text(text: str) -> Dict[str, Any]:
    return {
        "type": "rich_text",
        "elements": [
            {
                "type": "rich_text_section",
                "elements": [{"type": "text", "text": text, "style": {"bold": True}}],
            }
        ],
    }


def _button(label: str, action: ReviewAction, record_id: str, style: str) -> Dict[str, Any]:
    return {
        "type": "button",
        "text": {"type": "plain_text", "emoji": True, "text": label},
        "style": style,
        "value": record_id,
        "action_id": action.value,
    }


def build_review_card_blocks(
    question: str,
    answer: str,
    record_id: str,
    requester_name: str,
    from_image: bool,
) -> List[Dict[str, Any]]:
    """Blocks for a pending review: source context, question, answer, actions."""
    source = "Image" if from_image else "Text"
    return [
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"*From:* {requester_name} | *Source:* {source}",
                }
            ],
        },
        _bold_rich_text(question),
        {"type": "divider"},
        _bold_rich_text(answer),
        {
            "type": "actions",
            "block_id": APPROVAL_BLOCK_ID,
            "elements": [
                _button("Approve", ReviewAction.APPROVE, record_id, "primary"),
                _button("Edit", ReviewAction.EDIT, record_id, "danger"),
            ],
        },
    ]


def build_review_card_fallback_text(requester_name: str, question: str) -> str:
    return f"New question from {requester_name}: {question[:50]}..."


def build_approved_card_blocks(final_answer: str) -> List[Dict[str, Any]]:
    """Blocks that replace a review card once the answer went out.

    Long answers are split over several sections so none exceeds the limit.
    """
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": "*Approved Answer:*"}},
        *(
            {"type": "section", "text": {"type": "mrkdwn", "text": chunk}}
            for chunk in _chunks(final_answer)
        ),
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": APPROVED_MARKER}],
        },
    ]


def encode_review_context(context: PendingReviewContext) -> str:
    """Serialize the pending-review context for a modal's private metadata."""
    return json.dumps(context.model_dump(by_alias=True))


def decode_review_context(private_metadata: str) -> PendingReviewContext:
    """Inverse of ``encode_review_context``.

    Raises:
        ValueError: If the metadata is not the JSON this module wrote
    """
    try:
        data = json.loads(private_metadata)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError("Edit form metadata is not valid JSON") from e
    if not isinstance(data, dict):
        raise ValueError("Edit form metadata must be a JSON object")
    return PendingReviewContext.model_validate(data)


def build_edit_modal_view(
    context: PendingReviewContext, question: str, current_answer: str
) -> Dict[str, Any]:
    """Modal pre-filled with the current answer, carrying the review context.

    Slack caps the input at SLACK_TEXT_LIMIT characters, so a longer draft
    is shown truncated.
    """
    return {
        "type": "modal",
        "callback_id": EDIT_MODAL_CALLBACK_ID,
        "title": {"type": "plain_text", "text": "Edit Response"},
        "submit": {"type": "plain_text", "text": "Submit"},
        "blocks": [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": _truncate(f"*Original Question:*\n{question}"),
                },
            },
            {
                "type": "input",
                "block_id": EDIT_INPUT_BLOCK_ID,
                "element": {
                    "type": "plain_text_input",
                    "action_id": EDIT_INPUT_ACTION_ID,
                    "multiline": True,
                    "initial_value": _truncate(current_answer),
                    "max_length": SLACK_TEXT_LIMIT,
                },
                "label": {"type": "plain_text", "text": "Edit Response"},
            },
        ],
        "private_metadata": encode_review_context(context),
    }

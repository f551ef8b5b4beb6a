"""Tests for TutorOrchestrator: inbound questions, reviewer callbacks, approval."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tutor_relay.channels.review.slack_channel import SlackReviewChannel
from tutor_relay.models.question import (
    ArchivalError,
    AttachmentDownloadError,
    InboundMessage,
    MessagingDeliveryError,
    Platform,
    QuestionRecordCreate,
    ReviewChannelError,
    ReviewMessageRef,
)
from tutor_relay.services.answering.answer_generator import AnswerGenerator
from tutor_relay.services.answering.fallback_answers import GENERIC_FALLBACK
from tutor_relay.services.answering.image_text_extractor import MockImageTextExtractor
from tutor_relay.services.tutoring.orchestrator import (
    EXTRACTION_UNAVAILABLE,
    GENERIC_ERROR_REPLY,
    IMAGE_ACK_REPLY,
    IMAGE_ERROR_REPLY,
    TEXT_ACK_REPLY,
    TEXT_ANSWER_UNAVAILABLE,
    TEXT_ERROR_REPLY,
    UNSUPPORTED_MESSAGE_REPLY,
    TutorOrchestrator,
)

CARD_REF = ReviewMessageRef(channel_id="C0REVIEW", ts="1700000000.000100")

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _make_message(**overrides) -> InboundMessage:
    defaults = dict(
        platform=Platform.TELEGRAM,
        message_id=7,
        chat_id=42,
        user_id=42,
        first_name="Ana",
        username="ana_s",
        text="What is 2+2?",
    )
    defaults.update(overrides)
    return InboundMessage(**defaults)


def _approve_click(record_id, user_id="U1"):
    return {
        "type": "block_actions",
        "user": {"id": user_id},
        "trigger_id": "trigger-1",
        "channel": {"id": CARD_REF.channel_id},
        "message": {"ts": CARD_REF.ts},
        "actions": [{"action_id": "approve_button", "value": record_id}],
    }


def _edit_click(record_id, user_id="U1"):
    payload = _approve_click(record_id, user_id)
    payload["actions"] = [{"action_id": "edited_button", "value": record_id}]
    return payload


def _edit_submission(record_id, text, channel_id="C1", message_ts="T1", user_id="U2"):
    return {
        "type": "view_submission",
        "user": {"id": user_id},
        "view": {
            "callback_id": "edit_response_modal",
            "private_metadata": json.dumps(
                {"data_key": record_id, "channel_id": channel_id, "message_ts": message_ts}
            ),
            "state": {
                "values": {"edited_response": {"response_text": {"value": text}}}
            },
        },
    }


def _dead_letter_reasons(dead_letter):
    if not dead_letter.file_path.exists():
        return []
    return [
        json.loads(line)["reason"]
        for line in dead_letter.file_path.read_text().splitlines()
    ]


@pytest.fixture
def orchestrator(
    repository,
    mock_answer_generator,
    mock_image_extractor,
    mock_review_channel,
    mock_messaging_channel,
    mock_archive,
    dead_letter,
    test_settings,
):
    return TutorOrchestrator(
        repository=repository,
        answer_generator=mock_answer_generator,
        image_extractor=mock_image_extractor,
        review_channel=mock_review_channel,
        messaging_channel=mock_messaging_channel,
        archive=mock_archive,
        dead_letter=dead_letter,
        settings=test_settings,
    )


async def _pending_record(repository, **overrides):
    data = dict(
        requester_id="42",
        requester_name="Ana",
        question="Solve x^2 = 9",
        answer="x = 3 or x = -3",
    )
    data.update(overrides)
    return await repository.create(QuestionRecordCreate(**data))


# ---------------------------------------------------------------------------
# Inbound dispatch
# ---------------------------------------------------------------------------


class TestInboundDispatch:
    @pytest.mark.asyncio
    async def test_unsupported_message_gets_fixed_reply(
        self, orchestrator, mock_messaging_channel, mock_answer_generator, repository
    ):
        await orchestrator.handle_inbound_message(_make_message(text=None))

        mock_messaging_channel.send.assert_awaited_once_with(
            "42", UNSUPPORTED_MESSAGE_REPLY
        )
        mock_answer_generator.generate_answer.assert_not_awaited()
        assert await repository.get_profile(Platform.TELEGRAM, "42") is None

    @pytest.mark.asyncio
    async def test_question_updates_user_profile(self, orchestrator, repository):
        await orchestrator.handle_inbound_message(_make_message())
        await orchestrator.handle_inbound_message(_make_message(text="And 3+3?"))

        profile = await repository.get_profile(Platform.TELEGRAM, "42")
        assert profile.questions_count == 2
        assert profile.username == "ana_s"

    @pytest.mark.asyncio
    async def test_profile_failure_does_not_block_question(
        self, orchestrator, repository, mock_review_channel
    ):
        repository.record_interaction = AsyncMock(side_effect=RuntimeError("locked"))

        await orchestrator.handle_inbound_message(_make_message())

        mock_review_channel.post_review_card.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_failure_sends_generic_error(
        self, orchestrator, mock_messaging_channel
    ):
        # ack and the text error reply both fail, the outer handler answers
        mock_messaging_channel.send.side_effect = [
            MessagingDeliveryError("ack failed"),
            MessagingDeliveryError("error reply failed"),
            None,
        ]

        await orchestrator.handle_inbound_message(_make_message())

        sent = [c.args[1] for c in mock_messaging_channel.send.await_args_list]
        assert sent == [TEXT_ACK_REPLY, TEXT_ERROR_REPLY, GENERIC_ERROR_REPLY]

    @pytest.mark.asyncio
    async def test_failed_generic_reply_is_only_logged(
        self, orchestrator, mock_messaging_channel
    ):
        mock_messaging_channel.send.side_effect = MessagingDeliveryError("blocked")

        await orchestrator.handle_inbound_message(_make_message())

        assert mock_messaging_channel.send.await_count == 3


# ---------------------------------------------------------------------------
# Text questions
# ---------------------------------------------------------------------------


class TestTextQuestion:
    @pytest.mark.asyncio
    async def test_creates_record_posts_card_and_acknowledges(
        self, orchestrator, repository, mock_review_channel, mock_messaging_channel
    ):
        await orchestrator.handle_inbound_message(_make_message())

        mock_messaging_channel.send_typing.assert_awaited_once_with("42")
        kwargs = mock_review_channel.post_review_card.call_args.kwargs
        assert kwargs["question"] == "What is 2+2?"
        assert kwargs["answer"] == "x = 4"
        assert kwargs["requester_name"] == "Ana"
        assert kwargs["from_image"] is False

        record = await repository.get_by_id(kwargs["record_id"])
        assert record.requester_id == "42"
        assert record.is_approved is False
        mock_messaging_channel.send.assert_awaited_once_with("42", TEXT_ACK_REPLY)

    @pytest.mark.asyncio
    async def test_store_failure_uses_temporary_id(
        self, orchestrator, repository, mock_review_channel, mock_messaging_channel
    ):
        repository.create = AsyncMock(side_effect=RuntimeError("disk full"))

        await orchestrator.handle_inbound_message(_make_message())

        record_id = mock_review_channel.post_review_card.call_args.kwargs["record_id"]
        assert record_id.startswith("temp-")
        assert record_id[len("temp-") :].isdigit()
        mock_messaging_channel.send.assert_awaited_once_with("42", TEXT_ACK_REPLY)

    @pytest.mark.asyncio
    async def test_review_card_failure_still_acknowledges(
        self, orchestrator, mock_review_channel, mock_messaging_channel, dead_letter
    ):
        mock_review_channel.post_review_card.side_effect = ReviewChannelError("down")

        await orchestrator.handle_inbound_message(_make_message())

        mock_messaging_channel.send.assert_awaited_once_with("42", TEXT_ACK_REPLY)
        assert _dead_letter_reasons(dead_letter) == ["review_card_failed"]

    @pytest.mark.asyncio
    async def test_generator_exception_uses_technical_issue_answer(
        self, orchestrator, mock_answer_generator, mock_review_channel
    ):
        mock_answer_generator.generate_answer.side_effect = RuntimeError("boom")

        await orchestrator.handle_inbound_message(_make_message())

        kwargs = mock_review_channel.post_review_card.call_args.kwargs
        assert kwargs["answer"] == TEXT_ANSWER_UNAVAILABLE


# ---------------------------------------------------------------------------
# Photo questions
# ---------------------------------------------------------------------------


class TestPhotoQuestion:
    @pytest.mark.asyncio
    async def test_photo_flow_and_cleanup(
        self,
        orchestrator,
        repository,
        tmp_path,
        mock_messaging_channel,
        mock_image_extractor,
        mock_review_channel,
    ):
        downloaded = tmp_path / "1700000000000.jpg"
        downloaded.write_bytes(b"img")
        mock_messaging_channel.download_attachment.return_value = str(downloaded)

        await orchestrator.handle_inbound_message(
            _make_message(text=None, photo_file_id="file-1")
        )

        mock_messaging_channel.resolve_attachment_url.assert_awaited_once_with("file-1")
        mock_image_extractor.extract_text.assert_awaited_once_with(str(downloaded))
        kwargs = mock_review_channel.post_review_card.call_args.kwargs
        assert kwargs["from_image"] is True
        assert kwargs["question"] == "Solve the following equation: 2x + 5 = 13"

        record = await repository.get_by_id(kwargs["record_id"])
        assert record.is_from_image is True
        assert record.image_url == "https://files.test/photos/file_1.jpg"
        mock_messaging_channel.send.assert_awaited_once_with("42", IMAGE_ACK_REPLY)
        assert not downloaded.exists()

    @pytest.mark.asyncio
    async def test_stored_image_url_has_no_bot_token(
        self, orchestrator, repository, tmp_path, mock_messaging_channel, mock_review_channel
    ):
        downloaded = tmp_path / "1700000000001.jpg"
        downloaded.write_bytes(b"img")
        mock_messaging_channel.resolve_attachment_url.return_value = (
            "https://api.telegram.org/file/bot123456789:AAH-secret_token/photos/a.jpg"
        )
        mock_messaging_channel.download_attachment.return_value = str(downloaded)

        await orchestrator.handle_inbound_message(
            _make_message(text=None, photo_file_id="file-1")
        )

        record_id = mock_review_channel.post_review_card.call_args.kwargs["record_id"]
        record = await repository.get_by_id(record_id)
        assert "AAH-secret_token" not in record.image_url
        assert record.image_url.endswith("/bot[TELEGRAM_TOKEN]/photos/a.jpg")
        mock_messaging_channel.download_attachment.assert_awaited_once_with(
            "https://api.telegram.org/file/bot123456789:AAH-secret_token/photos/a.jpg"
        )

    @pytest.mark.asyncio
    async def test_download_failure_aborts_with_image_error(
        self, orchestrator, mock_messaging_channel, mock_review_channel
    ):
        mock_messaging_channel.download_attachment.side_effect = (
            AttachmentDownloadError("404")
        )

        await orchestrator.handle_inbound_message(
            _make_message(text=None, photo_file_id="file-1")
        )

        mock_review_channel.post_review_card.assert_not_awaited()
        mock_messaging_channel.send.assert_awaited_once_with("42", IMAGE_ERROR_REPLY)

    @pytest.mark.asyncio
    async def test_extractor_exception_uses_placeholder_question(
        self, orchestrator, tmp_path, mock_messaging_channel, mock_image_extractor, mock_review_channel
    ):
        downloaded = tmp_path / "a.jpg"
        downloaded.write_bytes(b"img")
        mock_messaging_channel.download_attachment.return_value = str(downloaded)
        mock_image_extractor.extract_text.side_effect = RuntimeError("vision down")

        await orchestrator.handle_inbound_message(
            _make_message(text=None, photo_file_id="file-1")
        )

        kwargs = mock_review_channel.post_review_card.call_args.kwargs
        assert kwargs["question"] == EXTRACTION_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_png_photo_flows_like_text_question(
        self,
        repository,
        mock_answer_generator,
        mock_review_channel,
        mock_messaging_channel,
        mock_archive,
        dead_letter,
        test_settings,
        tmp_path,
    ):
        """Scenario: a .png photo becomes the circle area question."""
        downloaded = tmp_path / "1700000000000.png"
        downloaded.write_bytes(b"png")
        mock_messaging_channel.download_attachment.return_value = str(downloaded)
        orchestrator = TutorOrchestrator(
            repository=repository,
            answer_generator=mock_answer_generator,
            image_extractor=MockImageTextExtractor(str(tmp_path / "debug")),
            review_channel=mock_review_channel,
            messaging_channel=mock_messaging_channel,
            archive=mock_archive,
            dead_letter=dead_letter,
            settings=test_settings,
        )

        await orchestrator.handle_inbound_message(
            _make_message(text=None, photo_file_id="file-1")
        )

        circle = "If a circle has a radius of 5 cm, calculate its area and circumference."
        mock_answer_generator.generate_answer.assert_awaited_once_with(circle)
        kwargs = mock_review_channel.post_review_card.call_args.kwargs
        assert kwargs["question"] == circle
        assert kwargs["answer"] == "x = 4"


# ---------------------------------------------------------------------------
# Reviewer callbacks
# ---------------------------------------------------------------------------


class TestApproveCallback:
    @pytest.mark.asyncio
    async def test_approve_click_runs_side_effects_in_order(
        self,
        orchestrator,
        repository,
        mock_review_channel,
        mock_messaging_channel,
        mock_archive,
    ):
        record = await _pending_record(repository)
        calls = []
        mock_review_channel.update_review_card.side_effect = (
            lambda *a, **k: calls.append("card")
        )
        mock_messaging_channel.send.side_effect = lambda *a, **k: calls.append("student")
        mock_archive.append_record.side_effect = lambda *a, **k: calls.append("archive")

        await orchestrator.handle_review_interaction(_approve_click(record.id))

        stored = await repository.get_by_id(record.id)
        assert stored.is_approved is True
        assert stored.approved_by == "U1"
        assert stored.approved_at is not None
        assert stored.edited_answer is None
        assert calls == ["card", "student", "archive"]
        mock_review_channel.update_review_card.assert_awaited_once_with(
            CARD_REF, "x = 3 or x = -3"
        )
        mock_messaging_channel.send.assert_awaited_once_with("42", "x = 3 or x = -3")
        mock_archive.append_record.assert_awaited_once_with(
            requester_name="Ana",
            question="Solve x^2 = 9",
            answer="x = 3 or x = -3",
            edited_answer=None,
        )

    @pytest.mark.asyncio
    async def test_side_effect_failures_are_independent(
        self,
        orchestrator,
        repository,
        mock_review_channel,
        mock_messaging_channel,
        mock_archive,
        dead_letter,
    ):
        record = await _pending_record(repository)
        mock_review_channel.update_review_card.side_effect = ReviewChannelError("x")
        mock_messaging_channel.send.side_effect = MessagingDeliveryError("blocked")
        mock_archive.append_record.side_effect = ArchivalError("quota")

        approved = await orchestrator.approve(record.id, "U1", CARD_REF)

        assert approved.is_approved is True
        mock_messaging_channel.send.assert_awaited_once()
        mock_archive.append_record.assert_awaited_once()
        assert (await repository.get_by_id(record.id)).is_approved is True
        assert _dead_letter_reasons(dead_letter) == [
            "delivery_failed",
            "archive_failed",
        ]

    @pytest.mark.asyncio
    async def test_unknown_record_is_dead_lettered(
        self,
        orchestrator,
        repository,
        mock_review_channel,
        mock_messaging_channel,
        mock_archive,
        dead_letter,
    ):
        """Scenario: a callback for a record the store does not know."""
        other = await _pending_record(repository)

        await orchestrator.handle_review_interaction(_approve_click("R-missing"))

        assert (await repository.get_by_id(other.id)).is_approved is False
        mock_review_channel.update_review_card.assert_not_awaited()
        mock_messaging_channel.send.assert_not_awaited()
        mock_archive.append_record.assert_not_awaited()
        assert _dead_letter_reasons(dead_letter) == ["unknown_record"]

    @pytest.mark.asyncio
    async def test_temporary_record_id_is_unknown(
        self, orchestrator, mock_messaging_channel, dead_letter
    ):
        await orchestrator.handle_review_interaction(
            _approve_click("temp-1700000000000")
        )

        mock_messaging_channel.send.assert_not_awaited()
        assert _dead_letter_reasons(dead_letter) == ["unknown_record"]

    @pytest.mark.asyncio
    async def test_unknown_action_is_ignored(
        self, orchestrator, repository, mock_messaging_channel
    ):
        record = await _pending_record(repository)
        payload = _approve_click(record.id)
        payload["actions"][0]["action_id"] = "overflow_menu"

        await orchestrator.handle_review_interaction(payload)

        assert (await repository.get_by_id(record.id)).is_approved is False
        mock_messaging_channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_interaction_type_is_ignored(
        self, orchestrator, mock_messaging_channel, dead_letter
    ):
        await orchestrator.handle_review_interaction({"type": "message_action"})

        mock_messaging_channel.send.assert_not_awaited()
        assert _dead_letter_reasons(dead_letter) == []

    @pytest.mark.asyncio
    async def test_malformed_payload_is_dead_lettered(self, orchestrator, dead_letter):
        await orchestrator.handle_review_interaction({"type": "block_actions"})

        assert _dead_letter_reasons(dead_letter) == ["invalid_callback"]


class TestEditFlow:
    @pytest.mark.asyncio
    async def test_edit_click_opens_form_without_mutation(
        self, orchestrator, repository, mock_review_channel
    ):
        record = await _pending_record(repository)

        await orchestrator.handle_review_interaction(_edit_click(record.id))

        mock_review_channel.open_edit_form.assert_awaited_once_with(
            trigger_id="trigger-1",
            record_id=record.id,
            channel_id=CARD_REF.channel_id,
            message_ts=CARD_REF.ts,
            question="Solve x^2 = 9",
            current_answer="x = 3 or x = -3",
        )
        assert await repository.get_by_id(record.id) == record

    @pytest.mark.asyncio
    async def test_edit_form_failure_is_logged(
        self, orchestrator, repository, mock_review_channel
    ):
        record = await _pending_record(repository)
        mock_review_channel.open_edit_form.side_effect = ReviewChannelError("expired")

        await orchestrator.handle_review_interaction(_edit_click(record.id))

        assert (await repository.get_by_id(record.id)).is_approved is False

    @pytest.mark.asyncio
    async def test_submitted_edit_is_approved_and_delivered(
        self,
        orchestrator,
        repository,
        mock_review_channel,
        mock_messaging_channel,
        mock_archive,
    ):
        """Scenario: edit then submit with new text and card metadata."""
        record = await _pending_record(repository)

        await orchestrator.handle_review_interaction(
            _edit_submission(record.id, "Try squaring both sides.")
        )

        stored = await repository.get_by_id(record.id)
        assert stored.is_approved is True
        assert stored.edited_answer == "Try squaring both sides."
        assert stored.answer == "x = 3 or x = -3"
        assert stored.approved_by == "U2"
        mock_review_channel.update_review_card.assert_awaited_once_with(
            ReviewMessageRef(channel_id="C1", ts="T1"), "Try squaring both sides."
        )
        mock_messaging_channel.send.assert_awaited_once_with(
            "42", "Try squaring both sides."
        )
        kwargs = mock_archive.append_record.call_args.kwargs
        assert kwargs["edited_answer"] == "Try squaring both sides."
        assert kwargs["answer"] == "x = 3 or x = -3"

    @pytest.mark.asyncio
    async def test_empty_edit_is_rejected(
        self, orchestrator, repository, mock_messaging_channel, dead_letter
    ):
        record = await _pending_record(repository)

        await orchestrator.handle_review_interaction(_edit_submission(record.id, "   "))

        assert (await repository.get_by_id(record.id)).is_approved is False
        mock_messaging_channel.send.assert_not_awaited()
        assert _dead_letter_reasons(dead_letter) == ["invalid_callback"]

    @pytest.mark.asyncio
    async def test_bad_metadata_is_rejected(self, orchestrator, dead_letter):
        payload = _edit_submission("rec", "text")
        payload["view"]["private_metadata"] = "not json"

        await orchestrator.handle_review_interaction(payload)

        assert _dead_letter_reasons(dead_letter) == ["invalid_callback"]


# ---------------------------------------------------------------------------
# Duplicate callbacks
# ---------------------------------------------------------------------------


class TestDuplicateApproval:
    @pytest.mark.asyncio
    async def test_guarded_mode_ignores_second_approval(
        self,
        orchestrator,
        repository,
        mock_review_channel,
        mock_messaging_channel,
        mock_archive,
        dead_letter,
    ):
        record = await _pending_record(repository)
        await orchestrator.approve(record.id, "U1", CARD_REF)
        first = await repository.get_by_id(record.id)

        result = await orchestrator.approve(
            record.id, "U2", CARD_REF, edited_answer="Late edit"
        )

        assert result is None
        assert await repository.get_by_id(record.id) == first
        assert mock_review_channel.update_review_card.await_count == 1
        assert mock_messaging_channel.send.await_count == 1
        assert mock_archive.append_record.await_count == 1
        assert _dead_letter_reasons(dead_letter) == ["duplicate_approval"]

    @pytest.mark.asyncio
    async def test_guarded_mode_ignores_edit_click_on_approved_record(
        self, orchestrator, repository, mock_review_channel, dead_letter
    ):
        record = await _pending_record(repository)
        await orchestrator.approve(record.id, "U1", CARD_REF)

        await orchestrator.handle_review_interaction(_edit_click(record.id))

        mock_review_channel.open_edit_form.assert_not_awaited()
        assert _dead_letter_reasons(dead_letter) == ["duplicate_approval"]

    @pytest.mark.asyncio
    async def test_redeliver_mode_resends_final_answer(
        self,
        orchestrator,
        repository,
        mock_review_channel,
        mock_messaging_channel,
        mock_archive,
        dead_letter,
        test_settings,
    ):
        orchestrator.settings = test_settings.model_copy(
            update={"REVIEW_REDELIVER_ON_DUPLICATE": True}
        )
        record = await _pending_record(repository)
        await orchestrator.approve(
            record.id, "U1", CARD_REF, edited_answer="Edited once"
        )
        first = await repository.get_by_id(record.id)

        await orchestrator.handle_review_interaction(_approve_click(record.id, "U3"))

        assert await repository.get_by_id(record.id) == first
        assert mock_review_channel.update_review_card.await_count == 2
        assert mock_messaging_channel.send.await_args_list[-1].args == (
            "42",
            "Edited once",
        )
        assert mock_archive.append_record.await_count == 1
        assert _dead_letter_reasons(dead_letter) == []


# ---------------------------------------------------------------------------
# End to end with real adapters
# ---------------------------------------------------------------------------


class TestUnreachableAnswerService:
    @pytest.mark.asyncio
    async def test_generic_fallback_reaches_review_card(
        self,
        repository,
        mock_image_extractor,
        mock_messaging_channel,
        mock_archive,
        dead_letter,
        test_settings,
    ):
        """Scenario: answer service unreachable for every attempt."""

        def unreachable(request):
            raise httpx.ConnectError("connection refused")

        generator = AnswerGenerator(
            test_settings,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(unreachable)),
        )
        slack_client = MagicMock()
        slack_client.chat_postMessage = AsyncMock(
            return_value={"channel": "C0REVIEW", "ts": "1.2"}
        )
        orchestrator = TutorOrchestrator(
            repository=repository,
            answer_generator=generator,
            image_extractor=mock_image_extractor,
            review_channel=SlackReviewChannel(test_settings, client=slack_client),
            messaging_channel=mock_messaging_channel,
            archive=mock_archive,
            dead_letter=dead_letter,
            settings=test_settings,
        )

        await orchestrator.handle_inbound_message(_make_message(text="What is 2+2?"))

        blocks = slack_client.chat_postMessage.call_args.kwargs["blocks"]
        buttons = blocks[-1]["elements"]
        assert [b["action_id"] for b in buttons] == ["approve_button", "edited_button"]
        record = await repository.get_by_id(buttons[0]["value"])
        assert record.answer == GENERIC_FALLBACK
        mock_messaging_channel.send.assert_awaited_once_with("42", TEXT_ACK_REPLY)


class TestInboundLoop:
    @pytest.mark.asyncio
    async def test_each_message_handled_in_its_own_task(
        self, orchestrator, mock_messaging_channel, mock_review_channel
    ):
        messages = [_make_message(chat_id=i, user_id=i, text=f"Q{i}") for i in (1, 2)]

        async def receive():
            for message in messages:
                yield message

        mock_messaging_channel.receive = receive

        await orchestrator.run_inbound_loop()
        await orchestrator.drain()

        questions = sorted(
            c.kwargs["question"] for c in mock_review_channel.post_review_card.call_args_list
        )
        assert questions == ["Q1", "Q2"]

"""Question review workflow orchestration.

A question moves through three states: the answer is being generated, the
draft waits for a teacher on a review card, and finally the approved answer
has been delivered. Approval is the only mutation a record receives; the side
effects that follow it (card update, delivery, archival) are independent and
a failure in one never undoes or blocks the others.
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from pydantic import ValidationError

from tutor_relay.metrics.workflow_metrics import (
    review_latency_seconds,
    review_lifecycle_total,
    side_effect_total,
)
from tutor_relay.models.question import (
    InboundMessage,
    InboundMessageKind,
    QuestionAlreadyApprovedError,
    QuestionApproval,
    QuestionRecord,
    QuestionRecordCreate,
    QuestionRecordNotFoundError,
    ReviewAction,
    ReviewMessageRef,
)
from tutor_relay.services.tutoring.dead_letter import DeadLetterLog, DeadLetterReason
from tutor_relay.services.tutoring.interactions import (
    BlockActionsPayload,
    ViewSubmissionPayload,
    parse_interaction_payload,
)
from tutor_relay.utils.logging import preview, redact_secrets

logger = logging.getLogger(__name__)

UNSUPPORTED_MESSAGE_REPLY = "Sorry, I can only process text or images. Please try again."
GENERIC_ERROR_REPLY = (
    "Sorry, there was an error processing your message. Please try again later."
)
TEXT_ERROR_REPLY = (
    "Sorry, there was an error processing your question. Please try again later."
)
IMAGE_ERROR_REPLY = (
    "Sorry, there was an error processing your image. Please try again later."
)
TEXT_ACK_REPLY = (
    "I've received your question and am working on it. "
    "A teacher will review the answer shortly."
)
IMAGE_ACK_REPLY = (
    "I've received your image and am processing it. "
    "A teacher will review the answer shortly."
)
TEXT_ANSWER_UNAVAILABLE = (
    "I encountered a technical issue. A teacher will help with your question shortly."
)
IMAGE_ANSWER_UNAVAILABLE = (
    "I encountered a technical issue processing this image. "
    "A teacher will help with your question shortly."
)
EXTRACTION_UNAVAILABLE = (
    "This appears to be an image with a question, but I couldn't extract the text."
)


class TutorOrchestrator:
    """Drives a student question from arrival to archived answer.

    Dependencies injected via constructor:
    - repository: QuestionRepository (records and user profiles)
    - answer_generator: AnswerGenerator (never raises)
    - image_extractor: ImageTextExtractor
    - review_channel: SlackReviewChannel
    - messaging_channel: TelegramMessagingChannel
    - archive: GoogleSheetsArchive
    - dead_letter: DeadLetterLog
    - settings: Settings
    """

    def __init__(
        self,
        repository,
        answer_generator,
        image_extractor,
        review_channel,
        messaging_channel,
        archive,
        dead_letter: DeadLetterLog,
        settings,
    ):
        self.repository = repository
        self.answer_generator = answer_generator
        self.image_extractor = image_extractor
        self.review_channel = review_channel
        self.messaging_channel = messaging_channel
        self.archive = archive
        self.dead_letter = dead_letter
        self.settings = settings
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    async def run_inbound_loop(self) -> None:
        """Consume the messaging channel, one task per message, until cancelled."""
        async for message in self.messaging_channel.receive():
            task = asyncio.create_task(self.handle_inbound_message(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight inbound workflows to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle_inbound_message(self, message: InboundMessage) -> None:
        """Dispatch a student message by kind. Never raises."""
        logger.info(
            f"Received message from {message.display_name} ({message.user_id})",
            extra={"platform": message.platform.value, "kind": message.kind.value},
        )
        try:
            kind = message.kind
            if kind == InboundMessageKind.UNSUPPORTED:
                await self.messaging_channel.send(
                    message.chat_id, UNSUPPORTED_MESSAGE_REPLY
                )
                return

            await self._record_interaction(message)
            if kind == InboundMessageKind.PHOTO:
                await self.handle_photo_question(message)
            else:
                await self.handle_text_question(message)
        except Exception as e:
            logger.error(f"Error processing inbound message: {e}", exc_info=True)
            try:
                await self.messaging_channel.send(message.chat_id, GENERIC_ERROR_REPLY)
            except Exception as send_error:
                logger.error(f"Error sending error message: {send_error}")

    async def _record_interaction(self, message: InboundMessage) -> None:
        try:
            await self.repository.record_interaction(
                platform=message.platform,
                platform_user_id=message.user_id,
                first_name=message.first_name or None,
                last_name=message.last_name,
                username=message.username,
            )
        except Exception as e:
            logger.warning(f"Could not update profile for {message.user_id}: {e}")

    async def handle_text_question(self, message: InboundMessage) -> None:
        question = (message.text or "").strip()
        try:
            logger.info(f'Processing text message: "{preview(question)}"')
            await self.messaging_channel.send_typing(message.chat_id)

            answer = await self._generate_answer(question, TEXT_ANSWER_UNAVAILABLE)
            record = await self._create_record(
                QuestionRecordCreate(
                    requester_id=message.user_id,
                    requester_name=message.display_name,
                    question=question,
                    answer=answer,
                )
            )
            await self._post_review_card(record)

            await self.messaging_channel.send(message.chat_id, TEXT_ACK_REPLY)
            logger.info("Sent acknowledgment to user")
        except Exception as e:
            logger.error(f"Error processing text message: {e}")
            await self.messaging_channel.send(message.chat_id, TEXT_ERROR_REPLY)

    async def handle_photo_question(self, message: InboundMessage) -> None:
        file_path: Optional[str] = None
        try:
            logger.info(f"Processing photo message from {message.display_name}")
            await self.messaging_channel.send_typing(message.chat_id)

            image_url = await self.messaging_channel.resolve_attachment_url(
                message.photo_file_id
            )
            file_path = await self.messaging_channel.download_attachment(image_url)
            logger.info(f"Downloaded photo to {file_path}")

            question = await self._extract_text(file_path)
            answer = await self._generate_answer(question, IMAGE_ANSWER_UNAVAILABLE)
            record = await self._create_record(
                QuestionRecordCreate(
                    requester_id=message.user_id,
                    requester_name=message.display_name,
                    question=question,
                    answer=answer,
                    is_from_image=True,
                    # Telegram file URLs embed the bot token
                    image_url=redact_secrets(image_url),
                )
            )
            await self._post_review_card(record)

            await self.messaging_channel.send(message.chat_id, IMAGE_ACK_REPLY)
            logger.info("Sent acknowledgment to user for image")
        except Exception as e:
            logger.error(f"Error processing photo message: {e}")
            await self.messaging_channel.send(message.chat_id, IMAGE_ERROR_REPLY)
        finally:
            if file_path:
                self._remove_temp_file(file_path)

    @staticmethod
    def _remove_temp_file(file_path: str) -> None:
        try:
            os.remove(file_path)
            logger.info("Cleaned up temporary file")
        except OSError as e:
            logger.error(f"Error cleaning up file: {e}")

    async def _extract_text(self, file_path: str) -> str:
        try:
            text = await self.image_extractor.extract_text(file_path)
        except Exception as e:
            logger.error(f"Error extracting text: {e}")
            return EXTRACTION_UNAVAILABLE
        logger.info(f'Extracted text from image: "{preview(text)}"')
        return text

    async def _generate_answer(self, question: str, unavailable: str) -> str:
        try:
            return await self.answer_generator.generate_answer(question)
        except Exception as e:
            logger.error(f"Error generating answer: {e}")
            return unavailable

    async def _create_record(self, data: QuestionRecordCreate) -> QuestionRecord:
        """Persist a new record, or stand in a temporary one if the store fails."""
        try:
            record = await self.repository.create(data)
        except Exception as e:
            logger.error(f"Error saving to database: {e}")
            now = datetime.now(timezone.utc)
            review_lifecycle_total.labels(action="temp_created").inc()
            return QuestionRecord(
                id=f"temp-{int(time.time() * 1000)}",
                created_at=now,
                updated_at=now,
                **data.model_dump(),
            )
        review_lifecycle_total.labels(action="created").inc()
        logger.info(f"Saved question to database with ID: {record.id}")
        return record

    async def _post_review_card(self, record: QuestionRecord) -> Optional[ReviewMessageRef]:
        try:
            message_ref = await self.review_channel.post_review_card(
                question=record.question,
                answer=record.answer,
                record_id=record.id,
                requester_name=record.requester_name,
                from_image=record.is_from_image,
            )
        except Exception as e:
            logger.error(f"Error sending to Slack: {e}")
            self.dead_letter.record(
                DeadLetterReason.REVIEW_CARD_FAILED, record_id=record.id, error=str(e)
            )
            return None
        review_lifecycle_total.labels(action="card_posted").inc()
        logger.info("Sent question to Slack for approval", extra={"record_id": record.id})
        return message_ref

    # ------------------------------------------------------------------
    # Reviewer callbacks
    # ------------------------------------------------------------------

    async def handle_review_interaction(self, payload: Dict[str, Any]) -> None:
        """Dispatch a raw Slack interaction payload. Never raises."""
        try:
            parsed = parse_interaction_payload(payload)
        except ValidationError as e:
            logger.error(f"Malformed Slack interaction payload: {e}")
            self.dead_letter.record(
                DeadLetterReason.INVALID_CALLBACK,
                payload_type=payload.get("type"),
                error=str(e),
            )
            return

        if parsed is None:
            logger.warning(f"Unknown Slack interaction type: {payload.get('type')}")
            return

        try:
            if isinstance(parsed, BlockActionsPayload):
                await self.handle_block_actions(parsed)
            else:
                await self.handle_view_submission(parsed)
        except Exception as e:
            logger.error(f"Error handling Slack interaction: {e}", exc_info=True)

    async def handle_block_actions(self, payload: BlockActionsPayload) -> None:
        action = payload.action
        if action is None or not action.value:
            logger.warning("Block action without a record id, ignoring")
            return

        record_id = action.value
        if action.action_id == ReviewAction.APPROVE.value:
            await self.approve(
                record_id=record_id,
                reviewer_id=payload.user.id,
                message_ref=payload.message_ref,
            )
        elif action.action_id == ReviewAction.EDIT.value:
            record = await self._get_pending_record(record_id, payload.message_ref)
            if record is None:
                return
            await self.request_edit(
                record,
                trigger_id=payload.trigger_id or "",
                channel_id=payload.channel.id if payload.channel else "",
                message_ts=payload.message.ts if payload.message else "",
            )
        else:
            logger.warning(f"Unknown review action: {action.action_id}")

    async def request_edit(
        self,
        record: QuestionRecord,
        trigger_id: str,
        channel_id: str,
        message_ts: str,
    ) -> None:
        """Open the edit form for a pending record; the record is not touched."""
        try:
            await self.review_channel.open_edit_form(
                trigger_id=trigger_id,
                record_id=record.id,
                channel_id=channel_id,
                message_ts=message_ts,
                question=record.question,
                current_answer=record.answer,
            )
        except Exception as e:
            logger.error(f"Error handling edit request: {e}")
            return
        review_lifecycle_total.labels(action="edit_requested").inc()
        logger.info(f"Edit modal opened for question: {record.id}")

    async def handle_view_submission(self, payload: ViewSubmissionPayload) -> None:
        try:
            context = payload.review_context()
        except ValueError as e:
            logger.error(f"Error handling view submission: {e}")
            self.dead_letter.record(
                DeadLetterReason.INVALID_CALLBACK,
                payload_type="view_submission",
                error=str(e),
            )
            return

        edited_answer = payload.submitted_text()
        if edited_answer is None or not edited_answer.strip():
            logger.warning(f"Empty edit submitted for record {context.record_id}")
            self.dead_letter.record(
                DeadLetterReason.INVALID_CALLBACK,
                payload_type="view_submission",
                record_id=context.record_id,
                error="empty edited answer",
            )
            return

        await self.approve(
            record_id=context.record_id,
            reviewer_id=payload.user.id,
            message_ref=context.message_ref,
            edited_answer=edited_answer,
        )

    async def _get_pending_record(
        self, record_id: str, message_ref: Optional[ReviewMessageRef]
    ) -> Optional[QuestionRecord]:
        """Load a record that can still be reviewed, or handle why it can't."""
        record = await self.repository.get_by_id(record_id)
        if record is None:
            self._unknown_record(record_id)
            return None
        if record.is_approved:
            await self._handle_duplicate(record, message_ref)
            return None
        return record

    def _unknown_record(self, record_id: str) -> None:
        logger.error(f"Question record not found: {record_id}")
        self.dead_letter.record(DeadLetterReason.UNKNOWN_RECORD, record_id=record_id)

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    async def approve(
        self,
        record_id: str,
        reviewer_id: str,
        message_ref: Optional[ReviewMessageRef],
        edited_answer: Optional[str] = None,
    ) -> Optional[QuestionRecord]:
        """Approve a pending record and carry out the post-approval side effects.

        Side effects run in order: review card update, delivery to the
        student, archive row. Each is attempted regardless of the others.

        Returns:
            The approved record, or None when nothing was approved
        """
        try:
            approval = QuestionApproval(
                approved_by=reviewer_id, edited_answer=edited_answer
            )
        except ValidationError as e:
            logger.error(f"Rejected approval for {record_id}: {e}")
            self.dead_letter.record(
                DeadLetterReason.INVALID_CALLBACK, record_id=record_id, error=str(e)
            )
            return None

        try:
            record = await self.repository.approve(record_id, approval)
        except QuestionRecordNotFoundError:
            self._unknown_record(record_id)
            return None
        except QuestionAlreadyApprovedError:
            existing = await self.repository.get_by_id(record_id)
            if existing is not None:
                await self._handle_duplicate(existing, message_ref)
            return None
        except Exception as e:
            logger.error(f"Error saving approval for {record_id}: {e}")
            self.dead_letter.record(
                DeadLetterReason.PERSIST_FAILED, record_id=record_id, error=str(e)
            )
            return None

        action = "edited" if record.edited_answer else "approved"
        review_lifecycle_total.labels(action=action).inc()
        if record.approved_at is not None:
            review_latency_seconds.observe(
                (record.approved_at - record.created_at).total_seconds()
            )
        logger.info(
            f"Question {record.id} {action}",
            extra={"record_id": record.id, "approved_by": reviewer_id},
        )

        await self._update_review_card(record, message_ref)
        await self._deliver_answer(record)
        await self._archive(record)
        return record

    async def _handle_duplicate(
        self, record: QuestionRecord, message_ref: Optional[ReviewMessageRef]
    ) -> None:
        review_lifecycle_total.labels(action="duplicate").inc()
        if self.settings.REVIEW_REDELIVER_ON_DUPLICATE:
            logger.info(f"Re-delivering already approved question {record.id}")
            await self._update_review_card(record, message_ref)
            await self._deliver_answer(record)
            return

        logger.warning(f"Question {record.id} is already approved, ignoring callback")
        self.dead_letter.record(
            DeadLetterReason.DUPLICATE_APPROVAL,
            record_id=record.id,
            approved_by=record.approved_by,
        )

    async def _update_review_card(
        self, record: QuestionRecord, message_ref: Optional[ReviewMessageRef]
    ) -> None:
        if message_ref is None or not message_ref.ts:
            logger.warning(f"No review card reference for {record.id}, skipping update")
            side_effect_total.labels(target="review_card", outcome="skipped").inc()
            return
        try:
            await self.review_channel.update_review_card(message_ref, record.final_answer)
        except Exception as e:
            logger.error(f"Error updating Slack message for {record.id}: {e}")
            side_effect_total.labels(target="review_card", outcome="failed").inc()
            return
        side_effect_total.labels(target="review_card", outcome="succeeded").inc()

    async def _deliver_answer(self, record: QuestionRecord) -> None:
        try:
            await self.messaging_channel.send(record.requester_id, record.final_answer)
        except Exception as e:
            logger.error(f"Error sending answer to student {record.requester_id}: {e}")
            side_effect_total.labels(target="student", outcome="failed").inc()
            self.dead_letter.record(
                DeadLetterReason.DELIVERY_FAILED,
                record_id=record.id,
                requester_id=record.requester_id,
                answer=record.final_answer,
                error=str(e),
            )
            return
        side_effect_total.labels(target="student", outcome="succeeded").inc()
        logger.info(f"Approved answer sent to student: {record.id}")

    async def _archive(self, record: QuestionRecord) -> None:
        try:
            await self.archive.append_record(
                requester_name=record.requester_name,
                question=record.question,
                answer=record.answer,
                edited_answer=record.edited_answer,
            )
        except Exception as e:
            logger.error(f"Error saving record {record.id} to Google Sheets: {e}")
            side_effect_total.labels(target="archive", outcome="failed").inc()
            self.dead_letter.record(
                DeadLetterReason.ARCHIVE_FAILED,
                record_id=record.id,
                requester_name=record.requester_name,
                question=record.question,
                answer=record.answer,
                edited_answer=record.edited_answer,
                error=str(e),
            )
            return
        side_effect_total.labels(target="archive", outcome="succeeded").inc()

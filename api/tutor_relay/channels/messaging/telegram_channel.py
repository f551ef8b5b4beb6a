"""Telegram messaging channel.

Receives student messages through long polling and delivers approved answers
back to them. Inbound updates are converted to ``InboundMessage`` and queued;
consumers read them with ``receive()``.
"""

import asyncio
import html
import logging
import os
import time
from pathlib import Path
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlparse

import httpx
from telegram import Update
from telegram.constants import ChatAction, ParseMode
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from tutor_relay.core.config import Settings
from tutor_relay.models.question import (
    AttachmentDownloadError,
    InboundMessage,
    MessagingDeliveryError,
    Platform,
)
from tutor_relay.utils.logging import redact_secrets

logger = logging.getLogger(__name__)

DEFAULT_ATTACHMENT_SUFFIX = ".jpg"


def to_inbound_message(update: Update) -> Optional[InboundMessage]:
    """Convert a Telegram update into an InboundMessage.

    Returns:
        The message, or None for updates that carry no user message
    """
    message = getattr(update, "message", None)
    if message is None or message.from_user is None:
        return None

    photo_file_id = None
    if message.photo:
        # Telegram lists sizes smallest first
        photo_file_id = message.photo[-1].file_id

    user = message.from_user
    return InboundMessage(
        platform=Platform.TELEGRAM,
        message_id=message.message_id,
        chat_id=message.chat.id,
        user_id=user.id,
        first_name=user.first_name or "",
        last_name=user.last_name,
        username=user.username,
        text=message.text or message.caption,
        photo_file_id=photo_file_id,
    )


class TelegramMessagingChannel:
    """Messaging-channel adapter backed by python-telegram-bot.

    Args:
        settings: Settings with TELEGRAM_BOT_TOKEN and download configuration
        application: Optional pre-built telegram.ext.Application
        http_client: Optional httpx.AsyncClient used for attachment downloads
    """

    def __init__(
        self,
        settings: Settings,
        application: Optional[Any] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings
        self.token = settings.TELEGRAM_BOT_TOKEN
        self.download_dir = Path(settings.TEMP_DIR_PATH)
        self.download_timeout = settings.ATTACHMENT_DOWNLOAD_TIMEOUT_SECONDS
        self._application = application
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._queue: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._polling = False

    @property
    def application(self) -> Any:
        if self._application is None:
            self._application = Application.builder().token(self.token).build()
        return self._application

    @property
    def bot(self) -> Any:
        return self.application.bot

    @property
    def is_polling(self) -> bool:
        return self._polling

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Register the message handler and start long polling."""
        if self._polling:
            return
        app = self.application
        app.add_handler(MessageHandler(filters.ALL, self._on_update))
        await app.initialize()
        await app.start()
        await app.updater.start_polling()
        self._polling = True
        logger.info("Telegram bot initialized and listening for messages")

    async def stop(self) -> None:
        """Stop polling and release the HTTP clients."""
        if self._polling:
            app = self.application
            try:
                await app.updater.stop()
                await app.stop()
                await app.shutdown()
            except Exception:
                logger.warning("Error stopping Telegram application", exc_info=True)
            self._polling = False
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.info("Telegram channel stopped")

    async def _on_update(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        inbound = to_inbound_message(update)
        if inbound is None:
            logger.debug("Ignoring Telegram update without a user message")
            return
        await self.enqueue(inbound)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def receive(self) -> AsyncIterator[InboundMessage]:
        """Yield inbound messages as they arrive, until cancelled."""
        while True:
            message = await self._queue.get()
            try:
                yield message
            finally:
                self._queue.task_done()

    async def enqueue(self, message: InboundMessage) -> None:
        """Feed a message into the inbound stream read by ``receive()``."""
        await self._queue.put(message)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, user_id: str, text: str) -> None:
        """Send a plain-text message to a student.

        The text is HTML-escaped, so answers such as "x < 3" arrive verbatim.

        Raises:
            MessagingDeliveryError: If Telegram rejects the message
        """
        try:
            await self.bot.send_message(
                chat_id=user_id,
                text=html.escape(text, quote=False),
                parse_mode=ParseMode.HTML,
                disable_web_page_preview=True,
            )
        except Exception as e:
            logger.error(f"Error sending message to Telegram: {e}")
            raise MessagingDeliveryError(
                f"Failed to send message to Telegram: {e}"
            ) from e
        logger.info(f"Message sent to Telegram user: {user_id}")

    async def send_typing(self, chat_id: str) -> None:
        """Show the typing indicator; failures only matter for cosmetics."""
        try:
            await self.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
        except Exception as e:
            logger.warning(f"Could not send typing indicator to {chat_id}: {e}")

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    async def resolve_attachment_url(self, file_ref: str) -> str:
        """Resolve a Telegram file id to a downloadable URL.

        Raises:
            AttachmentDownloadError: If Telegram does not know the file
        """
        try:
            file_info = await self.bot.get_file(file_ref)
        except Exception as e:
            logger.error(f"Error getting file from Telegram: {e}")
            raise AttachmentDownloadError(
                f"Failed to get file from Telegram: {e}"
            ) from e

        file_path = str(file_info.file_path or "")
        if not file_path:
            raise AttachmentDownloadError(f"Telegram returned no path for {file_ref}")
        # Recent Bot API clients already return an absolute URL
        if file_path.startswith(("http://", "https://")):
            return file_path
        return f"{self.settings.TELEGRAM_FILE_BASE_URL}{self.token}/{file_path}"

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return self._http_client

    async def download_attachment(self, url: str) -> str:
        """Download an attachment into the temp directory.

        Returns:
            Local path of the downloaded file

        Raises:
            AttachmentDownloadError: If the download fails
        """
        suffix = os.path.splitext(urlparse(url).path)[1].lower()
        self.download_dir.mkdir(parents=True, exist_ok=True)
        target = self.download_dir / (
            f"{int(time.time() * 1000)}{suffix or DEFAULT_ATTACHMENT_SUFFIX}"
        )

        client = self._get_http_client()
        try:
            async with client.stream(
                "GET", url, timeout=self.download_timeout
            ) as response:
                response.raise_for_status()
                with open(target, "wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
        except Exception as e:
            target.unlink(missing_ok=True)
            reason = redact_secrets(str(e))
            logger.error(f"Error downloading photo from {redact_secrets(url)}: {reason}")
            raise AttachmentDownloadError(f"Failed to download photo: {reason}") from e

        return str(target)

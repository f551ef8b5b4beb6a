"""Student-facing messaging channel."""

from tutor_relay.channels.messaging.telegram_channel import TelegramMessagingChannel

__all__ = ["TelegramMessagingChannel"]

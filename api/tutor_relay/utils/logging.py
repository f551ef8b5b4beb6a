import re


def redact_secrets(text: str) -> str:
    """
    Redact credentials that may be embedded in text before it is logged.

    Covers:
    - Telegram bot tokens (``bot<id>:<secret>`` inside file URLs, or bare)
    - Slack tokens (xoxb-, xoxp-, xapp- ...)
    - Bearer authorization values
    - Generic long API keys
    """
    # Telegram file URLs carry the bot token in the path
    text = re.sub(r"/bot\d+:[A-Za-z0-9_-]+", "/bot[TELEGRAM_TOKEN]", text)

    # Bare Telegram bot tokens
    text = re.sub(r"\b\d{6,}:[A-Za-z0-9_-]{30,}\b", "[TELEGRAM_TOKEN]", text)

    # Slack tokens
    text = re.sub(r"\bxox[abposr]-[A-Za-z0-9-]+", "[SLACK_TOKEN]", text)
    text = re.sub(r"\bxapp-[A-Za-z0-9-]+", "[SLACK_TOKEN]", text)

    # Authorization headers
    text = re.sub(r"(?i)bearer\s+[A-Za-z0-9._~+/=-]+", "Bearer [REDACTED]", text)

    # sk- style API keys
    text = re.sub(r"\bsk-[A-Za-z0-9]{16,}\b", "[API_KEY]", text)

    return text


def preview(text: str, limit: int = 50) -> str:
    """Shorten user text for log lines."""
    text = text or ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."
